"""MCP Doctor - diagnostics for externally launched MCP tool servers."""

__version__ = "0.1.0"

from mcp_doctor.exceptions import DeclarationParseError

__all__ = ["__version__", "DeclarationParseError"]
