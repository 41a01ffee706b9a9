"""FastAPI routes for MCP Doctor."""

from mcp_doctor.api.routes import router

__all__ = ["router"]
