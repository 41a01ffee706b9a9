"""Custom exceptions for MCP Doctor."""


class DeclarationParseError(Exception):
    """Raised when a declaration document cannot be parsed as JSON."""

    def __init__(self, source_id: str, reason: str) -> None:
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"Failed to parse {source_id}: {reason}")
