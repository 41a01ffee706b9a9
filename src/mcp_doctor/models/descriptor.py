"""Declaration documents and the service descriptors extracted from them."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentShape(str, Enum):
    """Recognized layouts of a declaration document.

    STANDARD: a project `.mcp.json` with a top-level `mcpServers` map.
    USER: a `.claude.json` user file; `mcpServers` plus a `projects` map of
        per-project override sections, each with its own `mcpServers`.
    """

    STANDARD = "standard"
    USER = "user"


class DeclarationDocument(BaseModel):
    """One raw declaration document as handed over by the locator."""

    source_id: str
    text: str | None = None
    shape: DocumentShape = DocumentShape.STANDARD
    read_error: str | None = None


class ServiceDescriptor(BaseModel):
    """Normalized record of one launchable tool server.

    Immutable once extracted. `source` identifies the declaring document,
    and for override sections also the project key, e.g.
    ``/home/me/.claude.json [project: /work/api]``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    command: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    transport: str = ""
    source: str
