"""Capability probe models.

Wire payloads use the protocol's camelCase keys (``inputSchema``,
``mimeType``, ``serverInfo``); the models accept them as aliases and
expose snake_case attributes.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProbeOutcome(str, Enum):
    """Terminal state of the probe state machine."""

    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    PREMATURE_EXIT = "premature_exit"
    HANDSHAKE_REJECTED = "handshake_rejected"
    TRANSPORT_ERROR = "transport_error"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ToolInfo(_WireModel):
    """A tool advertised by `tools/list`."""

    name: str
    description: str | None = None
    input_schema: dict[str, Any] | None = Field(default=None, alias="inputSchema")


class ResourceInfo(_WireModel):
    """A resource advertised by `resources/list`."""

    uri: str
    name: str | None = None
    description: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class PromptArgument(_WireModel):
    name: str
    description: str | None = None
    required: bool | None = None


class PromptInfo(_WireModel):
    """A prompt template advertised by `prompts/list`."""

    name: str
    description: str | None = None
    arguments: list[PromptArgument] | None = None


class ServerIdentity(_WireModel):
    """`serverInfo` block of the initialize result."""

    name: str | None = None
    version: str | None = None


class CapabilityFlags(_WireModel):
    """Which capability families the server declared at initialize."""

    tools: bool | None = None
    resources: bool | None = None
    prompts: bool | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CapabilityFlags | None":
        """Build flags from the `capabilities` object of an initialize result.

        Servers declare a family with an (often empty) options object, so
        presence of the key means the family is supported.
        """
        if not isinstance(payload, dict):
            return None
        flags = {}
        for family in ("tools", "resources", "prompts"):
            if family in payload:
                value = payload[family]
                flags[family] = value if isinstance(value, bool) else value is not None
        return cls(**flags)


class CapabilityProbeResult(BaseModel):
    """Everything learned from one probe run.

    Lists fill in as discovery responses arrive, so they can be partially
    populated even when `error` is set.
    """

    tools: list[ToolInfo] = Field(default_factory=list)
    resources: list[ResourceInfo] = Field(default_factory=list)
    prompts: list[PromptInfo] = Field(default_factory=list)
    server_info: ServerIdentity | None = None
    capabilities: CapabilityFlags | None = None
    probe_time_ms: int = 0
    outcome: ProbeOutcome = ProbeOutcome.COMPLETE
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
