"""Aggregated diagnostic report models."""

from datetime import datetime, UTC

from pydantic import BaseModel, Field

from mcp_doctor.models.capability import CapabilityProbeResult
from mcp_doctor.models.descriptor import ServiceDescriptor
from mcp_doctor.models.validation import ValidationResult


class DuplicateService(BaseModel):
    """A service name declared by more than one source."""

    name: str
    locations: list[str]


class ProbeRecord(BaseModel):
    """Probe result paired with the descriptor that was probed."""

    service: ServiceDescriptor
    result: CapabilityProbeResult


class DiagnosticReport(BaseModel):
    """Outcome of one diagnostic run over a set of declaration sources."""

    configs: list[ValidationResult] = Field(default_factory=list)
    probe_results: list[ProbeRecord] | None = None
    duplicate_servers: list[DuplicateService] = Field(default_factory=list)
    total_servers: int = 0
    healthy_servers: int = 0
    recommendations: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def services(self) -> list[ServiceDescriptor]:
        """All descriptors, in source order then declaration order."""
        return [service for config in self.configs for service in config.services]
