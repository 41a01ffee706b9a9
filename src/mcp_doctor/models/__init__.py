"""Pydantic models for MCP Doctor - the contracts."""

from mcp_doctor.models.capability import (
    CapabilityFlags,
    CapabilityProbeResult,
    ProbeOutcome,
    PromptArgument,
    PromptInfo,
    ResourceInfo,
    ServerIdentity,
    ToolInfo,
)
from mcp_doctor.models.descriptor import (
    DeclarationDocument,
    DocumentShape,
    ServiceDescriptor,
)
from mcp_doctor.models.report import DiagnosticReport, DuplicateService, ProbeRecord
from mcp_doctor.models.validation import (
    DOCUMENT_SCOPE,
    IssueKind,
    IssueSeverity,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "CapabilityFlags",
    "CapabilityProbeResult",
    "DeclarationDocument",
    "DiagnosticReport",
    "DOCUMENT_SCOPE",
    "DocumentShape",
    "DuplicateService",
    "IssueKind",
    "IssueSeverity",
    "ProbeOutcome",
    "ProbeRecord",
    "PromptArgument",
    "PromptInfo",
    "ResourceInfo",
    "ServerIdentity",
    "ServiceDescriptor",
    "ToolInfo",
    "ValidationIssue",
    "ValidationResult",
]
