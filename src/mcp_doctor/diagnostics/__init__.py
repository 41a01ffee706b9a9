"""Declaration validation, capability probing and report aggregation."""

from mcp_doctor.diagnostics.aggregator import (
    DiagnosticAggregator,
    find_duplicates,
    find_service,
)
from mcp_doctor.diagnostics.extraction import ExtractionResult, extract_services
from mcp_doctor.diagnostics.locator import (
    discover_documents,
    find_declaration_files,
    load_documents,
)
from mcp_doctor.diagnostics.prober import CapabilityProber, ProbeSession, ProbeState
from mcp_doctor.diagnostics.render import format_report
from mcp_doctor.diagnostics.validator import validate_document, validate_services

__all__ = [
    "CapabilityProber",
    "DiagnosticAggregator",
    "discover_documents",
    "extract_services",
    "ExtractionResult",
    "find_declaration_files",
    "find_duplicates",
    "find_service",
    "format_report",
    "load_documents",
    "ProbeSession",
    "ProbeState",
    "validate_document",
    "validate_services",
]
