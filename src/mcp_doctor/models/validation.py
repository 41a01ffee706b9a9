"""Validation issue and result models."""

from enum import Enum

from pydantic import BaseModel, Field

from mcp_doctor.models.descriptor import ServiceDescriptor

# Service placeholder for issues that concern the whole document
DOCUMENT_SCOPE = "(document)"


class IssueSeverity(str, Enum):
    """How serious a validation issue is."""

    ERROR = "error"      # Source is invalid
    WARNING = "warning"  # Likely to break at runtime
    INFO = "info"        # Worth knowing, nothing to fix


class IssueKind(str, Enum):
    """Classification of validation issues."""

    MISSING_FIELD = "missing_field"
    BINARY_NOT_FOUND = "binary_not_found"
    PATH_NOT_FOUND = "path_not_found"
    EMPTY_ENVIRONMENT_VALUE = "empty_environment_value"
    MISSING_TYPE_HINT = "missing_type_hint"
    DOCUMENT_UNPARSEABLE = "document_unparseable"
    MALFORMED_ENTRY = "malformed_entry"


class ValidationIssue(BaseModel):
    """A single finding about one service (or about the whole document)."""

    service: str
    severity: IssueSeverity
    kind: IssueKind
    message: str
    fix: str | None = None
    source: str | None = None

    def names(self, descriptor: ServiceDescriptor) -> bool:
        """Whether this issue is about the given descriptor."""
        return self.service == descriptor.name and self.source == descriptor.source


class ValidationResult(BaseModel):
    """Validation outcome for one declaration source."""

    source_id: str
    services: list[ServiceDescriptor] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)
    valid: bool = True

    @property
    def errors(self) -> list[ValidationIssue]:
        """Error-severity issues only."""
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    def has_error_for(self, descriptor: ServiceDescriptor) -> bool:
        """Whether any error-severity issue names the descriptor."""
        return any(issue.names(descriptor) for issue in self.errors)
