"""Static validation of service declarations.

Rule-based checks over the descriptors of one source. Issues are collected,
never raised; one broken descriptor does not stop its siblings from being
checked. No process is spawned and nothing touches the network.
"""

import logging
import os
import shutil
from collections.abc import Callable, Iterable, Mapping

from mcp_doctor.diagnostics.extraction import extract_services
from mcp_doctor.diagnostics.placeholders import expand_placeholders, has_placeholder
from mcp_doctor.models.descriptor import DeclarationDocument, ServiceDescriptor
from mcp_doctor.models.validation import (
    IssueKind,
    IssueSeverity,
    ValidationIssue,
    ValidationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TRANSPORT = "stdio"

CommandLookup = Callable[[str, Mapping[str, str]], bool]
PathLookup = Callable[[str], bool]


def command_exists(command: str, env: Mapping[str, str]) -> bool:
    """Resolve a launch command the way the process launcher would.

    Absolute paths must exist on disk; bare names are looked up on the
    executable search path, honoring a PATH override declared by the service.
    The override is expanded against the inherited environment first, so
    `${PATH}` inside it means the inherited search path.
    """
    if os.path.isabs(command):
        return os.path.exists(command)
    search_path = env.get("PATH")
    if search_path is not None:
        search_path = expand_placeholders(search_path, os.environ)[0]
    return shutil.which(command, path=search_path) is not None


def validate_services(
    source_id: str,
    services: Iterable[ServiceDescriptor],
    issues: Iterable[ValidationIssue] = (),
    *,
    command_lookup: CommandLookup = command_exists,
    path_lookup: PathLookup = os.path.exists,
) -> ValidationResult:
    """Validate the descriptors declared by one source.

    Args:
        source_id: Identifier of the declaring document
        services: Descriptors in declaration order
        issues: Issues already found while extracting the descriptors
        command_lookup: Resolves a launch command (injectable for tests)
        path_lookup: Checks a filesystem path (injectable for tests)

    Returns:
        ValidationResult; `valid` is False iff any error-severity issue exists
    """
    services = list(services)
    collected = list(issues)

    for service in services:
        collected.extend(
            _check_service(service, command_lookup=command_lookup, path_lookup=path_lookup)
        )

    valid = not any(issue.severity == IssueSeverity.ERROR for issue in collected)
    if not valid:
        logger.info(
            f"{source_id}: "
            f"{sum(1 for i in collected if i.severity == IssueSeverity.ERROR)} "
            f"configuration error(s) across {len(services)} services"
        )

    return ValidationResult(
        source_id=source_id,
        services=services,
        issues=collected,
        valid=valid,
    )


def validate_document(
    document: DeclarationDocument,
    *,
    command_lookup: CommandLookup = command_exists,
    path_lookup: PathLookup = os.path.exists,
) -> ValidationResult:
    """Extract descriptors from a document and validate them."""
    extracted = extract_services(document)
    return validate_services(
        document.source_id,
        extracted.services,
        extracted.issues,
        command_lookup=command_lookup,
        path_lookup=path_lookup,
    )


def _check_service(
    service: ServiceDescriptor,
    command_lookup: CommandLookup,
    path_lookup: PathLookup,
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    def _issue(
        severity: IssueSeverity,
        kind: IssueKind,
        message: str,
        fix: str | None = None,
    ) -> None:
        issues.append(ValidationIssue(
            service=service.name,
            severity=severity,
            kind=kind,
            message=message,
            fix=fix,
            source=service.source,
        ))

    if not service.command:
        _issue(
            IssueSeverity.ERROR,
            IssueKind.MISSING_FIELD,
            "Missing 'command' field",
            "Add a 'command' field specifying the executable to run",
        )
        return issues

    # Templated commands are only resolvable at launch time
    if not has_placeholder(service.command):
        if not command_lookup(service.command, service.env):
            _issue(
                IssueSeverity.ERROR,
                IssueKind.BINARY_NOT_FOUND,
                f"Command '{service.command}' not found",
                f"Install or provide full path for '{service.command}'",
            )

    for arg in service.args:
        if arg.startswith(os.sep) and not has_placeholder(arg) and not path_lookup(arg):
            _issue(
                IssueSeverity.WARNING,
                IssueKind.PATH_NOT_FOUND,
                f"Argument path '{arg}' does not exist",
            )

    if not service.transport:
        _issue(
            IssueSeverity.INFO,
            IssueKind.MISSING_TYPE_HINT,
            f"No 'type' specified, defaulting to '{DEFAULT_TRANSPORT}'",
        )

    for key, value in service.env.items():
        if value == "":
            _issue(
                IssueSeverity.WARNING,
                IssueKind.EMPTY_ENVIRONMENT_VALUE,
                f"Environment variable '{key}' is empty",
            )

    return issues
