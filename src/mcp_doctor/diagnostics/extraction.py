"""Descriptor extraction and normalization.

Turns one raw declaration document into a flat list of ServiceDescriptor
records. Documents that cannot be parsed, or whose layout is not
recognized, yield no descriptors and a single document-level error.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from mcp_doctor.exceptions import DeclarationParseError
from mcp_doctor.models.descriptor import (
    DeclarationDocument,
    DocumentShape,
    ServiceDescriptor,
)
from mcp_doctor.models.validation import (
    DOCUMENT_SCOPE,
    IssueKind,
    IssueSeverity,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

SERVERS_KEY = "mcpServers"
PROJECTS_KEY = "projects"


@dataclass
class ExtractionResult:
    """Descriptors pulled from one document plus extraction-time issues."""

    services: list[ServiceDescriptor] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)


def override_source(source_id: str, project_key: str) -> str:
    """Source identifier for a per-project override section."""
    return f"{source_id} [project: {project_key}]"


def parse_document(document: DeclarationDocument) -> Any:
    """Parse the document text as JSON.

    Raises:
        DeclarationParseError: If the document was unreadable or is not JSON
    """
    if document.read_error is not None:
        raise DeclarationParseError(document.source_id, document.read_error)
    if document.text is None:
        raise DeclarationParseError(document.source_id, "document has no content")
    try:
        return json.loads(document.text)
    except json.JSONDecodeError as e:
        raise DeclarationParseError(document.source_id, str(e)) from e


def extract_services(document: DeclarationDocument) -> ExtractionResult:
    """Extract normalized service descriptors from a declaration document.

    Args:
        document: The raw document and its source identifier

    Returns:
        ExtractionResult with descriptors in declaration order
    """
    try:
        data = parse_document(document)
    except DeclarationParseError as e:
        logger.warning(str(e))
        return _document_error(document.source_id, str(e))

    if not isinstance(data, dict):
        return _document_error(
            document.source_id,
            f"Unrecognized document layout in {document.source_id}: "
            f"expected a JSON object, got {_json_type(data)}",
        )

    servers = data.get(SERVERS_KEY)
    if servers is not None and not isinstance(servers, dict):
        return _document_error(
            document.source_id,
            f"Unrecognized document layout in {document.source_id}: "
            f"'{SERVERS_KEY}' must be an object, got {_json_type(servers)}",
        )
    if SERVERS_KEY not in data and document.shape == DocumentShape.STANDARD:
        return _document_error(
            document.source_id,
            f"Unrecognized document layout in {document.source_id}: "
            f"no '{SERVERS_KEY}' section",
        )

    result = ExtractionResult()
    _extract_server_map(servers or {}, document.source_id, result)

    if document.shape == DocumentShape.USER:
        projects = data.get(PROJECTS_KEY)
        if isinstance(projects, dict):
            for project_key, project in projects.items():
                if not isinstance(project, dict):
                    continue
                project_servers = project.get(SERVERS_KEY)
                if not isinstance(project_servers, dict):
                    continue
                _extract_server_map(
                    project_servers,
                    override_source(document.source_id, project_key),
                    result,
                )

    logger.debug(
        f"Extracted {len(result.services)} services from {document.source_id}"
    )
    return result


def _extract_server_map(
    servers: dict[str, Any],
    source: str,
    result: ExtractionResult,
) -> None:
    for name, entry in servers.items():
        if not isinstance(entry, dict):
            result.issues.append(ValidationIssue(
                service=name,
                severity=IssueSeverity.WARNING,
                kind=IssueKind.MALFORMED_ENTRY,
                message=f"Declaration for '{name}' is not an object; skipped",
                source=source,
            ))
            continue
        result.services.append(normalize_entry(name, entry, source))


def normalize_entry(name: str, entry: dict[str, Any], source: str) -> ServiceDescriptor:
    """Coerce one raw declaration entry into a ServiceDescriptor."""
    command = entry.get("command")
    transport = entry.get("type")

    raw_args = entry.get("args")
    args = [str(arg) for arg in raw_args] if isinstance(raw_args, list) else []

    raw_env = entry.get("env")
    env: dict[str, str] = {}
    if isinstance(raw_env, dict):
        for key, value in raw_env.items():
            env[str(key)] = "" if value is None else str(value)

    return ServiceDescriptor(
        name=name,
        command=command if isinstance(command, str) else "",
        args=args,
        env=env,
        transport=transport if isinstance(transport, str) else "",
        source=source,
    )


def _document_error(source_id: str, message: str) -> ExtractionResult:
    return ExtractionResult(issues=[
        ValidationIssue(
            service=DOCUMENT_SCOPE,
            severity=IssueSeverity.ERROR,
            kind=IssueKind.DOCUMENT_UNPARSEABLE,
            message=message,
            source=source_id,
        )
    ])


def _json_type(value: Any) -> str:
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if value is None:
        return "null"
    return type(value).__name__
