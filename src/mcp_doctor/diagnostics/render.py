"""Plain-text rendering of a DiagnosticReport.

JSON output needs no renderer: use ``report.model_dump_json()``.
"""

from mcp_doctor.models.report import DiagnosticReport
from mcp_doctor.models.validation import IssueSeverity

_SEVERITY_ICONS = {
    IssueSeverity.ERROR: "✗",
    IssueSeverity.WARNING: "⚠",
    IssueSeverity.INFO: "ℹ",
}


def format_report(report: DiagnosticReport) -> str:
    """Render a report for terminal output."""
    lines: list[str] = [
        "MCP SERVER DIAGNOSTICS",
        "=" * 46,
        "",
        f"Total servers: {report.total_servers}",
        f"Healthy: {report.healthy_servers}",
        f"Config files: {len(report.configs)}",
        "",
    ]

    for config in report.configs:
        lines.append(f"Config: {config.source_id}")
        lines.append(f"  Servers: {len(config.services)}")
        lines.append(f"  Valid: {'✓' if config.valid else '✗'}")

        for service in config.services:
            lines.append("")
            lines.append(f"  [{service.name}]")
            lines.append(f"    Command: {service.command}")
            if service.args:
                lines.append(f"    Args: {' '.join(service.args)}")
            if service.source != config.source_id:
                lines.append(f"    Source: {service.source}")

        if config.issues:
            lines.append("")
            lines.append("  Issues:")
            for issue in config.issues:
                icon = _SEVERITY_ICONS[issue.severity]
                lines.append(f"    {icon} [{issue.service}] {issue.message}")
                if issue.fix:
                    lines.append(f"      Fix: {issue.fix}")
        lines.append("")

    if report.probe_results is not None:
        lines.append("Capability Probes:")
        for record in report.probe_results:
            result = record.result
            status = "✓" if result.ok else "✗"
            line = (
                f"  {status} {record.service.name}: "
                f"{len(result.tools)} tools, {len(result.resources)} resources, "
                f"{len(result.prompts)} prompts ({result.probe_time_ms}ms)"
            )
            if result.error:
                line += f" - {result.error}"
            lines.append(line)
            if result.server_info and result.server_info.name:
                version = result.server_info.version or "?"
                lines.append(f"      Server: {result.server_info.name} {version}")
        lines.append("")

    if report.duplicate_servers:
        lines.append("Duplicate Server Names:")
        for duplicate in report.duplicate_servers:
            lines.append(
                f"  {duplicate.name}: found in {len(duplicate.locations)} configs"
            )
            for location in duplicate.locations:
                lines.append(f"    - {location}")
        lines.append("")

    if report.recommendations:
        lines.append("Recommendations:")
        for recommendation in report.recommendations:
            lines.append(f"  • {recommendation}")

    return "\n".join(lines) + "\n"
