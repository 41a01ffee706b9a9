"""Diagnostic aggregation across declaration sources.

Validates every source, detects service names declared in more than one
source, optionally probes each valid service, and summarizes the result
as a DiagnosticReport.
"""

import logging
from collections.abc import Sequence

from mcp_doctor.config import Settings, get_settings
from mcp_doctor.diagnostics.prober import CapabilityProber
from mcp_doctor.diagnostics.validator import validate_document
from mcp_doctor.models.descriptor import DeclarationDocument, ServiceDescriptor
from mcp_doctor.models.report import DiagnosticReport, DuplicateService, ProbeRecord
from mcp_doctor.models.validation import ValidationResult

logger = logging.getLogger(__name__)


def find_duplicates(configs: Sequence[ValidationResult]) -> list[DuplicateService]:
    """Service names declared by more than one distinct source.

    Locations list every declaring source, in source then declaration order.
    """
    locations: dict[str, list[str]] = {}
    for config in configs:
        for service in config.services:
            locations.setdefault(service.name, []).append(service.source)

    return [
        DuplicateService(name=name, locations=sources)
        for name, sources in locations.items()
        if len(set(sources)) > 1
    ]


def count_unhealthy(configs: Sequence[ValidationResult]) -> int:
    """Number of descriptors named by at least one error-severity issue."""
    return sum(
        1
        for config in configs
        for service in config.services
        if config.has_error_for(service)
    )


def find_service(report: DiagnosticReport, name: str) -> ServiceDescriptor | None:
    """First descriptor with the given name, in source order."""
    for service in report.services:
        if service.name == name:
            return service
    return None


def build_recommendations(
    duplicates: Sequence[DuplicateService],
    unhealthy: int,
    total: int,
    probe_results: Sequence[ProbeRecord] | None,
) -> list[str]:
    recommendations: list[str] = []
    if duplicates:
        recommendations.append(
            f"Found {len(duplicates)} duplicate server name(s) across configs"
        )
    if unhealthy:
        recommendations.append(f"{unhealthy} server(s) have configuration errors")
    if total == 0:
        recommendations.append("No MCP servers configured")
    if probe_results:
        failed = sum(1 for record in probe_results if record.result.error)
        if failed:
            recommendations.append(f"{failed} server(s) failed capability probing")
    return recommendations


class DiagnosticAggregator:
    """Runs validation (and optionally probing) over a set of sources.

    Probes run strictly one after another so that at most one child process
    is alive at a time; total latency grows linearly with service count.
    """

    def __init__(
        self,
        prober: CapabilityProber | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.prober = prober or CapabilityProber(self.settings)

    async def diagnose(
        self,
        documents: Sequence[DeclarationDocument],
        probe: bool = False,
        timeout_ms: int | None = None,
    ) -> DiagnosticReport:
        """Validate all documents and build a report.

        Args:
            documents: Declaration documents, in the order to report them
            probe: Whether to launch and probe each valid service
            timeout_ms: Per-probe deadline; defaults to settings.probe_timeout_ms

        Returns:
            DiagnosticReport (always produced, even when nothing is valid)
        """
        configs = [validate_document(document) for document in documents]

        duplicates = find_duplicates(configs)
        total = sum(len(config.services) for config in configs)
        unhealthy = count_unhealthy(configs)

        probe_results: list[ProbeRecord] | None = None
        if probe:
            probe_results = await self._probe_valid(configs, timeout_ms)

        report = DiagnosticReport(
            configs=configs,
            probe_results=probe_results,
            duplicate_servers=duplicates,
            total_servers=total,
            healthy_servers=total - unhealthy,
            recommendations=build_recommendations(
                duplicates, unhealthy, total, probe_results
            ),
        )
        logger.info(
            f"Diagnosed {len(configs)} config(s): {report.healthy_servers}/"
            f"{report.total_servers} servers healthy, "
            f"{len(duplicates)} duplicate name(s)"
        )
        return report

    async def _probe_valid(
        self,
        configs: Sequence[ValidationResult],
        timeout_ms: int | None,
    ) -> list[ProbeRecord]:
        records: list[ProbeRecord] = []
        for config in configs:
            for service in config.services:
                if config.has_error_for(service):
                    logger.debug(f"Skipping probe of invalid service '{service.name}'")
                    continue
                result = await self.prober.probe(service, timeout_ms=timeout_ms)
                records.append(ProbeRecord(service=service, result=result))
        return records
