"""FastAPI routes for on-demand diagnostics."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mcp_doctor import __version__
from mcp_doctor.config import Settings, get_settings
from mcp_doctor.diagnostics.aggregator import DiagnosticAggregator, find_service
from mcp_doctor.diagnostics.locator import discover_documents
from mcp_doctor.models.descriptor import DeclarationDocument
from mcp_doctor.models.report import DiagnosticReport, ProbeRecord

logger = logging.getLogger(__name__)

router = APIRouter()

# Dependency injection
_aggregator: DiagnosticAggregator | None = None


def get_aggregator() -> DiagnosticAggregator:
    """Get or create aggregator instance."""
    global _aggregator
    if _aggregator is None:
        _aggregator = DiagnosticAggregator(settings=get_settings())
    return _aggregator


def get_documents(
    settings: Annotated[Settings, Depends(get_settings)],
) -> list[DeclarationDocument]:
    """Load declaration documents from the configured directories."""
    return discover_documents(
        project_dir=settings.project_dir,
        home_dir=settings.home_dir,
    )


@router.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@router.get("/diagnostics", response_model=DiagnosticReport)
async def diagnostics(
    aggregator: Annotated[DiagnosticAggregator, Depends(get_aggregator)],
    documents: Annotated[list[DeclarationDocument], Depends(get_documents)],
    probe: bool = False,
    timeout_ms: Annotated[int | None, Query(gt=0)] = None,
) -> DiagnosticReport:
    """Validate every declared server, optionally probing each valid one.

    Probes run one at a time, so with `probe=true` the response takes up to
    `timeout_ms` per server.
    """
    logger.info(f"Diagnostics requested for {len(documents)} config(s), probe={probe}")
    return await aggregator.diagnose(documents, probe=probe, timeout_ms=timeout_ms)


@router.get("/diagnostics/servers/{name}/capabilities", response_model=ProbeRecord)
async def server_capabilities(
    name: str,
    aggregator: Annotated[DiagnosticAggregator, Depends(get_aggregator)],
    documents: Annotated[list[DeclarationDocument], Depends(get_documents)],
    timeout_ms: Annotated[int | None, Query(gt=0)] = None,
) -> ProbeRecord:
    """Probe a single declared server by name.

    Raises:
        HTTPException: 404 if no config declares the server
    """
    report = await aggregator.diagnose(documents)
    service = find_service(report, name)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Server '{name}' not found",
        )
    result = await aggregator.prober.probe(service, timeout_ms=timeout_ms)
    return ProbeRecord(service=service, result=result)
