"""Global test configuration for MCP Doctor."""

import os
import sys
from pathlib import Path

import pytest

from mcp_doctor.config import get_settings
from mcp_doctor.models.descriptor import ServiceDescriptor

FAKE_SERVER = Path(__file__).parent / "fake_server.py"


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Keep MCP_DOCTOR_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("MCP_DOCTOR_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_server():
    """Factory for descriptors that launch tests/fake_server.py in a given mode."""

    def _make(
        mode: str,
        name: str = "fake",
        source: str = "test.json",
        env: dict[str, str] | None = None,
    ) -> ServiceDescriptor:
        return ServiceDescriptor(
            name=name,
            command=sys.executable,
            args=[str(FAKE_SERVER), mode],
            env=env or {},
            transport="stdio",
            source=source,
        )

    return _make
