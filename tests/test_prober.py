"""Tests for the capability prober.

Session-level tests drive ProbeSession with a mocked process so the state
machine can be checked message by message. Integration tests spawn
tests/fake_server.py as a real child process.
"""

import json
import logging
import sys
import time
from unittest.mock import MagicMock

import pytest

from mcp_doctor.config import Settings
from mcp_doctor.diagnostics.prober import (
    TIMEOUT_ERROR,
    CapabilityProber,
    ProbeSession,
    ProbeState,
)
from mcp_doctor.diagnostics.protocol import RpcMethod
from mcp_doctor.models.capability import CapabilityFlags, ProbeOutcome
from mcp_doctor.models.descriptor import ServiceDescriptor


def _descriptor(**kwargs) -> ServiceDescriptor:
    kwargs.setdefault("name", "svc")
    kwargs.setdefault("command", "server")
    kwargs.setdefault("source", "test.json")
    return ServiceDescriptor(**kwargs)


def _line(message: dict) -> bytes:
    return (json.dumps(message) + "\n").encode()


def _written(process: MagicMock) -> list[dict]:
    return [json.loads(c.args[0]) for c in process.stdin.write.call_args_list]


def _attached_session() -> tuple[ProbeSession, MagicMock]:
    session = ProbeSession(_descriptor())
    process = MagicMock()
    session.attach(process)
    session._request(RpcMethod.INITIALIZE, {"protocolVersion": "2024-11-05"})
    return session, process


INIT_OK = {
    "jsonrpc": "2.0",
    "id": 1,
    "result": {
        "protocolVersion": "2024-11-05",
        "serverInfo": {"name": "demo", "version": "2.1.0"},
        "capabilities": {"tools": {"listChanged": True}, "prompts": {}},
    },
}


def _discovery_ids(process: MagicMock) -> dict[str, int]:
    return {m["method"]: m["id"] for m in _written(process) if "id" in m and m["method"] != "initialize"}


# ---------------------------------------------------------------------------
# TestProbeSessionHandshake
# ---------------------------------------------------------------------------

class TestProbeSessionHandshake:
    """Handshake ordering and outcome."""

    @pytest.mark.asyncio
    async def test_initialize_is_first_request_with_id_1(self):
        session, process = _attached_session()

        written = _written(process)
        assert written == [{
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {"protocolVersion": "2024-11-05"},
        }]
        assert session.state == ProbeState.AWAITING_HANDSHAKE

    @pytest.mark.asyncio
    async def test_successful_handshake_sends_notification_then_discovery(self):
        session, process = _attached_session()
        session.feed(_line(INIT_OK))

        written = _written(process)
        assert [m["method"] for m in written] == [
            "initialize",
            "notifications/initialized",
            "tools/list",
            "resources/list",
            "prompts/list",
        ]
        assert "id" not in written[1]
        ids = [m["id"] for m in written if "id" in m]
        assert len(set(ids)) == len(ids)
        assert session.state == ProbeState.DISCOVERING

    @pytest.mark.asyncio
    async def test_records_identity_and_flags(self):
        session, _ = _attached_session()
        session.feed(_line(INIT_OK))

        assert session.result.server_info.name == "demo"
        assert session.result.server_info.version == "2.1.0"
        assert session.result.capabilities == CapabilityFlags(tools=True, prompts=True)

    @pytest.mark.asyncio
    async def test_handshake_error_rejects(self):
        session, process = _attached_session()
        session.feed(_line({
            "jsonrpc": "2.0",
            "id": 1,
            "error": {"code": -32602, "message": "unsupported protocol version"},
        }))

        assert session.finished
        assert session.result.outcome == ProbeOutcome.HANDSHAKE_REJECTED
        assert "Handshake rejected" in session.result.error
        assert "unsupported protocol version" in session.result.error
        assert len(_written(process)) == 1

    @pytest.mark.asyncio
    async def test_ignores_unrelated_messages(self):
        session, process = _attached_session()
        session.feed(
            _line({"jsonrpc": "2.0", "method": "notifications/message", "params": {"level": "info"}})
            + _line({"jsonrpc": "2.0", "id": 1, "method": "roots/list"})
            + _line({"jsonrpc": "2.0", "id": 99, "result": {}})
        )

        assert session.state == ProbeState.AWAITING_HANDSHAKE
        assert len(_written(process)) == 1

    @pytest.mark.asyncio
    async def test_boolean_id_does_not_match_initialize(self):
        session, process = _attached_session()
        session.feed(_line({"jsonrpc": "2.0", "id": True, "result": {"serverInfo": {"name": "impostor"}}}))

        assert session.state == ProbeState.AWAITING_HANDSHAKE
        assert session.result.server_info is None
        assert len(_written(process)) == 1

        session.feed(_line(INIT_OK))
        assert session.state == ProbeState.DISCOVERING
        assert session.result.server_info.name == "demo"


# ---------------------------------------------------------------------------
# TestProbeSessionDiscovery
# ---------------------------------------------------------------------------

class TestProbeSessionDiscovery:
    """Discovery routing by pending id."""

    @pytest.mark.asyncio
    async def test_out_of_order_responses_complete_probe(self):
        session, process = _attached_session()
        session.feed(_line(INIT_OK))
        ids = _discovery_ids(process)

        session.feed(_line({"jsonrpc": "2.0", "id": ids["prompts/list"], "result": {"prompts": [{"name": "p"}]}}))
        session.feed(_line({"jsonrpc": "2.0", "id": ids["resources/list"], "result": {
            "resources": [{"uri": "file:///a", "mimeType": "text/plain"}]
        }}))
        assert not session.finished
        session.feed(_line({"jsonrpc": "2.0", "id": ids["tools/list"], "result": {
            "tools": [{"name": "echo", "inputSchema": {"type": "object"}}]
        }}))

        assert session.finished
        assert session.result.outcome == ProbeOutcome.COMPLETE
        assert session.result.error is None
        assert session.result.tools[0].name == "echo"
        assert session.result.tools[0].input_schema == {"type": "object"}
        assert session.result.resources[0].mime_type == "text/plain"
        assert session.result.prompts[0].name == "p"
        assert session._done.result() == ProbeOutcome.COMPLETE

    @pytest.mark.asyncio
    async def test_method_error_settles_with_empty_slot(self):
        session, process = _attached_session()
        session.feed(_line(INIT_OK))
        ids = _discovery_ids(process)

        session.feed(_line({"jsonrpc": "2.0", "id": ids["tools/list"], "result": {"tools": [{"name": "t"}]}}))
        session.feed(_line({"jsonrpc": "2.0", "id": ids["resources/list"], "error": {
            "code": -32601, "message": "Method not found"
        }}))
        session.feed(_line({"jsonrpc": "2.0", "id": ids["prompts/list"], "error": {
            "code": -32601, "message": "Method not found"
        }}))

        assert session.result.outcome == ProbeOutcome.COMPLETE
        assert session.result.error is None
        assert len(session.result.tools) == 1
        assert session.result.resources == []
        assert session.result.prompts == []

    @pytest.mark.asyncio
    async def test_malformed_items_dropped(self):
        session, process = _attached_session()
        session.feed(_line(INIT_OK))
        ids = _discovery_ids(process)

        session.feed(_line({"jsonrpc": "2.0", "id": ids["tools/list"], "result": {
            "tools": [{"name": "ok"}, {"description": "no name"}, "junk"]
        }}))

        assert [t.name for t in session.result.tools] == ["ok"]

    @pytest.mark.asyncio
    async def test_unparseable_line_does_not_change_result(self):
        """Dropping a garbage line between two valid lines is invisible."""
        clean_session, clean_process = _attached_session()
        noisy_session, noisy_process = _attached_session()

        def stream(process, noise: bytes) -> list[bytes]:
            ids = _discovery_ids(process)
            return [
                _line({"jsonrpc": "2.0", "id": ids["tools/list"], "result": {"tools": [{"name": "a"}]}}),
                noise,
                _line({"jsonrpc": "2.0", "id": ids["resources/list"], "result": {"resources": []}}),
                _line({"jsonrpc": "2.0", "id": ids["prompts/list"], "result": {"prompts": []}}),
            ]

        clean_session.feed(_line(INIT_OK))
        noisy_session.feed(_line(INIT_OK))
        for chunk in stream(clean_process, b""):
            clean_session.feed(chunk)
        for chunk in stream(noisy_process, b"Listening on stdio {oops\n"):
            noisy_session.feed(chunk)

        assert noisy_session.result.model_dump() == clean_session.result.model_dump()
        assert noisy_session.result.outcome == ProbeOutcome.COMPLETE

    @pytest.mark.asyncio
    async def test_first_writer_wins(self):
        session, _ = _attached_session()
        session._finish(ProbeOutcome.TIMED_OUT, TIMEOUT_ERROR)
        session._finish(ProbeOutcome.PREMATURE_EXIT, "exited")
        session.feed(_line(INIT_OK))

        assert session.result.outcome == ProbeOutcome.TIMED_OUT
        assert session.result.error == TIMEOUT_ERROR
        assert session.result.server_info is None

    @pytest.mark.asyncio
    async def test_shutdown_logs_dropped_output(self, caplog):
        session, process = _attached_session()
        process.returncode = 0
        session.feed(b"Server starting...\n" + b'{"jsonrpc": "2.0", "id"')

        with caplog.at_level(logging.DEBUG, logger="mcp_doctor.diagnostics.prober"):
            await session._shutdown()

        assert "1 non-JSON line(s) dropped" in caplog.text
        assert "23 unterminated byte(s) discarded" in caplog.text
        process.stdin.close.assert_called_once()


# ---------------------------------------------------------------------------
# TestCapabilityProber (real child processes)
# ---------------------------------------------------------------------------

@pytest.fixture
def prober() -> CapabilityProber:
    return CapabilityProber(Settings(terminate_grace_seconds=1.0))


class TestCapabilityProber:
    """End-to-end probes against tests/fake_server.py."""

    @pytest.mark.asyncio
    async def test_well_behaved_server_with_empty_lists(self, prober, fake_server):
        result = await prober.probe(fake_server("empty"), timeout_ms=10000)

        assert result.error is None
        assert result.outcome == ProbeOutcome.COMPLETE
        assert result.tools == []
        assert result.resources == []
        assert result.prompts == []
        assert result.server_info.name == "fake-server"
        assert result.capabilities.tools is True
        assert result.capabilities.resources is True
        assert result.capabilities.prompts is None

    @pytest.mark.asyncio
    async def test_full_discovery(self, prober, fake_server):
        result = await prober.probe(fake_server("ok"), timeout_ms=10000)

        assert result.error is None
        assert [t.name for t in result.tools] == ["echo"]
        assert result.tools[0].input_schema["type"] == "object"
        assert result.resources[0].uri == "file:///notes.txt"
        assert result.prompts[0].arguments[0].name == "topic"
        assert result.probe_time_ms >= 0

    @pytest.mark.asyncio
    async def test_immediate_exit(self, prober, fake_server):
        result = await prober.probe(fake_server("exit"), timeout_ms=10000)

        assert result.outcome == ProbeOutcome.PREMATURE_EXIT
        assert "before initialization" in result.error
        assert "code 3" in result.error
        assert result.tools == []
        assert result.resources == []
        assert result.prompts == []

    @pytest.mark.asyncio
    async def test_exit_after_handshake(self, prober, fake_server):
        result = await prober.probe(fake_server("exit_after_init"), timeout_ms=10000)

        assert result.outcome == ProbeOutcome.PREMATURE_EXIT
        assert "before discovery completed" in result.error
        assert result.server_info.name == "fake-server"

    @pytest.mark.asyncio
    async def test_silent_server_times_out_after_deadline(self, prober, fake_server):
        started = time.monotonic()
        result = await prober.probe(fake_server("silent"), timeout_ms=500)
        elapsed = time.monotonic() - started

        assert result.outcome == ProbeOutcome.TIMED_OUT
        assert result.error == TIMEOUT_ERROR
        assert result.probe_time_ms >= 500
        assert elapsed >= 0.5

    @pytest.mark.asyncio
    async def test_timeout_preserves_partial_results(self, prober, fake_server):
        result = await prober.probe(fake_server("partial"), timeout_ms=1500)

        assert result.outcome == ProbeOutcome.TIMED_OUT
        assert result.error == TIMEOUT_ERROR
        assert [t.name for t in result.tools] == ["echo"]
        assert result.resources == []
        assert result.prompts == []

    @pytest.mark.asyncio
    async def test_noisy_stdout_matches_clean(self, prober, fake_server):
        clean = await prober.probe(fake_server("ok"), timeout_ms=10000)
        noisy = await prober.probe(fake_server("noisy"), timeout_ms=10000)

        assert noisy.error is None
        assert noisy.tools == clean.tools
        assert noisy.resources == clean.resources
        assert noisy.prompts == clean.prompts

    @pytest.mark.asyncio
    async def test_reversed_answers(self, prober, fake_server):
        result = await prober.probe(fake_server("reverse"), timeout_ms=10000)

        assert result.error is None
        assert len(result.tools) == 1
        assert len(result.resources) == 1
        assert len(result.prompts) == 1

    @pytest.mark.asyncio
    async def test_split_writes(self, prober, fake_server):
        result = await prober.probe(fake_server("split"), timeout_ms=10000)
        assert result.error is None
        assert len(result.tools) == 1

    @pytest.mark.asyncio
    async def test_method_error(self, prober, fake_server):
        result = await prober.probe(fake_server("method_error"), timeout_ms=10000)

        assert result.error is None
        assert len(result.tools) == 1
        assert result.prompts == []

    @pytest.mark.asyncio
    async def test_handshake_rejected(self, prober, fake_server):
        result = await prober.probe(fake_server("reject"), timeout_ms=10000)

        assert result.outcome == ProbeOutcome.HANDSHAKE_REJECTED
        assert "Handshake rejected" in result.error

    @pytest.mark.asyncio
    async def test_spawn_failure(self, prober):
        descriptor = _descriptor(command="/nonexistent/mcp-server-xyz")
        result = await prober.probe(descriptor, timeout_ms=1000)

        assert result.outcome == ProbeOutcome.TRANSPORT_ERROR
        assert result.error
        assert result.tools == []

    @pytest.mark.asyncio
    async def test_unresolved_command_placeholder(self, prober, monkeypatch):
        monkeypatch.delenv("MCP_DOCTOR_TEST_UNSET", raising=False)
        descriptor = _descriptor(command="${MCP_DOCTOR_TEST_UNSET}/server")
        result = await prober.probe(descriptor, timeout_ms=1000)

        assert result.outcome == ProbeOutcome.TRANSPORT_ERROR
        assert "unresolved variables" in result.error
        assert "${MCP_DOCTOR_TEST_UNSET}" in result.error

    @pytest.mark.asyncio
    async def test_placeholders_substituted_before_launch(self, prober, fake_server, monkeypatch):
        monkeypatch.setenv("PROBE_TEST_TOKEN", "9.9.9")
        monkeypatch.setenv("PROBE_TEST_PYTHON", sys.executable)
        descriptor = fake_server("env", env={"FAKE_SERVER_TOKEN": "${PROBE_TEST_TOKEN}"})
        descriptor = descriptor.model_copy(update={"command": "${PROBE_TEST_PYTHON}"})

        result = await prober.probe(descriptor, timeout_ms=10000)

        assert result.error is None
        assert result.server_info.version == "9.9.9"

    @pytest.mark.asyncio
    async def test_default_timeout_from_settings(self, fake_server):
        prober = CapabilityProber(Settings(probe_timeout_ms=300, terminate_grace_seconds=1.0))
        result = await prober.probe(fake_server("silent"))

        assert result.outcome == ProbeOutcome.TIMED_OUT
        assert result.probe_time_ms >= 300

    @pytest.mark.asyncio
    async def test_process_terminated_on_every_path(self, prober, fake_server, monkeypatch):
        spawned = []
        original = ProbeSession.attach

        def _track(self, process):
            spawned.append(process)
            original(self, process)

        monkeypatch.setattr(ProbeSession, "attach", _track)

        for mode in ("ok", "exit", "silent", "reject", "partial"):
            await prober.probe(fake_server(mode), timeout_ms=500)

        assert len(spawned) == 5
        assert all(process.returncode is not None for process in spawned)
