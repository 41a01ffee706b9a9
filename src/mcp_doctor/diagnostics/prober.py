"""Live capability probing over stdio.

Spawns one declared server, performs the JSON-RPC initialize handshake,
then asks for its tools, resources and prompts. A deadline timer races the
conversation; whichever resolves the session's completion future first
decides the outcome. Partial results survive a timeout.

State flow:
    SPAWNED -> AWAITING_HANDSHAKE -> DISCOVERING -> FINISHED

Every path through `ProbeSession.run()` terminates the child process and
returns exactly one CapabilityProbeResult; misbehaving peers never raise.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from mcp_doctor.config import Settings, get_settings
from mcp_doctor.diagnostics.placeholders import expand_placeholders
from mcp_doctor.diagnostics.protocol import (
    DISCOVERY_METHODS,
    INITIALIZED_NOTIFICATION,
    LineFramer,
    RpcMethod,
    as_response,
    build_notification,
    build_request,
    encode_message,
    error_message,
    initialize_params,
)
from mcp_doctor.models.capability import (
    CapabilityFlags,
    CapabilityProbeResult,
    ProbeOutcome,
    PromptInfo,
    ResourceInfo,
    ServerIdentity,
    ToolInfo,
)
from mcp_doctor.models.descriptor import ServiceDescriptor

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
STDERR_TAIL_BYTES = 2048

TIMEOUT_ERROR = "Timeout waiting for server responses"

# Discovery method -> (result attribute, payload key, item model)
_DISCOVERY_SLOTS: dict[RpcMethod, tuple[str, str, type[BaseModel]]] = {
    RpcMethod.TOOLS_LIST: ("tools", "tools", ToolInfo),
    RpcMethod.RESOURCES_LIST: ("resources", "resources", ResourceInfo),
    RpcMethod.PROMPTS_LIST: ("prompts", "prompts", PromptInfo),
}


class ProbeState(str, Enum):
    """Non-terminal states of a probe session, plus FINISHED."""

    SPAWNED = "spawned"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    DISCOVERING = "discovering"
    FINISHED = "finished"


async def terminate_process(
    process: asyncio.subprocess.Process,
    grace_seconds: float,
) -> None:
    """Stop a child process: SIGTERM first, SIGKILL after the grace period."""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_seconds)
        return
    except asyncio.TimeoutError:
        logger.warning(
            f"Process {process.pid} ignored SIGTERM for {grace_seconds}s, killing"
        )
    try:
        process.kill()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        # Killed, but a grandchild may still hold the pipes open
        logger.warning(f"Process {process.pid} pipes still open after SIGKILL")


class ProbeSession:
    """State for one in-flight probe.

    Owns the child process and its three pipes. Inbound lines are matched
    to requests through `_pending`, a map from request id to the method it
    was issued for, so responses may arrive in any order.
    """

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        protocol_version: str = "2024-11-05",
        client_name: str = "mcp-doctor",
        client_version: str = "0.1.0",
        terminate_grace_seconds: float = 2.0,
    ) -> None:
        self.descriptor = descriptor
        self.protocol_version = protocol_version
        self.client_name = client_name
        self.client_version = client_version
        self.terminate_grace_seconds = terminate_grace_seconds

        self.result = CapabilityProbeResult()
        self.state = ProbeState.SPAWNED

        self._framer = LineFramer()
        self._pending: dict[Any, RpcMethod] = {}
        self._settled: set[RpcMethod] = set()
        self._next_id = 1
        self._process: asyncio.subprocess.Process | None = None
        self._done: asyncio.Future | None = None
        self._readers: list[asyncio.Task] = []
        self._stderr_tail = b""

    @property
    def finished(self) -> bool:
        return self.state == ProbeState.FINISHED

    async def run(self, timeout_ms: int) -> CapabilityProbeResult:
        """Drive the session to a terminal state and return the result."""
        started = time.monotonic()
        try:
            await self._run(timeout_ms)
        except Exception as e:
            logger.error(f"Unexpected error probing '{self.descriptor.name}': {e}")
            self._finish(ProbeOutcome.TRANSPORT_ERROR, f"Unexpected error: {e}")
        finally:
            await self._shutdown()
            self.result.probe_time_ms = int((time.monotonic() - started) * 1000)
        return self.result

    async def _run(self, timeout_ms: int) -> None:
        env = dict(os.environ)
        for key, value in self.descriptor.env.items():
            env[key] = expand_placeholders(value, os.environ)[0]

        command, unresolved = expand_placeholders(self.descriptor.command, env)
        if unresolved:
            self._finish(
                ProbeOutcome.TRANSPORT_ERROR,
                f"Command contains unresolved variables: {', '.join(unresolved)}",
            )
            return
        if not command.strip():
            self._finish(ProbeOutcome.TRANSPORT_ERROR, "No command to launch")
            return
        args = [expand_placeholders(arg, env)[0] for arg in self.descriptor.args]

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to launch '{self.descriptor.name}': {e}")
            self._finish(ProbeOutcome.TRANSPORT_ERROR, str(e))
            return

        loop = asyncio.get_running_loop()
        self.attach(process)
        self._readers = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._drain_stderr()),
        ]
        timer = loop.call_later(
            timeout_ms / 1000,
            self._finish,
            ProbeOutcome.TIMED_OUT,
            TIMEOUT_ERROR,
        )
        try:
            self._request(
                RpcMethod.INITIALIZE,
                initialize_params(
                    self.protocol_version,
                    self.client_name,
                    self.client_version,
                ),
            )
            await self._done
        finally:
            timer.cancel()

    def attach(self, process: asyncio.subprocess.Process) -> None:
        """Bind a spawned process; the handshake is awaited from here on."""
        self._process = process
        self._done = asyncio.get_running_loop().create_future()
        self.state = ProbeState.AWAITING_HANDSHAKE

    def feed(self, data: bytes) -> None:
        """Consume a chunk of the child's stdout."""
        for message in self._framer.feed(data):
            if self.finished:
                return
            self._handle_message(message)

    def _finish(self, outcome: ProbeOutcome, error: str | None = None) -> None:
        # First writer wins: later completions, exits or timer firings are no-ops
        if self.finished:
            return
        self.state = ProbeState.FINISHED
        self.result.outcome = outcome
        if self.result.error is None:
            self.result.error = error
        if self._done is not None and not self._done.done():
            self._done.set_result(outcome)

    # -- outbound ---------------------------------------------------------

    def _write(self, message: dict[str, Any]) -> None:
        if self._process is None or self._process.stdin is None:
            return
        try:
            self._process.stdin.write(encode_message(message))
        except (BrokenPipeError, ConnectionResetError) as e:
            # The reader sees EOF and reports the exit
            logger.debug(f"Write to '{self.descriptor.name}' failed: {e}")

    def _request(self, method: RpcMethod, params: dict[str, Any] | None = None) -> int:
        request_id = self._next_id
        self._next_id += 1
        self._pending[request_id] = method
        self._write(build_request(request_id, method, params))
        return request_id

    # -- inbound ----------------------------------------------------------

    def _handle_message(self, message: Any) -> None:
        response = as_response(message)
        if response is None:
            return
        request_id = response["id"]
        # JSON true would otherwise match id 1
        if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
            return
        method = self._pending.pop(request_id, None)
        if method is None:
            return

        if method == RpcMethod.INITIALIZE:
            self._on_initialize(response)
        else:
            self._on_discovery(method, response)

    def _on_initialize(self, response: dict[str, Any]) -> None:
        if "error" in response:
            self._finish(
                ProbeOutcome.HANDSHAKE_REJECTED,
                f"Handshake rejected: {error_message(response['error'])}",
            )
            return

        payload = response.get("result")
        if not isinstance(payload, dict):
            payload = {}

        server_info = payload.get("serverInfo")
        if isinstance(server_info, dict):
            try:
                self.result.server_info = ServerIdentity.model_validate(server_info)
            except ValidationError:
                logger.debug(f"Ignoring malformed serverInfo: {server_info!r}")
        self.result.capabilities = CapabilityFlags.from_payload(payload.get("capabilities"))

        self.state = ProbeState.DISCOVERING
        self._write(build_notification(INITIALIZED_NOTIFICATION))
        for method in DISCOVERY_METHODS:
            self._request(method)

    def _on_discovery(self, method: RpcMethod, response: dict[str, Any]) -> None:
        attribute, key, model = _DISCOVERY_SLOTS[method]

        if "error" in response:
            # One failing list call leaves its slot empty, the probe goes on
            logger.info(
                f"'{self.descriptor.name}' answered {method.value} with error: "
                f"{error_message(response['error'])}"
            )
        else:
            payload = response.get("result")
            raw_items = payload.get(key) if isinstance(payload, dict) else None
            setattr(self.result, attribute, _parse_items(raw_items, model))

        self._settled.add(method)
        if all(m in self._settled for m in DISCOVERY_METHODS):
            self._finish(ProbeOutcome.COMPLETE)

    async def _read_stdout(self) -> None:
        stdout = self._process.stdout
        try:
            while not self.finished:
                chunk = await stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                self.feed(chunk)
            if self.finished:
                return

            code = await self._process.wait()
            if self.state == ProbeState.DISCOVERING:
                error = (
                    f"Server exited with code {code} "
                    f"before discovery completed"
                )
            else:
                error = f"Server exited with code {code} before initialization"
            self._finish(ProbeOutcome.PREMATURE_EXIT, error)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error reading from '{self.descriptor.name}': {e}")
            self._finish(ProbeOutcome.TRANSPORT_ERROR, f"Read error: {e}")

    async def _drain_stderr(self) -> None:
        # Keeps the child from blocking on a full stderr pipe
        stderr = self._process.stderr
        if stderr is None:
            return
        while True:
            chunk = await stderr.read(READ_CHUNK_SIZE)
            if not chunk:
                return
            self._stderr_tail = (self._stderr_tail + chunk)[-STDERR_TAIL_BYTES:]

    async def _shutdown(self) -> None:
        for task in self._readers:
            task.cancel()
        if self._readers:
            await asyncio.gather(*self._readers, return_exceptions=True)

        process = self._process
        if process is None:
            return
        if process.stdin is not None:
            try:
                process.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                pass
        await terminate_process(process, self.terminate_grace_seconds)

        if self._framer.dropped_lines or self._framer.pending_bytes:
            logger.debug(
                f"'{self.descriptor.name}' stdout: {self._framer.dropped_lines} "
                f"non-JSON line(s) dropped, {self._framer.pending_bytes} "
                f"unterminated byte(s) discarded"
            )
        if self._stderr_tail:
            logger.debug(
                f"stderr of '{self.descriptor.name}': "
                f"{self._stderr_tail.decode('utf-8', errors='replace').strip()}"
            )


def _parse_items(raw_items: Any, model: type[BaseModel]) -> list:
    if not isinstance(raw_items, list):
        return []
    items = []
    for raw in raw_items:
        try:
            items.append(model.model_validate(raw))
        except ValidationError:
            logger.debug(f"Skipping malformed {model.__name__} entry: {raw!r}")
    return items


class CapabilityProber:
    """Probes declared servers one at a time.

    Holds only configuration; each `probe()` call gets its own session.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def probe(
        self,
        descriptor: ServiceDescriptor,
        timeout_ms: int | None = None,
    ) -> CapabilityProbeResult:
        """Spawn a server and enumerate its capabilities.

        Args:
            descriptor: The service to launch
            timeout_ms: Wall-clock deadline; defaults to settings.probe_timeout_ms

        Returns:
            CapabilityProbeResult; failures are reported in `error`
        """
        if timeout_ms is None:
            timeout_ms = self.settings.probe_timeout_ms

        logger.info(
            f"Probing '{descriptor.name}' ({descriptor.command}) "
            f"with {timeout_ms}ms deadline"
        )
        session = ProbeSession(
            descriptor,
            protocol_version=self.settings.protocol_version,
            client_name=self.settings.client_name,
            client_version=self.settings.client_version,
            terminate_grace_seconds=self.settings.terminate_grace_seconds,
        )
        result = await session.run(timeout_ms)

        if result.error:
            logger.warning(
                f"Probe of '{descriptor.name}' ended {result.outcome.value} "
                f"after {result.probe_time_ms}ms: {result.error}"
            )
        else:
            logger.info(
                f"Probe of '{descriptor.name}' complete in {result.probe_time_ms}ms: "
                f"{len(result.tools)} tools, {len(result.resources)} resources, "
                f"{len(result.prompts)} prompts"
            )
        return result
