"""Newline-delimited JSON-RPC 2.0 framing for the discovery handshake."""

import json
import logging
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
INITIALIZED_NOTIFICATION = "notifications/initialized"


class RpcMethod(str, Enum):
    """Requests the prober issues; pending ids map to one of these."""

    INITIALIZE = "initialize"
    TOOLS_LIST = "tools/list"
    RESOURCES_LIST = "resources/list"
    PROMPTS_LIST = "prompts/list"


DISCOVERY_METHODS = (
    RpcMethod.TOOLS_LIST,
    RpcMethod.RESOURCES_LIST,
    RpcMethod.PROMPTS_LIST,
)


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize one message as a single newline-terminated line."""
    return (json.dumps(message, separators=(",", ":")) + "\n").encode("utf-8")


def build_request(
    request_id: int,
    method: RpcMethod,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": method.value,
        "params": params or {},
    }


def build_notification(method: str) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "method": method}


def initialize_params(
    protocol_version: str,
    client_name: str,
    client_version: str,
) -> dict[str, Any]:
    return {
        "protocolVersion": protocol_version,
        "capabilities": {},
        "clientInfo": {"name": client_name, "version": client_version},
    }


def error_message(error: Any) -> str:
    """Human-readable text for a JSON-RPC error object."""
    if isinstance(error, dict):
        message = error.get("message") or "unknown error"
        code = error.get("code")
        return f"{message} (code {code})" if code is not None else str(message)
    return str(error)


def as_response(message: Any) -> dict[str, Any] | None:
    """Return the message if it is a response to one of our requests.

    Server-initiated requests and notifications carry a `method` and are
    not answers to anything we sent.
    """
    if not isinstance(message, dict):
        return None
    if "id" not in message or "method" in message:
        return None
    if "result" not in message and "error" not in message:
        return None
    return message


class LineFramer:
    """Splits an unbounded byte stream into parsed JSON values.

    Bytes are buffered until a newline arrives; each complete line is
    decoded independently. Blank lines and lines that are not valid JSON
    are dropped, since servers may write diagnostic text to the same stream.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.dropped_lines = 0

    def feed(self, data: bytes) -> list[Any]:
        """Add a chunk and return every value completed by it, in order."""
        self._buffer.extend(data)
        messages: list[Any] = []
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            if not line.strip():
                continue
            try:
                messages.append(json.loads(line))
            except (UnicodeDecodeError, json.JSONDecodeError):
                self.dropped_lines += 1
                logger.debug(f"Dropping non-JSON output line: {line[:120]!r}")
        return messages

    @property
    def pending_bytes(self) -> int:
        """Bytes buffered without a terminating newline yet."""
        return len(self._buffer)
