"""JSON-RPC 2.0 wire-format models.

Pure data — no I/O, no business logic.  Server and client both import
these for serialisation only.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

# ── Standard error codes (JSON-RPC 2.0 §5.1) ────────────────────────
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602

# Reserved band for application-defined server errors.
SERVER_ERROR = -32000
SERVER_ERROR_MAX = -32099


class _Missing:
    """Marks a key that was absent, as opposed to present with ``null``."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def in_server_error_band(code: Any) -> bool:
    """True if *code* is an integer inside ``SERVER_ERROR_MAX..SERVER_ERROR``."""
    if isinstance(code, bool) or not isinstance(code, int):
        return False
    return SERVER_ERROR_MAX <= code <= SERVER_ERROR


# ── Errors raised by method handlers ─────────────────────────────────
class ApplicationError(Exception):
    """Raised by a method handler to pick the error code sent on the wire.

    Codes outside the reserved server-error band are ignored and the
    response falls back to ``SERVER_ERROR``.
    """

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        self.message = message
        self.code = code
        self.data = data
        super().__init__(message)

    @property
    def wire_code(self) -> int:
        return self.code if in_server_error_band(self.code) else SERVER_ERROR


# ── Models ───────────────────────────────────────────────────────────
@dataclass(slots=True)
class JsonRpcError:
    """JSON-RPC 2.0 error object."""

    code: int
    message: str | None = None
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code}
        if self.message is not None:
            d["message"] = self.message
        if self.data is not None:
            d["data"] = self.data
        return d


@dataclass(slots=True)
class JsonRpcRequest:
    """Outbound JSON-RPC 2.0 request.

    ``id`` is auto-generated if not supplied.  Use ``notification()`` for
    a call that carries no ``id`` at all.
    """

    method: str
    params: Any = MISSING
    id: Any = field(default_factory=lambda: uuid.uuid4().hex)
    jsonrpc: str = "2.0"

    @classmethod
    def notification(cls, method: str, params: Any = MISSING) -> "JsonRpcRequest":
        return cls(method=method, params=params, id=MISSING)

    @property
    def is_notification(self) -> bool:
        return self.id is MISSING

    # -- Convenience ---------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not MISSING:
            d["params"] = self.params
        if self.id is not MISSING:
            d["id"] = self.id
        return d


@dataclass(slots=True)
class JsonRpcResponse:
    """JSON-RPC 2.0 response.

    ``id`` stays ``MISSING`` when the request id could not be trusted; it
    is then left out of the serialised object rather than sent as null.
    """

    id: Any = MISSING
    result: Any = MISSING
    error: JsonRpcError | None = None
    jsonrpc: str = "2.0"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not MISSING:
            d["id"] = self.id
        if self.error is not None:
            d["error"] = self.error.to_dict()
        else:
            d["result"] = None if self.result is MISSING else self.result
        return d

    # -- Factories -----------------------------------------------------
    @classmethod
    def success(cls, req_id: Any, result: Any) -> "JsonRpcResponse":
        return cls(id=req_id, result=result)

    @classmethod
    def fail(
        cls, req_id: Any, code: int, message: str | None = None, data: Any = None
    ) -> "JsonRpcResponse":
        return cls(id=req_id, error=JsonRpcError(code=code, message=message, data=data))
