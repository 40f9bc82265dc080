"""Method registry and JSON-RPC 2.0 dispatch.

``Registry`` maps method names to callables.  ``Dispatcher`` turns a raw
request body into the JSON payload to send back (or ``None`` when no
body should be sent), validating each call on the way.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Callable, Mapping

import anyio
from rpcwire.jsonrpc import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    MISSING,
    PARSE_ERROR,
    SERVER_ERROR,
    ApplicationError,
    JsonRpcResponse,
)

from rpcserver.config import Observers, fire

log = logging.getLogger(__name__)

# Type alias for an RPC handler: (params) -> result, sync or async
HandlerFn = Callable[[Any], Any]

RESERVED_PREFIX = "rpc."
UNENCODABLE_RESULT_MSG = "Result is not JSON serializable"


class Registry:
    """A simple method → handler mapping.

    Usage::

        registry = Registry()

        @registry.handler("echo")
        async def echo(params):
            return params
    """

    def __init__(self, methods: Mapping[str, HandlerFn] | None = None) -> None:
        self._handlers: dict[str, HandlerFn] = {}
        if methods is not None:
            if not isinstance(methods, Mapping):
                raise TypeError("methods must be a mapping of names to functions")
            for name, fn in methods.items():
                self.set(name, fn)

    # -- Registration --------------------------------------------------
    def set(self, name: str, fn: HandlerFn) -> None:
        """Register *fn* under *name*, replacing any previous handler."""
        if not isinstance(name, str):
            raise TypeError("method name must be a string")
        if not callable(fn):
            raise TypeError("method is not a function")
        if name in self._handlers:
            log.warning("overwriting handler for %r", name)
        self._handlers[name] = fn
        log.debug("registered handler %r → %s", name, getattr(fn, "__qualname__", fn))

    def handler(self, name: str) -> Callable[[HandlerFn], HandlerFn]:
        """Decorator that registers *fn* under *name*."""

        def decorator(fn: HandlerFn) -> HandlerFn:
            self.set(name, fn)
            return fn

        return decorator

    # -- Lookup --------------------------------------------------------
    def get(self, name: str) -> HandlerFn | None:
        return self._handlers.get(name)

    @property
    def methods(self) -> list[str]:
        return list(self._handlers.keys())

    def is_registered(self, name: str) -> bool:
        return name in self._handlers


def _valid_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (str, int, float))


def _error_message(exc: BaseException) -> str:
    return str(exc) or repr(exc)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON literal: {name}")


def _encodable(value: Any) -> bool:
    """Whether *value* survives the same encoding JSONResponse applies."""
    try:
        json.dumps(value, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError, RecursionError):
        return False
    return True


class Dispatcher:
    """Validates and executes single or batched JSON-RPC calls."""

    def __init__(self, registry: Registry, observers: Observers | None = None) -> None:
        self.registry = registry
        self.observers = observers or Observers()

    # -- Body level ----------------------------------------------------
    async def dispatch(self, body: bytes) -> Any:
        """Parse *body* and run it.

        Returns the JSON-serialisable response payload, or ``None`` when
        nothing should be sent back (notifications, empty batch).
        """
        try:
            payload = json.loads(body, parse_constant=_reject_constant)
        except (ValueError, RecursionError) as exc:
            log.info("parse error: %s", exc)
            return JsonRpcResponse.fail(None, PARSE_ERROR, str(exc)).to_dict()

        if isinstance(payload, list):
            if not payload:
                return None
            responses = await self.process_batch(payload)
            return [r.to_dict() for r in responses] or None

        response = await self.process_request(payload)
        return response.to_dict() if response is not None else None

    async def process_batch(self, items: list[Any]) -> list[JsonRpcResponse]:
        """Run every element concurrently; keep input order, drop notifications."""
        slots: list[JsonRpcResponse | None] = [None] * len(items)

        async def _run(index: int, raw: Any) -> None:
            slots[index] = await self.process_request(raw)

        async with anyio.create_task_group() as tg:
            for index, raw in enumerate(items):
                tg.start_soon(_run, index, raw)

        return [r for r in slots if r is not None]

    # -- Request level -------------------------------------------------
    async def process_request(self, raw: Any) -> JsonRpcResponse | None:
        """Validate and invoke one call.  ``None`` means a notification."""
        await self._observe("on_request", raw)

        if not isinstance(raw, dict):
            return JsonRpcResponse.fail(MISSING, INVALID_REQUEST, "Invalid request")

        req_id = raw.get("id", MISSING)
        if req_id is not MISSING and req_id is not None and not _valid_id(req_id):
            return JsonRpcResponse.fail(MISSING, INVALID_REQUEST, "Invalid id")

        if raw.get("jsonrpc") != "2.0":
            return JsonRpcResponse.fail(req_id, INVALID_REQUEST, "Invalid jsonrpc value")

        is_notification = req_id is MISSING
        method = raw.get("method")
        params = raw.get("params")

        handler = self._resolve(method)
        if handler is None:
            response = JsonRpcResponse.fail(req_id, METHOD_NOT_FOUND)
        elif params is not None and not isinstance(params, (dict, list)):
            response = JsonRpcResponse.fail(req_id, INVALID_PARAMS)
        else:
            log.debug("rpc ← %s(id=%s)", method, None if is_notification else req_id)
            response = await self._invoke(handler, method, params, req_id)

        if is_notification:
            return None
        return response

    def _resolve(self, method: Any) -> HandlerFn | None:
        if not isinstance(method, str) or not method or method.startswith(RESERVED_PREFIX):
            return None
        return self.registry.get(method)

    async def _invoke(
        self, handler: HandlerFn, method: str, params: Any, req_id: Any
    ) -> JsonRpcResponse:
        observed_id = None if req_id is MISSING else req_id
        try:
            result = handler(params)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            log.exception("handler error for %s", method)
            await self._observe("on_request_error", exc, observed_id)
            if isinstance(exc, ApplicationError):
                data = exc.data if _encodable(exc.data) else None
                return JsonRpcResponse.fail(req_id, exc.wire_code, _error_message(exc), data)
            return JsonRpcResponse.fail(req_id, SERVER_ERROR, _error_message(exc))

        if not _encodable(result):
            log.error("result of %s is not JSON serializable: %r", method, result)
            return JsonRpcResponse.fail(req_id, SERVER_ERROR, UNENCODABLE_RESULT_MSG)

        await self._observe("on_result", result, observed_id)
        return JsonRpcResponse.success(req_id, result)

    async def _observe(self, name: str, *args: Any) -> None:
        await fire(getattr(self.observers, name), name, *args)
