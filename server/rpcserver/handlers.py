"""Example RPC handlers.

All handlers are registered on the module-level ``registry`` which the
CLI serves and the tests reuse.
"""

from __future__ import annotations

import logging
from typing import Any

import anyio
from rpcwire.jsonrpc import ApplicationError

from rpcserver.dispatcher import Registry

log = logging.getLogger(__name__)

registry = Registry()


@registry.handler("sum")
def sum_numbers(params: Any) -> float:
    """Add up an array of numbers."""
    if not isinstance(params, list):
        raise ApplicationError("parameters must be an array of numbers")
    total = 0
    for value in params:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ApplicationError("parameters must be an array of numbers")
        total += value
    return total


@registry.handler("echo")
async def echo(params: Any) -> Any:
    """Return params unchanged."""
    return params


@registry.handler("wait")
async def wait(params: Any) -> bool:
    """Sleep for ``params["ms"]`` milliseconds."""
    ms = params.get("ms", 0) if isinstance(params, dict) else 0
    await anyio.sleep(ms / 1000)
    return True


@registry.handler("fail")
def fail(params: Any) -> None:
    """Raise an application error, optionally with a chosen code."""
    params = params if isinstance(params, dict) else {}
    raise ApplicationError(params.get("message", "failed"), code=params.get("code"))
