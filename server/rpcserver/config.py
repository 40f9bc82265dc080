"""Server configuration and observer hooks.

Both are validated when built, so a bad path or a non-callable hook
stops the server from being created rather than failing mid-request.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

log = logging.getLogger(__name__)

DEFAULT_PATH = "/"
DEFAULT_REALM = "Restricted"

_PATH_RE = re.compile(r"^[A-Za-z0-9\-./\]@$&()*+,;=`_:~?#!']+$")

ObserverFn = Callable[..., Any]


@dataclass(slots=True)
class ServerConfig:
    """Transport settings consulted by the request validator."""

    path: str = DEFAULT_PATH
    username: str | None = None
    password: str | None = None
    realm: str = DEFAULT_REALM

    def __post_init__(self) -> None:
        if not isinstance(self.path, str):
            raise TypeError("path must be a string")
        if not self.path.startswith("/"):
            raise ValueError('path must start with a "/" slash')
        if not _PATH_RE.match(self.path):
            raise ValueError("path contains invalid characters")

        if (self.username is None) != (self.password is None):
            raise ValueError("username and password must be set together")
        for name in ("username", "password"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise TypeError(f"{name} must be a string")

        if not isinstance(self.realm, str):
            raise TypeError("realm must be a string")
        if not self.realm or '"' in self.realm:
            raise ValueError("realm must be non-empty and may not contain quotes")

    @property
    def auth_enabled(self) -> bool:
        return self.username is not None

    def replace(self, **changes: Any) -> "ServerConfig":
        """Return a copy with *changes* applied (validated again)."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        """Build a config from ``RPC_PATH``, ``RPC_USERNAME``, ``RPC_PASSWORD``, ``RPC_REALM``."""
        env = os.environ if environ is None else environ
        return cls(
            path=env.get("RPC_PATH") or DEFAULT_PATH,
            username=env.get("RPC_USERNAME") or None,
            password=env.get("RPC_PASSWORD") or None,
            realm=env.get("RPC_REALM") or DEFAULT_REALM,
        )


@dataclass(slots=True)
class Observers:
    """Optional hooks fired by the dispatcher and the server.

    * ``on_request(request)``            — every parsed request object
    * ``on_request_error(exc, req_id)``  — a method handler raised
    * ``on_result(result, req_id)``      — a method handler returned
    * ``on_server_error(exc)``           — socket / serving failures
    """

    on_request: ObserverFn | None = None
    on_request_error: ObserverFn | None = None
    on_result: ObserverFn | None = None
    on_server_error: ObserverFn | None = None

    def __post_init__(self) -> None:
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if value is not None and not callable(value):
                raise TypeError(f"{f.name} must be a function")

    def replace(self, **changes: Any) -> "Observers":
        return dataclasses.replace(self, **changes)


async def fire(callback: ObserverFn | None, name: str, *args: Any) -> None:
    """Invoke an observer; a failing observer is logged, never propagated."""
    if callback is None:
        return
    try:
        rv = callback(*args)
        if inspect.isawaitable(rv):
            await rv
    except Exception:
        log.exception("%s observer failed", name)
