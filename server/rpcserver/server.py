"""HTTP JSON-RPC 2.0 server — Starlette ASGI app plus uvicorn lifecycle.

A single configurable path accepts POSTed JSON-RPC calls::

    server = RpcServer({"sum": sum_numbers}, path="/rpc")
    port = await server.listen(8100, "127.0.0.1")
    ...
    await server.close()

``server.app`` is a plain ASGI app and can be mounted or tested without
ever calling ``listen``.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Mapping

import uvicorn
from rpcwire import jsonrpc
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from rpcserver.config import DEFAULT_PATH, DEFAULT_REALM, Observers, ServerConfig, fire
from rpcserver.dispatcher import Dispatcher, HandlerFn, Registry
from rpcserver.validator import check_body_length, check_request

log = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
_STARTUP_POLL = 0.01  # seconds

# The validator answers 404 before 405, so the route must take every method.
HTTP_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _request_target(request: Request) -> str:
    """Undecoded path plus query string, as the client sent it."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        target = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        target = request.url.path
    query = request.scope.get("query_string", b"")
    if query:
        target += "?" + query.decode("latin-1")
    return target


def _close_connection(response: Response) -> Response:
    response.headers["Connection"] = "close"
    return response


def _validate_port(port: Any) -> None:
    if isinstance(port, bool) or not isinstance(port, int):
        raise TypeError("port must be an integer")
    if port != 0 and not 1024 <= port <= 65535:
        raise ValueError("must provide a valid port integer between 1024 and 65535")


def _bind(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return socket.create_server((host, port), family=family)


class RpcServer:
    """An HTTP JSON-RPC 2.0 server.

    Parameters
    ----------
    methods : mapping, optional
        Method name → handler.  Handlers take a single ``params`` argument
        (a dict, a list, or ``None``) and may be sync or async.
    path : str
        The only path requests are accepted on.
    username, password, realm : str, optional
        Enables HTTP Basic authentication when both credentials are set.
    on_request, on_request_error, on_result, on_server_error : callable, optional
        Observer hooks, see ``rpcserver.config.Observers``.
    """

    PARSE_ERROR = jsonrpc.PARSE_ERROR
    INVALID_REQUEST = jsonrpc.INVALID_REQUEST
    METHOD_NOT_FOUND = jsonrpc.METHOD_NOT_FOUND
    INVALID_PARAMS = jsonrpc.INVALID_PARAMS
    SERVER_ERROR = jsonrpc.SERVER_ERROR
    SERVER_ERROR_MAX = jsonrpc.SERVER_ERROR_MAX

    def __init__(
        self,
        methods: Mapping[str, HandlerFn] | Registry | None = None,
        *,
        path: str = DEFAULT_PATH,
        username: str | None = None,
        password: str | None = None,
        realm: str = DEFAULT_REALM,
        on_request: Any = None,
        on_request_error: Any = None,
        on_result: Any = None,
        on_server_error: Any = None,
    ) -> None:
        self.config = ServerConfig(path=path, username=username, password=password, realm=realm)
        self.registry = methods if isinstance(methods, Registry) else Registry(methods)
        self.observers = Observers(
            on_request=on_request,
            on_request_error=on_request_error,
            on_result=on_result,
            on_server_error=on_server_error,
        )
        self.dispatcher = Dispatcher(self.registry, self.observers)
        self.app = Starlette(
            debug=False,
            routes=[Route("/{target:path}", self._endpoint, methods=HTTP_METHODS)],
        )

        self._uvicorn: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self._observer_tasks: set[asyncio.Task] = set()

    # -- Registration & configuration ----------------------------------

    def set_method(self, name: str, method: HandlerFn) -> None:
        """Register (or replace) the handler for *name*."""
        self.registry.set(name, method)

    def method(self, name: str):
        """Decorator form of ``set_method``."""
        return self.registry.handler(name)

    def set_observers(self, **callbacks: Any) -> None:
        """Replace any of the observer hooks, e.g. ``on_result=fn``."""
        self.observers = self.observers.replace(**callbacks)
        self.dispatcher.observers = self.observers

    def configure(self, **changes: Any) -> None:
        """Change ``path``, ``username``, ``password`` or ``realm``."""
        self.config = self.config.replace(**changes)

    # -- HTTP endpoint -------------------------------------------------

    async def _endpoint(self, request: Request) -> Response:
        config = self.config
        rejection = check_request(
            request.method, _request_target(request), request.headers, config
        )
        if rejection is None:
            body = await request.body()
            rejection = check_body_length(body, request.headers)
        if rejection is not None:
            log.info(
                "rejected %s %s → %d", request.method, request.url.path, rejection.status
            )
            return _close_connection(rejection.to_response())

        payload = await self.dispatcher.dispatch(body)
        if payload is None:
            return _close_connection(Response(status_code=204))
        return _close_connection(JSONResponse(payload))

    # -- Lifecycle -----------------------------------------------------

    @property
    def listening(self) -> bool:
        return self._uvicorn is not None and self._uvicorn.started

    async def listen(self, port: int = 0, host: str | None = None) -> int:
        """Start serving on *host*:*port* and return the bound port.

        ``port=0`` picks a free ephemeral port.  Bind failures are passed
        to ``on_server_error`` and then re-raised.
        """
        _validate_port(port)
        if self._serve_task is not None:
            raise RuntimeError("server is already listening")
        host = host or DEFAULT_HOST

        try:
            sock = _bind(host, port)
        except OSError as exc:
            log.error("could not listen on %s:%s: %s", host, port, exc)
            await fire(self.observers.on_server_error, "on_server_error", exc)
            raise

        config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        server = uvicorn.Server(config)
        task = asyncio.get_running_loop().create_task(server.serve(sockets=[sock]))
        task.add_done_callback(self._serve_done)
        self._uvicorn, self._serve_task = server, task

        while not server.started:
            if task.done():
                self._uvicorn = self._serve_task = None
                sock.close()
                exc = task.exception() if not task.cancelled() else None
                raise RuntimeError("server failed to start") from exc
            await asyncio.sleep(_STARTUP_POLL)

        bound_port = sock.getsockname()[1]
        log.info("listening on %s:%d%s", host, bound_port, self.config.path)
        return bound_port

    async def close(self) -> bool:
        """Stop serving.  Returns ``False`` if the server was not listening."""
        server, task = self._uvicorn, self._serve_task
        if server is None or task is None:
            return False
        self._uvicorn = self._serve_task = None

        server.should_exit = True
        await task
        log.info("stopped listening")
        return True

    async def wait_closed(self) -> None:
        """Block until the serving task finishes (signal or ``close``)."""
        if self._serve_task is not None:
            await asyncio.shield(self._serve_task)

    def _serve_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        exc = task.exception()
        log.error("server task failed", exc_info=exc)
        report = asyncio.ensure_future(
            fire(self.observers.on_server_error, "on_server_error", exc)
        )
        self._observer_tasks.add(report)
        report.add_done_callback(self._observer_tasks.discard)
