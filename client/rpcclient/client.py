"""Thin JSON-RPC 2.0 consumer over HTTP.

* ``call(method, params)``   → unary result
* ``notify(method, params)`` → fire-and-forget, no response body
* ``batch(requests)``        → list of response objects

Uses ``httpx.AsyncClient``; connection-level failures are retried.
**Never** imports from ``rpcserver``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import httpx
from rpcwire.jsonrpc import MISSING, JsonRpcError, JsonRpcRequest
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

log = logging.getLogger(__name__)

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


class RpcError(Exception):
    """Raised when the server returns a JSON-RPC error."""

    def __init__(self, error: JsonRpcError) -> None:
        self.error = error
        super().__init__(f"[{error.code}] {error.message}")


class RpcClient:
    """Async client that talks JSON-RPC 2.0 over HTTP.

    Parameters
    ----------
    base_url : str
        Server origin, e.g. ``http://127.0.0.1:8100``.
    path : str
        Request path the server is configured with.
    timeout : float
        Default request timeout in seconds.
    max_retries : int
        Max connection-level retries.
    username, password : str, optional
        HTTP Basic credentials.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport, e.g. ``httpx.ASGITransport`` for in-process use.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8100",
        path: str = "/",
        timeout: float = 30.0,
        max_retries: int = 3,
        username: str | None = None,
        password: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.path = path
        self.max_retries = max_retries
        auth = httpx.BasicAuth(username, password) if username is not None else None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers=JSON_HEADERS,
            auth=auth,
            transport=transport,
        )

    # -- Lifecycle -----------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Internal helpers ----------------------------------------------

    def _get_retrier(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
            reraise=True,
        )

    async def _post(self, payload: Any) -> httpx.Response:
        async for attempt in self._get_retrier():
            with attempt:
                resp = await self._client.post(self.path, json=payload)
                resp.raise_for_status()
        return resp

    # -- Calls ---------------------------------------------------------

    async def call(self, method: str, params: Any = MISSING) -> Any:
        """Send a unary JSON-RPC request and return the result.

        Raises ``RpcError`` if the server returns a JSON-RPC error.
        """
        req = JsonRpcRequest(method=method, params=params)
        log.debug("rpc → %s(id=%s)", method, req.id)

        resp = await self._post(req.to_dict())
        data = resp.json()
        if data.get("error") is not None:
            raise RpcError(JsonRpcError(**data["error"]))
        return data.get("result")

    async def notify(self, method: str, params: Any = MISSING) -> None:
        """Send a notification; the server answers with no body."""
        req = JsonRpcRequest.notification(method, params)
        log.debug("rpc notify → %s", method)
        await self._post(req.to_dict())

    async def batch(self, requests: Iterable[JsonRpcRequest]) -> list[dict[str, Any]]:
        """Send several requests in one HTTP call.

        Returns the raw response objects in server order (the order of the
        non-notification requests); ``[]`` when every request was a
        notification.
        """
        payload = [req.to_dict() for req in requests]
        log.debug("rpc batch → %d request(s)", len(payload))

        resp = await self._post(payload)
        if resp.status_code == 204 or not resp.content:
            return []
        data = resp.json()
        if isinstance(data, dict):
            # A lone object back means the whole batch failed to parse.
            raise RpcError(JsonRpcError(**data["error"]))
        return data
