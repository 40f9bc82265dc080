"""Tests for the RpcServer HTTP endpoint.

Uses ``httpx.ASGITransport`` to test the Starlette app in-process
without starting a real server.
"""

import base64
import json

import httpx
import pytest
from rpcserver.handlers import registry as example_registry
from rpcserver.server import RpcServer
from rpcserver.validator import INVALID_ACCEPT_HEADER_MSG, INVALID_CONTENT_LENGTH_MSG

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}
TEST_PATH = "/testpath"


def _client(server: RpcServer) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=server.app)  # type: ignore[arg-type]
    return httpx.AsyncClient(transport=transport, base_url="http://test")


async def _post(server, body, path="/", headers=None):
    content = body if isinstance(body, (str, bytes)) else json.dumps(body)
    async with _client(server) as client:
        return await client.post(path, content=content, headers=headers or JSON_HEADERS)


@pytest.fixture
def server():
    return RpcServer(example_registry)


# ── Transport checks ─────────────────────────────────────────────────


@pytest.mark.anyio
async def test_unknown_path(server):
    resp = await _post(server, "{}", path="/invalidpath")
    assert resp.status_code == 404
    assert resp.headers["connection"] == "close"


@pytest.mark.anyio
@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
async def test_wrong_path_is_404_for_any_method(server, method):
    async with _client(server) as client:
        resp = await client.request(method, "/nope", content="{}", headers=JSON_HEADERS)
    assert resp.status_code == 404
    assert resp.headers["connection"] == "close"


@pytest.mark.anyio
async def test_percent_encoded_path_does_not_match():
    server = RpcServer(example_registry, path="/rpc")
    resp = await _post(server, '{"jsonrpc":"2.0","id":1,"method":"sum","params":[1]}', path="/%72pc")
    assert resp.status_code == 404


@pytest.mark.anyio
@pytest.mark.parametrize("method", ["PUT", "DELETE", "PATCH"])
async def test_other_methods_not_allowed(server, method):
    async with _client(server) as client:
        resp = await client.request(method, "/", content="{}", headers=JSON_HEADERS)
    assert resp.status_code == 405


@pytest.mark.anyio
async def test_get_not_allowed(server):
    async with _client(server) as client:
        resp = await client.get("/")
    assert resp.status_code == 405
    assert resp.headers["connection"] == "close"


@pytest.mark.anyio
async def test_missing_content_type(server):
    async with _client(server) as client:
        resp = await client.post("/")
    assert resp.status_code == 415


@pytest.mark.anyio
async def test_bad_accept(server):
    resp = await _post(server, "{}", headers={"Content-Type": "application/json", "Accept": "text/html"})
    assert resp.status_code == 400
    assert resp.json() == {"error": INVALID_ACCEPT_HEADER_MSG}


@pytest.mark.anyio
async def test_bad_content_length(server):
    headers = dict(JSON_HEADERS, **{"Content-Length": "abc"})
    resp = await _post(server, "{}", headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": INVALID_CONTENT_LENGTH_MSG}


@pytest.mark.anyio
async def test_content_length_mismatch(server):
    headers = dict(JSON_HEADERS, **{"Content-Length": "3"})
    resp = await _post(server, '{"jsonrpc":"2.0"}', headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": INVALID_CONTENT_LENGTH_MSG}


# ── JSON-RPC over HTTP ───────────────────────────────────────────────


@pytest.mark.anyio
async def test_invalid_json(server):
    resp = await _post(server, "asdlkfjasld")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/json"
    data = resp.json()
    assert data["jsonrpc"] == "2.0"
    assert data["id"] is None
    assert data["error"]["code"] == RpcServer.PARSE_ERROR
    assert "result" not in data


@pytest.mark.anyio
async def test_invalid_jsonrpc(server):
    resp = await _post(server, '{"jsonrpc":"1.0","id":1,"method":"sum"}')
    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] == 1
    assert data["error"]["code"] == RpcServer.INVALID_REQUEST


@pytest.mark.anyio
async def test_invalid_method(server):
    resp = await _post(server, '{"jsonrpc":"2.0","id":2,"method":123}')
    data = resp.json()
    assert data["id"] == 2
    assert data["error"] == {"code": RpcServer.METHOD_NOT_FOUND}


@pytest.mark.anyio
async def test_invalid_params(server):
    resp = await _post(
        server, '{"jsonrpc":"2.0","id":3,"method":"sum","params":"params should not be a string"}'
    )
    data = resp.json()
    assert data["id"] == 3
    assert data["error"]["code"] == RpcServer.INVALID_PARAMS


@pytest.mark.anyio
async def test_handler_error(server):
    resp = await _post(server, '{"jsonrpc":"2.0","id":12,"method":"sum","params":["a","b","c"]}')
    data = resp.json()
    assert data["id"] == 12
    assert data["error"]["code"] == RpcServer.SERVER_ERROR
    assert data["error"]["message"] == "parameters must be an array of numbers"


@pytest.mark.anyio
async def test_handler_error_with_code(server):
    resp = await _post(
        server,
        {"jsonrpc": "2.0", "id": 13, "method": "fail", "params": {"message": "nope", "code": -32011}},
    )
    assert resp.json()["error"] == {"code": -32011, "message": "nope"}


@pytest.mark.anyio
async def test_valid_request(server):
    resp = await _post(server, '{"jsonrpc":"2.0","id":4,"method":"sum","params":[1,2,3]}')
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/json"
    assert resp.headers["connection"] == "close"
    assert resp.json() == {"jsonrpc": "2.0", "id": 4, "result": 6}


@pytest.mark.anyio
async def test_notification(server):
    resp = await _post(server, '{"jsonrpc":"2.0","method":"sum","params":[1,2,3]}')
    assert resp.status_code == 204
    assert resp.content == b""


@pytest.mark.anyio
async def test_empty_batch(server):
    resp = await _post(server, "[]")
    assert resp.status_code == 204
    assert resp.content == b""


@pytest.mark.anyio
async def test_batch(server):
    resp = await _post(
        server,
        '[{"jsonrpc":"2.0","id":5,"method":"sum","params":[1,2,3]},'
        '{"jsonrpc":"2.0","id":6,"method":"sum","params":[4,5,6]}]',
    )
    assert resp.status_code == 200
    assert resp.json() == [
        {"jsonrpc": "2.0", "id": 5, "result": 6},
        {"jsonrpc": "2.0", "id": 6, "result": 15},
    ]


@pytest.mark.anyio
async def test_async_method(server):
    resp = await _post(server, '{"jsonrpc":"2.0","id":7,"method":"wait","params":{"ms":50}}')
    data = resp.json()
    assert data["id"] == 7
    assert data["result"] is True


# ── Configuration ────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_custom_path():
    server = RpcServer(example_registry, path=TEST_PATH)
    resp = await _post(server, '{"jsonrpc":"2.0","id":8,"method":"sum","params":[2,4,6]}', path=TEST_PATH)
    assert resp.json()["result"] == 12
    resp = await _post(server, '{"jsonrpc":"2.0","id":8,"method":"sum","params":[2,4,6]}')
    assert resp.status_code == 404


@pytest.mark.anyio
async def test_configure_changes_path(server):
    server.configure(path="/moved")
    resp = await _post(server, '{"jsonrpc":"2.0","id":1,"method":"sum","params":[1]}', path="/moved")
    assert resp.json()["result"] == 1


@pytest.mark.anyio
async def test_set_method():
    server = RpcServer()
    server.set_method("sum", lambda params: sum(params))
    resp = await _post(server, '{"jsonrpc":"2.0","id":11,"method":"sum","params":[3,6,9]}')
    assert resp.json() == {"jsonrpc": "2.0", "id": 11, "result": 18}


@pytest.mark.anyio
async def test_method_decorator():
    server = RpcServer()

    @server.method("double")
    async def double(params):
        return params["n"] * 2

    resp = await _post(server, {"jsonrpc": "2.0", "id": "d", "method": "double", "params": {"n": 21}})
    assert resp.json()["result"] == 42


@pytest.mark.anyio
async def test_observers():
    requests, errors = [], []
    server = RpcServer(
        example_registry,
        on_request=lambda req: requests.append(req),
        on_request_error=lambda exc, req_id: errors.append(req_id),
    )
    await _post(server, '{"jsonrpc":"2.0","id":9,"method":"sum","params":[1,2,3]}')
    await _post(server, '{"jsonrpc":"2.0","id":10,"method":"sum","params":["a"]}')
    assert requests[0] == {"jsonrpc": "2.0", "id": 9, "method": "sum", "params": [1, 2, 3]}
    assert errors == [10]


@pytest.mark.anyio
async def test_set_observers():
    results = []
    server = RpcServer(example_registry)
    server.set_observers(on_result=lambda result, req_id: results.append((result, req_id)))
    await _post(server, '{"jsonrpc":"2.0","id":1,"method":"sum","params":[1,1]}')
    assert results == [(2, 1)]


def test_bad_construction():
    with pytest.raises(ValueError):
        RpcServer(path="testpath")
    with pytest.raises(TypeError):
        RpcServer({"method1": "not a function"})
    with pytest.raises(TypeError):
        RpcServer(on_request="not a function")


# ── Basic auth ───────────────────────────────────────────────────────


def _auth_header(user, password):
    return "Basic " + base64.b64encode(f"{user}:{password}".encode()).decode()


@pytest.fixture
def auth_server():
    return RpcServer(example_registry, username="admin", password="secret", realm="test realm")


@pytest.mark.anyio
async def test_auth_required(auth_server):
    resp = await _post(auth_server, '{"jsonrpc":"2.0","id":1,"method":"sum","params":[1]}')
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == 'Basic realm="test realm"'


@pytest.mark.anyio
async def test_auth_wrong_credentials(auth_server):
    headers = dict(JSON_HEADERS, Authorization=_auth_header("admin", "wrong"))
    resp = await _post(auth_server, '{"jsonrpc":"2.0","id":1,"method":"sum","params":[1]}', headers=headers)
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_auth_ok(auth_server):
    headers = dict(JSON_HEADERS, Authorization=_auth_header("admin", "secret"))
    resp = await _post(auth_server, '{"jsonrpc":"2.0","id":1,"method":"sum","params":[1]}', headers=headers)
    assert resp.status_code == 200
    assert resp.json()["result"] == 1


# ── Encoding failures stay inside the envelope ───────────────────────


@pytest.mark.anyio
async def test_nan_body_is_parse_error(server):
    resp = await _post(server, '{"jsonrpc":"2.0","id":1,"method":"echo","params":[NaN]}')
    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] is None
    assert data["error"]["code"] == RpcServer.PARSE_ERROR


@pytest.mark.anyio
async def test_unencodable_result_in_batch():
    server = RpcServer({"one": lambda params: 1, "bad": lambda params: {1, 2}})
    resp = await _post(
        server,
        '[{"jsonrpc":"2.0","id":1,"method":"one"},{"jsonrpc":"2.0","id":2,"method":"bad"}]',
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data[0] == {"jsonrpc": "2.0", "id": 1, "result": 1}
    assert data[1]["id"] == 2
    assert data[1]["error"]["code"] == RpcServer.SERVER_ERROR
