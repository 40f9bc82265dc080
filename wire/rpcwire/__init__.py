"""rpcwire — JSON-RPC 2.0 wire-format models."""

from rpcwire.jsonrpc import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    MISSING,
    PARSE_ERROR,
    SERVER_ERROR,
    SERVER_ERROR_MAX,
    ApplicationError,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    in_server_error_band,
)

__all__ = [
    "JsonRpcRequest",
    "JsonRpcResponse",
    "JsonRpcError",
    "ApplicationError",
    "MISSING",
    "in_server_error_band",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "SERVER_ERROR",
    "SERVER_ERROR_MAX",
]
