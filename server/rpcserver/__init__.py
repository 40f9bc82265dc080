"""rpcserver — JSON-RPC 2.0 over HTTP, server side."""

from rpcserver.config import Observers, ServerConfig
from rpcserver.dispatcher import Dispatcher, Registry
from rpcserver.server import RpcServer
from rpcserver.validator import Rejection, check_body_length, check_request

__all__ = [
    "RpcServer",
    "ServerConfig",
    "Observers",
    "Registry",
    "Dispatcher",
    "Rejection",
    "check_request",
    "check_body_length",
]
