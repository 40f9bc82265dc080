"""rpcclient — JSON-RPC 2.0 over HTTP, client side."""

from rpcclient.client import RpcClient, RpcError

__all__ = ["RpcClient", "RpcError"]
