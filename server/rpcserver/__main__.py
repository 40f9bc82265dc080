"""Run the example JSON-RPC server.

    python -m rpcserver --port 8100 --path /rpc

Credentials are read from ``RPC_USERNAME`` / ``RPC_PASSWORD`` /
``RPC_REALM`` (a ``.env`` file in the working directory is honoured).
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

import anyio
from dotenv import load_dotenv

from rpcserver.config import ServerConfig
from rpcserver.handlers import registry
from rpcserver.server import DEFAULT_HOST, RpcServer

load_dotenv(os.path.join(Path.cwd(), ".env"))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="HTTP JSON-RPC 2.0 server")
    parser.add_argument("--host", type=str, default=os.getenv("RPC_HOST", DEFAULT_HOST))
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("RPC_PORT", "8100")),
        help="Port to listen on (0 picks a free one)",
    )
    parser.add_argument(
        "--path", type=str, default=None, help="Request path, overrides RPC_PATH"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("rpcserver-main")

    config = ServerConfig.from_env()
    if args.path:
        config = config.replace(path=args.path)

    server = RpcServer(
        registry,
        path=config.path,
        username=config.username,
        password=config.password,
        realm=config.realm,
    )
    port = await server.listen(args.port, args.host)
    logger.info("serving %s on port %d", ", ".join(registry.methods), port)
    await server.wait_closed()


def run() -> None:
    try:
        anyio.run(main)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
