"""CLI entry point for the OpenAPI MCP Adapter."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import uvicorn

from .config import ConfigError, get_settings
from .logging import configure_logging
from .openapi import SpecLoadError
from .server import build_server

logger = logging.getLogger(__name__)

HTTP_TRANSPORTS = {"http", "streamable-http", "streamablehttp", "sse"}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="openapi-mcp-adapter",
        description="Serve the operations of an OpenAPI document as MCP tools.",
    )
    parser.add_argument("--api", help="Path or URL of the OpenAPI document (overrides OPENAPI_SPEC)")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http", "streamable-http", "sse"],
        help="MCP transport (overrides ADAPTER_TRANSPORT)",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> None:
    settings = get_settings()
    if args.transport:
        settings = settings.model_copy(update={"adapter_transport": args.transport})
    configure_logging(settings.adapter_log_level)

    mcp, app = await build_server(settings, spec_location=args.api)
    transport = settings.adapter_transport.lower()

    if transport in HTTP_TRANSPORTS:
        if not app:
            raise RuntimeError(f"HTTP app unavailable for transport={transport}")
        config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
        server = uvicorn.Server(config)
        await server.serve()
        return
    await mcp.run_stdio_async()


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    try:
        asyncio.run(_run(args))
    except (SpecLoadError, ConfigError) as exc:
        logger.error("Failed to start server: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
