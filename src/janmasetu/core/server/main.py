"""JanmaSetu server entry point: ``python -m janmasetu.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from janmasetu.core.config.settings import get_settings
from janmasetu.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the JanmaSetu MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.janmasetu_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.janmasetu_allow_insecure_bind and not _is_loopback_host(settings.janmasetu_host):
        raise RuntimeError(
            "Refusing to bind the JanmaSetu server to a non-loopback host without an auth layer. "
            "Set JANMASETU_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting JanmaSetu identity server on %s:%d",
        settings.janmasetu_host,
        settings.janmasetu_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.janmasetu_host,
        port=settings.janmasetu_port,
    )


if __name__ == "__main__":
    run()
