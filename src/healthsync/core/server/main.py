"""healthsync server entry point: ``python -m healthsync.core.server.main``.

Serves the session, sync and audit tools over Streamable HTTP. The process
keeps one record store and one sync database for its whole lifetime.
"""

from __future__ import annotations

import logging
from ipaddress import ip_address

from healthsync.core.config.settings import Settings, get_settings
from healthsync.core.server.app import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


def check_bind_host(settings: Settings) -> None:
    """Refuse non-loopback hosts unless ``HS_ALLOW_INSECURE_BIND`` is set.

    The tools read and write health records and have no auth layer.
    """
    host = settings.hs_host
    if host == "localhost":
        return
    try:
        loopback = ip_address(host).is_loopback
    except ValueError:
        loopback = False
    if loopback:
        return
    if not settings.hs_allow_insecure_bind:
        raise RuntimeError(
            f"Refusing to serve health records on non-loopback host {host!r}. "
            "Set HS_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.warning("Serving on non-loopback host %s without authentication", host)


def run() -> None:
    """Start the healthsync MCP server."""
    settings = get_settings()
    configure_logging(settings.hs_log_level)
    check_bind_host(settings)

    logger.info(
        "Starting healthsync on %s:%d (db=%s, seed=%s, watching %s)",
        settings.hs_host,
        settings.hs_port,
        settings.db_path,
        settings.seed_path or "none",
        ", ".join(settings.watched_record_types),
    )
    mcp = create_app()
    mcp.run(transport="streamable-http", host=settings.hs_host, port=settings.hs_port)


if __name__ == "__main__":
    run()
