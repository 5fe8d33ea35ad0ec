"""healthsync MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastmcp import FastMCP

from healthsync.core.audit.logger import AuditLogger
from healthsync.core.config.settings import get_settings
from healthsync.core.storage.database import SyncDatabase
from healthsync.core.storage.token_store import ChangeTokenStore
from healthsync.domains.health.connectors import RecordStore
from healthsync.domains.health.connectors.memory import InMemoryRecordStore
from healthsync.domains.health.connectors.seed import read_seed_file
from healthsync.domains.health.domain_logic.models import RecordType
from healthsync.domains.health.tools.audit_tools import register_audit_tools
from healthsync.domains.health.tools.session_tools import register_session_tools
from healthsync.domains.health.tools.sync_tools import register_sync_tools

logger = logging.getLogger(__name__)


def create_app(
    *,
    record_store_override: RecordStore | None = None,
    database_override: SyncDatabase | None = None,
) -> FastMCP:
    """Create and configure the healthsync MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Builds the record store (in-memory, optionally seeded from YAML)
    3. Opens the sync database (change tokens + audit trail)
    4. Registers all tools
    """
    settings = get_settings()

    server = FastMCP(
        "healthsync",
        instructions=(
            "Health record sync and aggregation. Summarizes exercise sessions, "
            "reports daily step totals and weight averages, and pulls "
            "incremental changes from the health-data platform."
        ),
    )

    # --- Record store ---
    if record_store_override is not None:
        store = record_store_override
    else:
        memory_store = InMemoryRecordStore(
            page_size=settings.change_page_size,
            token_ttl=timedelta(days=settings.change_token_ttl_days),
        )
        if settings.seed_path:
            count = len(memory_store.preload(read_seed_file(settings.seed_path)))
            logger.info("Seeded record store with %d records from %s", count, settings.seed_path)
        else:
            logger.info("Using empty in-memory record store")
        store = memory_store

    # --- Sync database ---
    if database_override is not None:
        database = database_override
    else:
        database = SyncDatabase(settings.db_path)
    database.initialize()
    logger.info(
        "Sync database ready: schema v%d", database.get_schema_version()
    )

    tokens = ChangeTokenStore(database)
    audit_logger = AuditLogger(database)
    watched_types = {RecordType(t) for t in settings.watched_record_types}

    @server.tool
    async def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "healthsync",
            "version": "0.1.0",
            "watched_record_types": sorted(t.value for t in watched_types),
            "subscriptions": len(tokens.list_subscriptions()),
        }

    register_session_tools(server, store, audit_logger)
    register_sync_tools(server, store, tokens, watched_types, audit_logger)
    register_audit_tools(server, audit_logger)
    logger.info("Session, sync and audit tools registered")

    return server


# Module-level instance for FastMCP discovery; created on first access only.
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
