"""MCP tools for incremental change sync."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Collection

from fastmcp import Context, FastMCP

from healthsync.domains.health.domain_logic.errors import Unavailable
from healthsync.domains.health.domain_logic.models import RecordType
from healthsync.domains.health.domain_logic.subscription import ChangeSubscription

if TYPE_CHECKING:
    from healthsync.core.audit.logger import AuditLogger
    from healthsync.core.storage.token_store import ChangeTokenStore
    from healthsync.domains.health.connectors import RecordStore

logger = logging.getLogger(__name__)


def register_sync_tools(
    mcp: FastMCP,
    store: RecordStore,
    tokens: ChangeTokenStore,
    watched_types: Collection[RecordType],
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register change-sync tools on the MCP server."""

    def _audit(subscription: str, started: float, **fields) -> None:
        if audit_logger is None:
            return
        audit_logger.log_invocation(
            "change_poll",
            tool_name="sync_changes",
            tool_input={"subscription": subscription},
            subscription=subscription,
            duration_ms=(time.monotonic() - started) * 1000,
            **fields,
        )

    @mcp.tool
    async def sync_changes(ctx: Context, subscription: str = "default") -> str:
        """Pull every change since the last sync of ``subscription``.

        The first call only starts the subscription. When the platform has
        expired the stored token, a new one is issued and ``history_gap``
        is true: changes made in between cannot be recovered.

        Args:
            subscription: Name of the subscription (default: 'default').
        """
        started = time.monotonic()
        sub = ChangeSubscription(store, tokens, subscription, watched_types)
        try:
            result = await sub.sync()
        except Unavailable as exc:
            _audit(subscription, started, error=exc)
            return json.dumps({"status": "unavailable", "message": str(exc)})

        _audit(subscription, started, record_count=len(result.changes),
               metadata={"history_gap": result.history_gap})

        return json.dumps({
            "status": "ok",
            "subscription": subscription,
            "history_gap": result.history_gap,
            "changes": [
                {
                    "kind": c.kind.value,
                    "record_type": c.record_type.value,
                    "record_id": c.record_id,
                }
                for c in result.changes
            ],
        }, indent=2)

    @mcp.tool
    async def list_subscriptions(ctx: Context) -> str:
        """List stored change subscriptions (tokens themselves are not shown)."""
        return json.dumps({"status": "ok", "subscriptions": tokens.list_subscriptions()})
