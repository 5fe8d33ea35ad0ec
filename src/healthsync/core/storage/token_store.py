"""Persistence for change tokens, one row per named subscription."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Collection

from healthsync.core.storage.database import SyncDatabase
from healthsync.domains.health.domain_logic.models import ChangeToken, RecordType

logger = logging.getLogger(__name__)


class ChangeTokenStore:
    """Reads and writes the ``change_tokens`` table.

    Usage::

        db = SyncDatabase(":memory:")
        db.initialize()
        tokens = ChangeTokenStore(db)
        tokens.save("sessions", token, {RecordType.EXERCISE_SESSION})
    """

    def __init__(self, database: SyncDatabase) -> None:
        self._db = database

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    def get(self, subscription: str) -> ChangeToken | None:
        row = self._db.connection.execute(
            "SELECT token FROM change_tokens WHERE subscription = ?", (subscription,)
        ).fetchone()
        return row["token"] if row else None

    def save(
        self,
        subscription: str,
        token: ChangeToken,
        record_types: Collection[RecordType],
    ) -> None:
        """Insert or advance the token of ``subscription``.

        ``issued_at`` is kept from the first save; ``updated_at`` moves on
        every call.
        """
        now = self._now_iso()
        types_json = json.dumps(sorted(t.value for t in record_types))
        conn = self._db.connection
        conn.execute(
            """INSERT INTO change_tokens
               (subscription, token, record_types, issued_at, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(subscription) DO UPDATE SET
                   token = excluded.token,
                   record_types = excluded.record_types,
                   updated_at = excluded.updated_at""",
            (subscription, token, types_json, now, now),
        )
        conn.commit()
        logger.debug("Saved change token for subscription %r", subscription)

    def clear(self, subscription: str) -> bool:
        """Forget the token of ``subscription``. Returns True if one existed."""
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM change_tokens WHERE subscription = ?", (subscription,)
        )
        conn.commit()
        return cursor.rowcount > 0

    def list_subscriptions(self) -> list[dict[str, Any]]:
        rows = self._db.connection.execute(
            "SELECT subscription, record_types, issued_at, updated_at "
            "FROM change_tokens ORDER BY subscription"
        ).fetchall()
        return [
            {
                "subscription": row["subscription"],
                "record_types": json.loads(row["record_types"]),
                "issued_at": row["issued_at"],
                "updated_at": row["updated_at"],
            }
            for row in rows
        ]
