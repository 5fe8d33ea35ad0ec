"""Caller-side subscription handling around the change cursor.

Owns the persisted token for one named subscription: issues it on first
use, stores the final token of each poll cycle, and re-subscribes when the
platform expires it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Collection

from healthsync.domains.health.domain_logic.change_cursor import collect_changes
from healthsync.domains.health.domain_logic.errors import TokenExpired
from healthsync.domains.health.domain_logic.models import Change, ChangeToken, RecordType

if TYPE_CHECKING:
    from healthsync.core.storage.token_store import ChangeTokenStore
    from healthsync.domains.health.connectors import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync cycle.

    ``history_gap`` is True when the previous token had expired: the changes
    made since it was issued are lost and a fresh token was stored.
    """

    changes: list[Change] = field(default_factory=list)
    token: ChangeToken = ""
    history_gap: bool = False


class ChangeSubscription:
    """Incremental sync for one named subscription.

    Usage::

        sub = ChangeSubscription(store, tokens, "sessions", {RecordType.EXERCISE_SESSION})
        result = await sub.sync()
    """

    def __init__(
        self,
        store: RecordStore,
        tokens: ChangeTokenStore,
        name: str,
        record_types: Collection[RecordType],
    ) -> None:
        if not record_types:
            raise ValueError("A subscription must watch at least one record type")
        self._store = store
        self._tokens = tokens
        self._name = name
        self._record_types = frozenset(record_types)

    @property
    def name(self) -> str:
        return self._name

    async def sync(self) -> SyncResult:
        """Run one poll cycle and persist the resulting token.

        ``Unavailable`` propagates and leaves the stored token untouched.
        """
        token = self._tokens.get(self._name)
        if token is None:
            token = await self._subscribe()
            logger.info("Started subscription %r", self._name)

        try:
            changes, final_token = await collect_changes(self._store, token)
        except TokenExpired:
            logger.warning(
                "Change token for subscription %r expired; re-subscribing", self._name
            )
            self._tokens.clear(self._name)
            fresh = await self._subscribe()
            return SyncResult(changes=[], token=fresh, history_gap=True)

        self._tokens.save(self._name, final_token, self._record_types)
        logger.info("Subscription %r synced %d changes", self._name, len(changes))
        return SyncResult(changes=changes, token=final_token)

    async def _subscribe(self) -> ChangeToken:
        token = await self._store.get_change_token(self._record_types)
        self._tokens.save(self._name, token, self._record_types)
        return token
