"""Change cursor: one continuation token in, a finite stream of messages out.

The stream is pull-based: each message pulled costs at most one
``poll_changes`` round trip, and a consumer that stops early simply stops
the pulls. Nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncIterator

from healthsync.domains.health.domain_logic.errors import TokenExpired
from healthsync.domains.health.domain_logic.models import (
    Change,
    ChangeMessage,
    ChangeToken,
)

if TYPE_CHECKING:
    from healthsync.domains.health.connectors import RecordStore

logger = logging.getLogger(__name__)


async def poll(store: RecordStore, token: ChangeToken) -> AsyncIterator[ChangeMessage]:
    """Yield the changes following ``token`` until the store has no more.

    Emits zero or more ``CHANGE_LIST`` messages in store order, then exactly
    one ``NO_MORE_CHANGES`` message carrying the token to persist.

    Raises:
        TokenExpired: the store reported the token expired. No further
            messages are produced; the caller must issue a new token.
        Unavailable: propagated unchanged from the store.
    """
    current = token
    batches = 0
    while True:
        batch = await store.poll_changes(current)
        if batch.expired:
            logger.warning("Change token expired after %d batches", batches)
            raise TokenExpired("Changes token has expired")
        batches += 1
        logger.debug("Change batch %d: %d changes, has_more=%s",
                     batches, len(batch.changes), batch.has_more)
        yield ChangeMessage.change_list(batch.changes)
        current = batch.next_token
        if not batch.has_more:
            break
    yield ChangeMessage.no_more_changes(current)


async def collect_changes(
    store: RecordStore, token: ChangeToken
) -> tuple[list[Change], ChangeToken]:
    """Drain one poll cycle. Returns every change and the token to persist."""
    changes: list[Change] = []
    final_token = token
    async for message in poll(store, token):
        if message.is_final:
            final_token = message.token
        else:
            changes.extend(message.changes)
    return changes, final_token
