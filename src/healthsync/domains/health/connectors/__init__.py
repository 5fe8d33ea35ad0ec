"""Record store connectors: abstraction over the external health-data platform."""

from __future__ import annotations

from typing import Collection, Iterable, Protocol, runtime_checkable

from healthsync.domains.health.domain_logic.models import (
    AggregateResult,
    ChangeBatch,
    ChangeToken,
    MetricKey,
    Record,
    RecordType,
    SessionRecord,
    TimeWindow,
)


@runtime_checkable
class RecordStore(Protocol):
    """Abstract interface to a health-data platform.

    The engine never constructs a store itself: callers build one and pass
    it to every operation, so tests can substitute a fake per call.
    """

    async def read_window(
        self, record_type: RecordType, window: TimeWindow
    ) -> list[Record]:
        """Records of ``record_type`` intersecting ``window``, ordered by start.

        Raises ``Unavailable`` on transport failure.
        """
        ...

    async def aggregate(
        self, metrics: Collection[MetricKey], window: TimeWindow
    ) -> AggregateResult:
        """Compute ``metrics`` over ``window``; metrics without data are omitted."""
        ...

    async def get_change_token(self, record_types: Collection[RecordType]) -> ChangeToken:
        """Issue a change token watching ``record_types``."""
        ...

    async def poll_changes(self, token: ChangeToken) -> ChangeBatch:
        """Return the page of changes following ``token``."""
        ...

    async def resolve_session(self, session_id: str) -> SessionRecord:
        """Look up an exercise session. Raises ``SessionNotFound``."""
        ...

    async def insert_records(self, records: Iterable[Record]) -> list[str]:
        """Insert or replace records, returning their ids."""
        ...

    async def delete_records(self, record_ids: Iterable[str]) -> None:
        """Delete records by id; unknown ids are ignored."""
        ...
