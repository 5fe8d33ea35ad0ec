"""In-process RecordStore: a complete platform stand-in.

Keeps records in memory, maintains a change log with expiring change
tokens, and computes aggregates the way a health platform does: cumulative
metrics are prorated over the part of each record inside the window,
sample metrics only look at samples inside the window.
"""

from __future__ import annotations

import dataclasses
import logging
import statistics
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Collection, Iterable

from healthsync.domains.health.domain_logic.errors import SessionNotFound, Unavailable
from healthsync.domains.health.domain_logic.models import (
    AggregateResult,
    Change,
    ChangeBatch,
    ChangeKind,
    ChangeToken,
    EnergyRecord,
    MetricKey,
    Record,
    RecordType,
    SessionRecord,
    StepsRecord,
    TimeWindow,
    WeightRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_TOKEN_TTL = timedelta(days=30)

_SAMPLE_METRICS: dict[RecordType, tuple[MetricKey, MetricKey, MetricKey]] = {
    RecordType.HEART_RATE: (
        MetricKey.HEART_RATE_MIN,
        MetricKey.HEART_RATE_AVG,
        MetricKey.HEART_RATE_MAX,
    ),
    RecordType.SPEED: (MetricKey.SPEED_MIN, MetricKey.SPEED_AVG, MetricKey.SPEED_MAX),
}


@dataclass
class _TokenState:
    record_types: frozenset[RecordType]
    position: int
    issued_at: datetime
    revoked: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRecordStore:
    """RecordStore backed by dicts and a change log.

    Usage::

        store = InMemoryRecordStore()
        await store.insert_records([session, steps])
        summary = await summarize(store, session_id)
    """

    def __init__(
        self,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._page_size = page_size
        self._token_ttl = token_ttl
        self._clock = clock
        self._records: dict[str, Record] = {}
        self._changes: list[Change] = []
        self._tokens: dict[ChangeToken, _TokenState] = {}
        self._failures_pending = 0

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` store calls raise ``Unavailable``."""
        self._failures_pending = count

    def _check_available(self, operation: str) -> None:
        if self._failures_pending > 0:
            self._failures_pending -= 1
            raise Unavailable(f"Record store unavailable during {operation}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_window(
        self, record_type: RecordType, window: TimeWindow
    ) -> list[Record]:
        self._check_available("read_window")
        matched = [
            r for r in self._records.values()
            if r.record_type is record_type and self._in_window(r, window)
        ]
        matched.sort(key=lambda r: r.start)
        logger.debug("read_window %s matched %d records", record_type.value, len(matched))
        return matched

    async def aggregate(
        self, metrics: Collection[MetricKey], window: TimeWindow
    ) -> AggregateResult:
        self._check_available("aggregate")
        wanted = set(metrics)
        result: dict[MetricKey, float] = {}

        if MetricKey.STEPS_COUNT_TOTAL in wanted:
            total = self._prorated_total(RecordType.STEPS, window, lambda r: r.count)
            if total is not None:
                result[MetricKey.STEPS_COUNT_TOTAL] = round(total)

        if MetricKey.ENERGY_TOTAL in wanted:
            total = self._prorated_total(
                RecordType.TOTAL_CALORIES, window, lambda r: r.kilocalories
            )
            if total is not None:
                result[MetricKey.ENERGY_TOTAL] = total

        if MetricKey.EXERCISE_DURATION_TOTAL in wanted:
            sessions = self._overlapping(RecordType.EXERCISE_SESSION, window)
            if sessions:
                result[MetricKey.EXERCISE_DURATION_TOTAL] = sum(
                    window.overlap(s.start, s.end).total_seconds() for s in sessions
                )

        for series_type, keys in _SAMPLE_METRICS.items():
            if not wanted.intersection(keys):
                continue
            values = [
                sample.value
                for record in self._matching(series_type, window)
                for sample in record.samples
                if window.contains(sample.time)
            ]
            if values:
                result.update(_min_avg_max(keys, values, wanted))

        weight_keys = (MetricKey.WEIGHT_MIN, MetricKey.WEIGHT_AVG, MetricKey.WEIGHT_MAX)
        if wanted.intersection(weight_keys):
            values = [r.kilograms for r in self._matching(RecordType.WEIGHT, window)]
            if values:
                result.update(_min_avg_max(weight_keys, values, wanted))

        return result

    async def resolve_session(self, session_id: str) -> SessionRecord:
        self._check_available("resolve_session")
        record = self._records.get(session_id)
        if not isinstance(record, SessionRecord):
            raise SessionNotFound(session_id)
        return record

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_records(self, records: Iterable[Record]) -> list[str]:
        self._check_available("insert_records")
        return self.preload(records)

    def preload(self, records: Iterable[Record]) -> list[str]:
        """Insert records synchronously, e.g. while the server is being built."""
        ids: list[str] = []
        for record in records:
            if not record.record_id:
                record = dataclasses.replace(record, record_id=str(uuid.uuid4()))
            self._records[record.record_id] = record
            self._changes.append(
                Change(ChangeKind.UPSERT, record.record_type, record.record_id, record)
            )
            ids.append(record.record_id)
        logger.debug("Inserted %d records", len(ids))
        return ids

    async def delete_records(self, record_ids: Iterable[str]) -> None:
        self._check_available("delete_records")
        for record_id in record_ids:
            record = self._records.pop(record_id, None)
            if record is None:
                continue
            self._changes.append(Change(ChangeKind.DELETE, record.record_type, record_id))

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    async def get_change_token(self, record_types: Collection[RecordType]) -> ChangeToken:
        self._check_available("get_change_token")
        if not record_types:
            raise ValueError("At least one record type must be watched")
        return self._issue(frozenset(record_types), len(self._changes))

    async def poll_changes(self, token: ChangeToken) -> ChangeBatch:
        self._check_available("poll_changes")
        state = self._tokens.get(token)
        if state is None or state.revoked or self._is_stale(state):
            logger.warning("Change token expired or unknown")
            return ChangeBatch(changes=(), next_token=token, has_more=False, expired=True)

        page: list[Change] = []
        position = state.position
        while position < len(self._changes) and len(page) < self._page_size:
            change = self._changes[position]
            position += 1
            if change.record_type in state.record_types:
                page.append(change)

        has_more = any(
            c.record_type in state.record_types for c in self._changes[position:]
        )
        if position == state.position:
            state.issued_at = self._clock()
            next_token = token
        else:
            next_token = self._issue(state.record_types, position)
        return ChangeBatch(changes=tuple(page), next_token=next_token, has_more=has_more)

    def expire_token(self, token: ChangeToken) -> None:
        """Invalidate ``token`` as the platform may do at any time."""
        state = self._tokens.get(token)
        if state is not None:
            state.revoked = True

    def _issue(self, record_types: frozenset[RecordType], position: int) -> ChangeToken:
        self._evict_stale_tokens()
        token = uuid.uuid4().hex
        self._tokens[token] = _TokenState(record_types, position, self._clock())
        return token

    def _is_stale(self, state: _TokenState) -> bool:
        return self._clock() - state.issued_at > self._token_ttl

    def _evict_stale_tokens(self) -> None:
        stale = [t for t, state in self._tokens.items() if self._is_stale(state)]
        for token in stale:
            del self._tokens[token]
        if stale:
            logger.debug("Evicted %d stale change tokens", len(stale))

    @property
    def live_token_count(self) -> int:
        """Number of issued tokens still held by the store."""
        return len(self._tokens)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _matching(self, record_type: RecordType, window: TimeWindow) -> list:
        return [
            r for r in self._records.values()
            if r.record_type is record_type and self._in_window(r, window)
        ]

    def _overlapping(self, record_type: RecordType, window: TimeWindow) -> list:
        """Interval records sharing a non-empty span with ``window``.

        Records that only touch a window edge are left out; an instant record
        counts when it lies inside the window.
        """
        return [
            r for r in self._matching(record_type, window)
            if r.end == r.start or window.overlap(r.start, r.end) > timedelta(0)
        ]

    @staticmethod
    def _in_window(record: Record, window: TimeWindow) -> bool:
        if not window.accepts_origin(record.origin):
            return False
        if isinstance(record, WeightRecord):
            return window.contains(record.time)
        return record.start <= window.end and record.end >= window.start

    def _prorated_total(
        self,
        record_type: RecordType,
        window: TimeWindow,
        amount: Callable[[StepsRecord | EnergyRecord], float],
    ) -> float | None:
        records = self._overlapping(record_type, window)
        if not records:
            return None
        total = 0.0
        for record in records:
            span = record.end - record.start
            if span <= timedelta(0):
                total += amount(record)
                continue
            total += amount(record) * (window.overlap(record.start, record.end) / span)
        return total


def _min_avg_max(
    keys: tuple[MetricKey, MetricKey, MetricKey],
    values: list[float],
    wanted: set[MetricKey],
) -> dict[MetricKey, float]:
    low, avg, high = keys
    computed = {low: min(values), avg: statistics.fmean(values), high: max(values)}
    return {k: v for k, v in computed.items() if k in wanted}

