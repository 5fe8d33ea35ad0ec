"""Day-level reads and manual writes: daily steps, weight, session recording."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from healthsync.domains.health.domain_logic.models import (
    EnergyRecord,
    MetricKey,
    RecordType,
    Sample,
    SeriesRecord,
    SessionRecord,
    StepsRecord,
    TimeWindow,
    WeightRecord,
)

if TYPE_CHECKING:
    from healthsync.domains.health.connectors import RecordStore

logger = logging.getLogger(__name__)

MANUAL_ORIGIN = "manual_entry"
DEFAULT_SAMPLE_INTERVAL = timedelta(seconds=30)


async def list_sessions(
    store: RecordStore, start: datetime, end: datetime
) -> list[SessionRecord]:
    """Exercise sessions intersecting ``[start, end]``, ordered by start."""
    return await store.read_window(RecordType.EXERCISE_SESSION, TimeWindow(start, end))


async def total_steps_for_day(
    store: RecordStore, day: datetime, offset: timedelta | None = None
) -> int | None:
    """Steps over the local day containing ``day``, or None if there is no data.

    ``offset`` defaults to the utcoffset of ``day`` itself.
    """
    if offset is None:
        offset = day.utcoffset() or timedelta(0)
    result = await store.aggregate(
        {MetricKey.STEPS_COUNT_TOTAL}, TimeWindow.for_day(day, offset)
    )
    value = result.get(MetricKey.STEPS_COUNT_TOTAL)
    return None if value is None else int(round(value))


async def read_weights(
    store: RecordStore, start: datetime, end: datetime
) -> list[WeightRecord]:
    return await store.read_window(RecordType.WEIGHT, TimeWindow(start, end))


async def weekly_weight_average(
    store: RecordStore, start: datetime, end: datetime
) -> float | None:
    """Average weight in kilograms over ``[start, end]``."""
    result = await store.aggregate({MetricKey.WEIGHT_AVG}, TimeWindow(start, end))
    return result.get(MetricKey.WEIGHT_AVG)


async def record_weight(
    store: RecordStore,
    kilograms: float,
    at: datetime,
    *,
    origin: str = MANUAL_ORIGIN,
) -> str:
    """Write one manual weight reading. ``at`` must be timezone-aware."""
    if kilograms <= 0:
        raise ValueError(f"Weight must be positive, got {kilograms}")
    if at.tzinfo is None:
        raise ValueError("Weight timestamp must be timezone-aware")
    [record_id] = await store.insert_records([
        WeightRecord(time=at, origin=origin, kilograms=kilograms, zone_offset=at.utcoffset())
    ])
    logger.info("Recorded weight reading %s", record_id)
    return record_id


def build_heart_rate_series(
    start: datetime,
    end: datetime,
    bpm: Callable[[datetime], float],
    *,
    origin: str = MANUAL_ORIGIN,
    interval: timedelta = DEFAULT_SAMPLE_INTERVAL,
) -> SeriesRecord:
    """Heart-rate record sampled every ``interval`` from ``start`` (inclusive) to ``end``."""
    if interval <= timedelta(0):
        raise ValueError("Sample interval must be positive")
    samples: list[Sample] = []
    t = start
    while t < end:
        samples.append(Sample(time=t, value=bpm(t)))
        t += interval
    return SeriesRecord(
        series_type=RecordType.HEART_RATE,
        start=start,
        end=end,
        origin=origin,
        samples=tuple(samples),
        start_offset=start.utcoffset(),
        end_offset=end.utcoffset(),
    )


async def record_session(
    store: RecordStore,
    start: datetime,
    end: datetime,
    *,
    steps: int,
    energy_kcal: float,
    heart_rate_bpm: Callable[[datetime], float] | None = None,
    exercise_type: str = "running",
    title: str | None = None,
    origin: str = MANUAL_ORIGIN,
    sample_interval: timedelta = DEFAULT_SAMPLE_INTERVAL,
) -> str:
    """Write a session together with its steps, calories and heart-rate series.

    Returns the id of the session record.
    """
    if start.tzinfo is None or end.tzinfo is None:
        raise ValueError("Session bounds must be timezone-aware")
    if start >= end:
        raise ValueError("Session must end after it starts")

    offsets = {"start_offset": start.utcoffset(), "end_offset": end.utcoffset()}
    records: list = [
        SessionRecord(
            start=start, end=end, origin=origin,
            exercise_type=exercise_type, title=title, **offsets,
        ),
        StepsRecord(start=start, end=end, origin=origin, count=steps, **offsets),
        EnergyRecord(start=start, end=end, origin=origin, kilocalories=energy_kcal, **offsets),
    ]
    if heart_rate_bpm is not None:
        records.append(build_heart_rate_series(
            start, end, heart_rate_bpm, origin=origin, interval=sample_interval
        ))

    ids = await store.insert_records(records)
    logger.info("Recorded exercise session %s with %d records", ids[0], len(ids))
    return ids[0]
