"""Session aggregator: one exercise session in, one merged summary out.

A summary is assembled from three independent fetches over the session:

* **unrestricted**: steps and energy over the session window, across all
  data origins. Pedometer and calorie data is usually written by a
  different app than the one that recorded the workout, so filtering by
  the session's origin here returns nothing.
* **origin-restricted**: heart rate, speed and active duration over the
  session window, limited to the origin that authored the session, plus
  the raw heart-rate and speed series for charting.
* **day**: steps over the whole local calendar day of the session start,
  across all origins.

``merge_summary`` then takes each field from the phase that owns it. The
session and day step counts are separate fields and never combined, and an
aggregate the store could not compute stays None.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from healthsync.domains.health.domain_logic.models import (
    AggregateResult,
    MetricKey,
    RecordType,
    SamplePoint,
    SessionRecord,
    SessionSummary,
    TimeWindow,
)
from healthsync.domains.health.domain_logic.series import flatten

if TYPE_CHECKING:
    from healthsync.domains.health.connectors import RecordStore

logger = logging.getLogger(__name__)

UNRESTRICTED_METRICS = frozenset({MetricKey.STEPS_COUNT_TOTAL, MetricKey.ENERGY_TOTAL})

ORIGIN_RESTRICTED_METRICS = frozenset({
    MetricKey.HEART_RATE_MIN,
    MetricKey.HEART_RATE_AVG,
    MetricKey.HEART_RATE_MAX,
    MetricKey.EXERCISE_DURATION_TOTAL,
    MetricKey.SPEED_MIN,
    MetricKey.SPEED_AVG,
    MetricKey.SPEED_MAX,
})


@dataclass(frozen=True)
class RestrictedData:
    """Origin-restricted aggregates plus the flattened series."""

    aggregates: AggregateResult
    heart_rate_series: list[SamplePoint] = field(default_factory=list)
    speed_series: list[SamplePoint] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def session_window(session: SessionRecord) -> TimeWindow:
    return TimeWindow(session.start, session.end)


def day_window(session: SessionRecord) -> TimeWindow:
    """Local calendar day containing the session start.

    Uses the session's start offset, falling back to its end offset and then
    UTC. The session end plays no part.
    """
    offset = session.start_offset
    if offset is None:
        offset = session.end_offset
    if offset is None:
        logger.warning(
            "Session %s has no zone offset; using the UTC day for day totals",
            session.record_id,
        )
        offset = timedelta(0)
    return TimeWindow.for_day(session.start, offset)


# ---------------------------------------------------------------------------
# Fetch steps
# ---------------------------------------------------------------------------

async def fetch_unrestricted(store: RecordStore, session: SessionRecord) -> AggregateResult:
    return await store.aggregate(UNRESTRICTED_METRICS, session_window(session))


async def fetch_origin_restricted(
    store: RecordStore, session: SessionRecord
) -> RestrictedData:
    window = session_window(session).restricted_to(session.origin)
    aggregates = await store.aggregate(ORIGIN_RESTRICTED_METRICS, window)
    heart_rate = await store.read_window(RecordType.HEART_RATE, window)
    speed = await store.read_window(RecordType.SPEED, window)
    return RestrictedData(
        aggregates=aggregates,
        heart_rate_series=flatten(heart_rate),
        speed_series=flatten(speed),
    )


async def fetch_day_steps(store: RecordStore, session: SessionRecord) -> AggregateResult:
    return await store.aggregate({MetricKey.STEPS_COUNT_TOTAL}, day_window(session))


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def _as_int(value: float | None) -> int | None:
    return None if value is None else int(round(value))


def merge_summary(
    session_id: str,
    unrestricted: AggregateResult,
    restricted: RestrictedData,
    day: AggregateResult,
) -> SessionSummary:
    """Combine the three fetches. Pure; absent keys become None fields."""
    sensor = restricted.aggregates
    duration = sensor.get(MetricKey.EXERCISE_DURATION_TOTAL)
    return SessionSummary(
        session_id=session_id,
        active_duration=timedelta(seconds=duration) if duration is not None else None,
        steps=_as_int(unrestricted.get(MetricKey.STEPS_COUNT_TOTAL)),
        day_steps=_as_int(day.get(MetricKey.STEPS_COUNT_TOTAL)),
        energy_kcal=unrestricted.get(MetricKey.ENERGY_TOTAL),
        min_heart_rate=sensor.get(MetricKey.HEART_RATE_MIN),
        avg_heart_rate=sensor.get(MetricKey.HEART_RATE_AVG),
        max_heart_rate=sensor.get(MetricKey.HEART_RATE_MAX),
        min_speed=sensor.get(MetricKey.SPEED_MIN),
        avg_speed=sensor.get(MetricKey.SPEED_AVG),
        max_speed=sensor.get(MetricKey.SPEED_MAX),
        heart_rate_series=restricted.heart_rate_series,
        speed_series=restricted.speed_series,
    )


async def summarize(store: RecordStore, session_id: str) -> SessionSummary:
    """Build the summary for ``session_id``.

    Raises:
        SessionNotFound: the id does not resolve to a session.
        Unavailable: any underlying query failed; the remaining fetches are
            cancelled and no partial summary is returned.
    """
    session = await store.resolve_session(session_id)
    tasks = [
        asyncio.ensure_future(fetch_unrestricted(store, session)),
        asyncio.ensure_future(fetch_origin_restricted(store, session)),
        asyncio.ensure_future(fetch_day_steps(store, session)),
    ]
    try:
        unrestricted, restricted, day = await asyncio.gather(*tasks)
    except BaseException:
        # No store call may outlive a failed summary
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    logger.debug(
        "Session %s: steps=%s day_steps=%s window=%s..%s",
        session_id,
        unrestricted.get(MetricKey.STEPS_COUNT_TOTAL),
        day.get(MetricKey.STEPS_COUNT_TOTAL),
        session.start.isoformat(),
        session.end.isoformat(),
    )
    return merge_summary(session_id, unrestricted, restricted, day)
