"""Flatten per-record sample series into one chart-ready point sequence."""

from __future__ import annotations

import logging
from datetime import timedelta, timezone
from typing import Iterable, Protocol, Sequence

from healthsync.domains.health.domain_logic.models import Sample, SamplePoint

logger = logging.getLogger(__name__)


class SampledRecord(Protocol):
    """Anything carrying samples and the zone offsets they were recorded in."""

    start_offset: timedelta | None
    end_offset: timedelta | None
    samples: Sequence[Sample]


def resolve_offset(record: SampledRecord) -> timedelta | None:
    """Start offset, else end offset, else None."""
    if record.start_offset is not None:
        return record.start_offset
    return record.end_offset


def flatten(records: Iterable[SampledRecord]) -> list[SamplePoint]:
    """Merge the samples of ``records`` into one ascending point list.

    Each sample is rendered in its record's zone offset and truncated to
    whole seconds. Records without any zone offset are skipped entirely
    rather than rendered in a guessed zone. Sorting is stable, so points
    sharing a second keep their input order.
    """
    points: list[SamplePoint] = []
    for record in records:
        offset = resolve_offset(record)
        if offset is None:
            logger.debug("Dropping %d samples without zone offset", len(record.samples))
            continue
        zone = timezone(offset)
        for sample in record.samples:
            local = sample.time.astimezone(zone).replace(microsecond=0)
            points.append(SamplePoint(time=local, value=sample.value))

    points.sort(key=lambda p: p.time)
    return points
