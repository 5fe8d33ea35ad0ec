"""Seed loader: reads record fixtures from YAML for the in-memory record store.

Expected layout::

    sessions:
      - id: run-1
        start: 2024-03-05T08:00:00+09:00
        end: 2024-03-05T08:30:00+09:00
        origin: com.example.workout
        exercise_type: running
    steps:
      - {start: ..., end: ..., origin: ..., count: 3000}
    calories:
      - {start: ..., end: ..., origin: ..., kcal: 210.5}
    heart_rate:
      - start: ...
        end: ...
        origin: ...
        samples: [{time: ..., value: 120}]
    speed:
      - (same shape as heart_rate, values in m/s)
    weight:
      - {time: ..., origin: ..., kg: 71.2}

Zone offsets are taken from the timestamps themselves; naive timestamps
produce records without an offset.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import yaml

from healthsync.domains.health.domain_logic.models import (
    EnergyRecord,
    Record,
    RecordType,
    Sample,
    SeriesRecord,
    SessionRecord,
    StepsRecord,
    WeightRecord,
)

logger = logging.getLogger(__name__)


class SeedError(Exception):
    """Raised when a seed document is malformed."""


def _parse_time(value: Any) -> datetime:
    # PyYAML already turns ISO timestamps into datetimes; strings are accepted too.
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise SeedError(f"Invalid timestamp: {value!r}") from exc


def _instant(value: Any) -> tuple[datetime, timedelta | None]:
    """Aware instant plus the offset it was written with (None for naive, read as UTC)."""
    parsed = _parse_time(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc), None
    return parsed, parsed.utcoffset()


def _interval(entry: dict[str, Any]) -> dict[str, Any]:
    start, start_offset = _instant(entry["start"])
    end, end_offset = _instant(entry["end"])
    return {
        "start": start,
        "end": end,
        "origin": entry["origin"],
        "start_offset": start_offset,
        "end_offset": end_offset,
        "record_id": str(entry.get("id", "")),
    }


def _series(entry: dict[str, Any], series_type: RecordType) -> SeriesRecord:
    samples = tuple(
        Sample(time=_instant(s["time"])[0], value=float(s["value"]))
        for s in entry.get("samples", [])
    )
    return SeriesRecord(series_type=series_type, samples=samples, **_interval(entry))


def parse_seed(data: dict[str, Any]) -> list[Record]:
    """Convert a parsed seed document into records."""
    try:
        records: list[Record] = [
            SessionRecord(
                exercise_type=s.get("exercise_type", "other"),
                title=s.get("title"),
                **_interval(s),
            )
            for s in data.get("sessions", [])
        ]
        records += [
            StepsRecord(count=int(s["count"]), **_interval(s))
            for s in data.get("steps", [])
        ]
        records += [
            EnergyRecord(kilocalories=float(c["kcal"]), **_interval(c))
            for c in data.get("calories", [])
        ]
        records += [_series(h, RecordType.HEART_RATE) for h in data.get("heart_rate", [])]
        records += [_series(s, RecordType.SPEED) for s in data.get("speed", [])]
        for w in data.get("weight", []):
            at, offset = _instant(w["time"])
            records.append(WeightRecord(
                time=at,
                origin=w["origin"],
                kilograms=float(w["kg"]),
                zone_offset=offset,
                record_id=str(w.get("id", "")),
            ))
    except KeyError as exc:
        raise SeedError(f"Seed entry missing field {exc}") from exc
    return records


def read_seed_file(path: str | Path) -> list[Record]:
    """Parse the YAML seed file at ``path`` into records."""
    path = Path(path).expanduser()
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise SeedError(f"Seed file {path} must contain a mapping")
    records = parse_seed(data)
    logger.info("Read %d seed records from %s", len(records), path)
    return records
