"""Value objects exchanged between the engine and a RecordStore.

Everything here is immutable and created fresh per call. Instants are
timezone-aware datetimes; zone offsets are ``timedelta`` values (or None
when the platform did not record one).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

ChangeToken = str


class RecordType(str, Enum):
    EXERCISE_SESSION = "exercise_session"
    STEPS = "steps"
    TOTAL_CALORIES = "total_calories"
    HEART_RATE = "heart_rate"
    SPEED = "speed"
    WEIGHT = "weight"


class MetricKey(str, Enum):
    """Aggregate metrics a RecordStore may compute over a window.

    Units: steps are counts, energy is kilocalories, duration is seconds,
    heart rate is beats per minute, speed is metres per second, weight is
    kilograms.
    """

    STEPS_COUNT_TOTAL = "steps_count_total"
    ENERGY_TOTAL = "energy_total"
    EXERCISE_DURATION_TOTAL = "exercise_duration_total"
    HEART_RATE_MIN = "heart_rate_min"
    HEART_RATE_AVG = "heart_rate_avg"
    HEART_RATE_MAX = "heart_rate_max"
    SPEED_MIN = "speed_min"
    SPEED_AVG = "speed_avg"
    SPEED_MAX = "speed_max"
    WEIGHT_AVG = "weight_avg"
    WEIGHT_MIN = "weight_min"
    WEIGHT_MAX = "weight_max"


# A missing key means "no data for this window", never zero.
AggregateResult = Mapping[MetricKey, float]


# ---------------------------------------------------------------------------
# Time windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeWindow:
    """Closed instant range ``[start, end]``, optionally limited to some origins."""

    start: datetime
    end: datetime
    origins: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"TimeWindow start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    @classmethod
    def for_day(cls, instant: datetime, offset: timedelta) -> TimeWindow:
        """Local calendar day containing ``instant``, rendered at ``offset``.

        Covers ``[midnight, midnight + 1 day - 1 ms]``.
        """
        local = instant.astimezone(timezone(offset))
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(
            start=midnight,
            end=midnight + timedelta(days=1) - timedelta(milliseconds=1),
        )

    def restricted_to(self, *origins: str) -> TimeWindow:
        return TimeWindow(self.start, self.end, frozenset(origins))

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    def overlap(self, start: datetime, end: datetime) -> timedelta:
        """Length of the intersection between this window and ``[start, end]``."""
        lo = max(self.start, start)
        hi = min(self.end, end)
        return hi - lo if hi > lo else timedelta(0)

    def accepts_origin(self, origin: str) -> bool:
        return self.origins is None or origin in self.origins


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Sample:
    time: datetime
    value: float


@dataclass(frozen=True)
class SessionRecord:
    """An exercise session as authored by one data origin."""

    record_type: ClassVar[RecordType] = RecordType.EXERCISE_SESSION

    start: datetime
    end: datetime
    origin: str
    start_offset: timedelta | None = None
    end_offset: timedelta | None = None
    exercise_type: str = "other"
    title: str | None = None
    record_id: str = ""


@dataclass(frozen=True)
class StepsRecord:
    record_type: ClassVar[RecordType] = RecordType.STEPS

    start: datetime
    end: datetime
    origin: str
    count: int
    start_offset: timedelta | None = None
    end_offset: timedelta | None = None
    record_id: str = ""


@dataclass(frozen=True)
class EnergyRecord:
    record_type: ClassVar[RecordType] = RecordType.TOTAL_CALORIES

    start: datetime
    end: datetime
    origin: str
    kilocalories: float
    start_offset: timedelta | None = None
    end_offset: timedelta | None = None
    record_id: str = ""


@dataclass(frozen=True)
class SeriesRecord:
    """A heart-rate or speed record holding many timestamped samples."""

    series_type: RecordType
    start: datetime
    end: datetime
    origin: str
    samples: tuple[Sample, ...] = ()
    start_offset: timedelta | None = None
    end_offset: timedelta | None = None
    record_id: str = ""

    @property
    def record_type(self) -> RecordType:
        return self.series_type


@dataclass(frozen=True)
class WeightRecord:
    record_type: ClassVar[RecordType] = RecordType.WEIGHT

    time: datetime
    origin: str
    kilograms: float
    zone_offset: timedelta | None = None
    record_id: str = ""

    @property
    def start(self) -> datetime:
        return self.time

    @property
    def end(self) -> datetime:
        return self.time


Record = Union[SessionRecord, StepsRecord, EnergyRecord, SeriesRecord, WeightRecord]


# ---------------------------------------------------------------------------
# Change feed
# ---------------------------------------------------------------------------

class ChangeKind(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(frozen=True)
class Change:
    """One entry of the platform change feed. ``record`` is None for deletions."""

    kind: ChangeKind
    record_type: RecordType
    record_id: str
    record: Record | None = None


@dataclass(frozen=True)
class ChangeBatch:
    """One page returned by ``RecordStore.poll_changes``."""

    changes: tuple[Change, ...]
    next_token: ChangeToken
    has_more: bool
    expired: bool = False


class MessageKind(str, Enum):
    CHANGE_LIST = "change_list"
    NO_MORE_CHANGES = "no_more_changes"


@dataclass(frozen=True)
class ChangeMessage:
    """Tagged value produced by the change cursor.

    ``CHANGE_LIST`` messages carry ``changes``; the single trailing
    ``NO_MORE_CHANGES`` message carries the ``token`` to persist.
    """

    kind: MessageKind
    changes: tuple[Change, ...] = ()
    token: ChangeToken | None = None

    @classmethod
    def change_list(cls, changes: tuple[Change, ...] | list[Change]) -> ChangeMessage:
        return cls(MessageKind.CHANGE_LIST, changes=tuple(changes))

    @classmethod
    def no_more_changes(cls, token: ChangeToken) -> ChangeMessage:
        return cls(MessageKind.NO_MORE_CHANGES, token=token)

    @property
    def is_final(self) -> bool:
        return self.kind is MessageKind.NO_MORE_CHANGES


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SamplePoint:
    """A chart-ready point: zoned time truncated to the second."""

    time: datetime
    value: float


@dataclass(frozen=True)
class SessionSummary:
    """Merged view of one exercise session.

    Every numeric field is independently optional; None means the platform
    had no data for it, which is not the same as zero activity.
    """

    session_id: str
    active_duration: timedelta | None = None
    steps: int | None = None
    day_steps: int | None = None
    energy_kcal: float | None = None
    min_heart_rate: float | None = None
    avg_heart_rate: float | None = None
    max_heart_rate: float | None = None
    min_speed: float | None = None
    avg_speed: float | None = None
    max_speed: float | None = None
    heart_rate_series: list[SamplePoint] = field(default_factory=list)
    speed_series: list[SamplePoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "active_duration_seconds": (
                self.active_duration.total_seconds()
                if self.active_duration is not None
                else None
            ),
            "steps": self.steps,
            "day_steps": self.day_steps,
            "energy_kcal": self.energy_kcal,
            "heart_rate": {
                "min": self.min_heart_rate,
                "avg": self.avg_heart_rate,
                "max": self.max_heart_rate,
            },
            "speed": {
                "min": self.min_speed,
                "avg": self.avg_speed,
                "max": self.max_speed,
            },
            "heart_rate_series": [_point_dict(p) for p in self.heart_rate_series],
            "speed_series": [_point_dict(p) for p in self.speed_series],
        }


def _point_dict(point: SamplePoint) -> dict[str, Any]:
    return {"time": point.time.isoformat(), "value": point.value}

