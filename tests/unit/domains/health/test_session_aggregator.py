"""Tests for the session aggregator."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from healthsync.domains.health.domain_logic.errors import SessionNotFound, Unavailable
from healthsync.domains.health.domain_logic.models import (
    EnergyRecord,
    MetricKey,
    RecordType,
    Sample,
    SeriesRecord,
    SessionRecord,
    StepsRecord,
)
from healthsync.domains.health.domain_logic.session_aggregator import (
    ORIGIN_RESTRICTED_METRICS,
    UNRESTRICTED_METRICS,
    RestrictedData,
    day_window,
    merge_summary,
    summarize,
)

KST = timezone(timedelta(hours=9))
NINE = timedelta(hours=9)
WORKOUT_APP = "com.example.workout"
PHONE = "com.example.pedometer"


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _kst(day: int, hour: int, minute: int = 0, second: int = 0, micro: int = 0) -> datetime:
    return datetime(2024, 3, day, hour, minute, second, micro, tzinfo=KST)


def _session(start: datetime, end: datetime, **kwargs) -> SessionRecord:
    fields = {"origin": WORKOUT_APP, "start_offset": NINE, "end_offset": NINE,
              "record_id": "run-1"}
    fields.update(kwargs)
    return SessionRecord(start=start, end=end, **fields)


class FakeStore:
    """Returns canned aggregates keyed by whether the window is origin-filtered."""

    def __init__(self, session, unrestricted=None, restricted=None, day=None,
                 fail_on=None, slow_day=False):
        self.session = session
        self.unrestricted = unrestricted or {}
        self.restricted = restricted or {}
        self.day = day or {}
        self.fail_on = fail_on
        self.aggregate_calls = []
        self.slow_day = slow_day
        self.day_cancelled = False

    async def resolve_session(self, session_id):
        if session_id != self.session.record_id:
            raise SessionNotFound(session_id)
        return self.session

    async def aggregate(self, metrics, window):
        self.aggregate_calls.append((frozenset(metrics), window))
        if window.origins is not None:
            if self.fail_on == "restricted":
                raise Unavailable("aggregate failed")
            return self.restricted
        if window.start == self.session.start:
            if self.fail_on == "unrestricted":
                raise Unavailable("aggregate failed")
            return self.unrestricted
        if self.fail_on == "day":
            raise Unavailable("aggregate failed")
        if self.slow_day:
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                self.day_cancelled = True
                raise
        return self.day

    async def read_window(self, record_type, window):
        if self.fail_on == "series":
            raise Unavailable("read failed")
        return []


@pytest.fixture
def seeded_store(memory_store):
    memory_store.preload([
        _session(_kst(5, 8), _kst(5, 8, 30)),
        StepsRecord(_kst(5, 8), _kst(5, 8, 30), PHONE, 3000, NINE, NINE),
        StepsRecord(_kst(5, 10), _kst(5, 12), PHONE, 9000, NINE, NINE),
        StepsRecord(_kst(4, 23), _kst(4, 23, 30), PHONE, 500, NINE, NINE),
        EnergyRecord(_kst(5, 8), _kst(5, 8, 30), PHONE, 250.0, NINE, NINE),
        SeriesRecord(
            RecordType.HEART_RATE, _kst(5, 8), _kst(5, 8, 30), WORKOUT_APP,
            samples=(
                Sample(_kst(5, 8, 0, 0, 500_000), 100),
                Sample(_kst(5, 8, 10), 140),
                Sample(_kst(5, 8, 20), 120),
            ),
            start_offset=NINE, end_offset=NINE,
        ),
        SeriesRecord(
            RecordType.HEART_RATE, _kst(5, 8), _kst(5, 8, 30), "com.example.other",
            samples=(Sample(_kst(5, 8, 5), 200),),
            start_offset=NINE, end_offset=NINE,
        ),
        SeriesRecord(
            RecordType.SPEED, _kst(5, 8), _kst(5, 8, 30), WORKOUT_APP,
            samples=(
                Sample(_kst(5, 8, 1), 2.5),
                Sample(_kst(5, 8, 2), 3.0),
                Sample(_kst(5, 8, 3), 3.5),
            ),
            start_offset=NINE, end_offset=NINE,
        ),
    ])
    return memory_store


class TestDayWindow:
    def test_late_session_day_window(self):
        session = _session(_kst(5, 23, 50), _kst(6, 0, 20))
        window = day_window(session)
        assert window.start == _kst(5, 0)
        assert window.end == _kst(5, 23, 59, 59, 999_000)
        assert window.start.utcoffset() == NINE

    def test_independent_of_session_end(self):
        short = day_window(_session(_kst(5, 23, 50), _kst(5, 23, 55)))
        long = day_window(_session(_kst(5, 23, 50), _kst(7, 3)))
        assert short == long

    def test_falls_back_to_end_offset(self):
        session = _session(
            datetime(2024, 3, 5, 23, 0, tzinfo=timezone.utc), _kst(6, 9),
            start_offset=None, end_offset=NINE,
        )
        # 23:00 UTC is 08:00 on the 6th in +09:00
        assert day_window(session).start == _kst(6, 0)

    def test_utc_when_no_offset(self):
        start = datetime(2024, 3, 5, 23, 0, tzinfo=timezone.utc)
        session = _session(start, start + timedelta(minutes=10),
                           start_offset=None, end_offset=None)
        window = day_window(session)
        assert window.start == datetime(2024, 3, 5, tzinfo=timezone.utc)

    def test_missing_offsets_are_logged(self, caplog):
        start = datetime(2024, 3, 5, 23, 0, tzinfo=timezone.utc)
        session = _session(start, start + timedelta(minutes=10),
                           start_offset=None, end_offset=None)
        with caplog.at_level(logging.WARNING):
            day_window(session)
        assert "no zone offset" in caplog.text


class TestSummarize:
    def test_session_and_day_steps_are_separate(self, seeded_store):
        summary = _run(summarize(seeded_store, "run-1"))
        assert summary.steps == 3000
        assert summary.day_steps == 12000

    def test_origin_restricted_heart_rate(self, seeded_store):
        summary = _run(summarize(seeded_store, "run-1"))
        assert summary.min_heart_rate == 100
        assert summary.max_heart_rate == 140
        assert summary.avg_heart_rate == pytest.approx(120)

    def test_unrestricted_steps_and_energy(self, seeded_store):
        summary = _run(summarize(seeded_store, "run-1"))
        assert summary.energy_kcal == pytest.approx(250.0)

    def test_speed_and_duration(self, seeded_store):
        summary = _run(summarize(seeded_store, "run-1"))
        assert summary.active_duration == timedelta(minutes=30)
        assert summary.min_speed == 2.5
        assert summary.max_speed == 3.5
        assert summary.avg_speed == pytest.approx(3.0)

    def test_series_are_flattened(self, seeded_store):
        summary = _run(summarize(seeded_store, "run-1"))
        assert [p.value for p in summary.heart_rate_series] == [100, 140, 120]
        assert summary.heart_rate_series[0].time == _kst(5, 8)
        assert [p.value for p in summary.speed_series] == [2.5, 3.0, 3.5]

    def test_unknown_session(self, seeded_store):
        with pytest.raises(SessionNotFound):
            _run(summarize(seeded_store, "missing"))

    def test_no_data_fields_are_absent(self, memory_store):
        memory_store.preload([_session(_kst(5, 8), _kst(5, 8, 30))])
        summary = _run(summarize(memory_store, "run-1"))
        assert summary.steps is None
        assert summary.day_steps is None
        assert summary.energy_kcal is None
        assert summary.min_heart_rate is None
        assert summary.heart_rate_series == []
        # The session itself still yields a duration
        assert summary.active_duration == timedelta(minutes=30)


class TestQueryShape:
    def test_filters_per_phase(self):
        session = _session(_kst(5, 8), _kst(5, 8, 30))
        store = FakeStore(session)
        _run(summarize(store, "run-1"))

        by_metrics = {metrics: window for metrics, window in store.aggregate_calls}
        assert by_metrics[UNRESTRICTED_METRICS].origins is None
        assert by_metrics[ORIGIN_RESTRICTED_METRICS].origins == frozenset({WORKOUT_APP})
        day = by_metrics[frozenset({MetricKey.STEPS_COUNT_TOTAL})]
        assert day.origins is None
        assert day.start == _kst(5, 0)

    def test_empty_heart_rate_aggregate_is_absent_not_zero(self):
        session = _session(_kst(5, 8), _kst(5, 8, 30))
        store = FakeStore(
            session,
            unrestricted={MetricKey.STEPS_COUNT_TOTAL: 3000},
            restricted={},
            day={MetricKey.STEPS_COUNT_TOTAL: 12000},
        )
        summary = _run(summarize(store, "run-1"))
        assert summary.min_heart_rate is None
        assert summary.avg_heart_rate is None
        assert summary.max_heart_rate is None
        assert summary.active_duration is None
        assert summary.steps == 3000
        assert summary.day_steps == 12000

    def test_zero_is_kept_as_zero(self):
        session = _session(_kst(5, 8), _kst(5, 8, 30))
        store = FakeStore(session, unrestricted={MetricKey.STEPS_COUNT_TOTAL: 0})
        summary = _run(summarize(store, "run-1"))
        assert summary.steps == 0
        assert summary.energy_kcal is None

    @pytest.mark.parametrize("phase", ["unrestricted", "restricted", "day", "series"])
    def test_any_failed_query_fails_the_call(self, phase):
        session = _session(_kst(5, 8), _kst(5, 8, 30))
        store = FakeStore(session, fail_on=phase)
        with pytest.raises(Unavailable):
            _run(summarize(store, "run-1"))

    def test_failure_cancels_pending_phases(self):
        session = _session(_kst(5, 8), _kst(5, 8, 30))
        store = FakeStore(session, fail_on="unrestricted", slow_day=True)
        with pytest.raises(Unavailable):
            _run(summarize(store, "run-1"))
        assert store.day_cancelled


class TestMergeSummary:
    def test_each_field_from_its_phase(self):
        summary = merge_summary(
            "s",
            {MetricKey.STEPS_COUNT_TOTAL: 3000, MetricKey.ENERGY_TOTAL: 180.5,
             # ignored: heart rate is owned by the restricted phase
             MetricKey.HEART_RATE_MAX: 999},
            RestrictedData(aggregates={
                MetricKey.HEART_RATE_MAX: 150,
                MetricKey.EXERCISE_DURATION_TOTAL: 600,
                # ignored: steps are owned by the unrestricted phase
                MetricKey.STEPS_COUNT_TOTAL: 1,
            }),
            {MetricKey.STEPS_COUNT_TOTAL: 12000},
        )
        assert summary.steps == 3000
        assert summary.day_steps == 12000
        assert summary.energy_kcal == 180.5
        assert summary.max_heart_rate == 150
        assert summary.active_duration == timedelta(minutes=10)

    def test_to_dict_renders_absent_as_none(self):
        summary = merge_summary("s", {}, RestrictedData(aggregates={}), {})
        data = summary.to_dict()
        assert data["steps"] is None
        assert data["day_steps"] is None
        assert data["heart_rate"] == {"min": None, "avg": None, "max": None}
        assert data["active_duration_seconds"] is None
