"""MCP tools for exercise sessions, daily steps and weight.

Absent aggregates are rendered as ``null`` so a client can show "not
available" instead of a misleading zero.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from healthsync.domains.health.domain_logic.activity import (
    list_sessions as list_sessions_in_window,
    read_weights,
    record_session as record_session_records,
    record_weight as record_weight_reading,
    total_steps_for_day,
    weekly_weight_average,
)
from healthsync.domains.health.domain_logic.errors import SessionNotFound, Unavailable
from healthsync.domains.health.domain_logic.session_aggregator import summarize

if TYPE_CHECKING:
    from healthsync.core.audit.logger import AuditLogger
    from healthsync.domains.health.connectors import RecordStore

logger = logging.getLogger(__name__)


def _parse_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _error(status: str, message: str) -> str:
    return json.dumps({"status": status, "message": message})


def register_session_tools(
    mcp: FastMCP,
    store: RecordStore,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register session, step and weight tools on the MCP server."""

    def _audit(action: str, tool_name: str, tool_input: dict, started: float,
               error: BaseException | None = None, record_count: int | None = None) -> None:
        if audit_logger is None:
            return
        audit_logger.log_invocation(
            action,
            tool_name=tool_name,
            tool_input=tool_input,
            record_count=record_count,
            duration_ms=(time.monotonic() - started) * 1000,
            error=error,
        )

    @mcp.tool
    async def summarize_session(ctx: Context, session_id: str) -> str:
        """Summarize one exercise session.

        Reports session steps and whole-day steps as separate values, energy,
        active duration, heart-rate and speed statistics, and chart-ready
        heart-rate and speed series.

        Args:
            session_id: Id of the exercise session record.
        """
        started = time.monotonic()
        tool_input = {"session_id": session_id}
        try:
            summary = await summarize(store, session_id)
        except SessionNotFound as exc:
            _audit("session_summary", "summarize_session", tool_input, started, exc)
            return _error("not_found", str(exc))
        except Unavailable as exc:
            _audit("session_summary", "summarize_session", tool_input, started, exc)
            return _error("unavailable", str(exc))

        _audit("session_summary", "summarize_session", tool_input, started,
               record_count=len(summary.heart_rate_series) + len(summary.speed_series))
        return json.dumps({"status": "ok", "summary": summary.to_dict()}, indent=2)

    @mcp.tool
    async def list_sessions(ctx: Context, start: str, end: str) -> str:
        """List exercise sessions between two ISO 8601 instants.

        Args:
            start: Window start, e.g. '2024-03-01T00:00:00+09:00'.
            end: Window end.
        """
        try:
            sessions = await list_sessions_in_window(
                store, _parse_instant(start), _parse_instant(end)
            )
        except ValueError as exc:
            return _error("invalid_request", str(exc))
        except Unavailable as exc:
            return _error("unavailable", str(exc))

        return json.dumps({
            "status": "ok",
            "sessions": [
                {
                    "id": s.record_id,
                    "title": s.title,
                    "exercise_type": s.exercise_type,
                    "origin": s.origin,
                    "start": s.start.isoformat(),
                    "end": s.end.isoformat(),
                }
                for s in sessions
            ],
        }, indent=2)

    @mcp.tool
    async def daily_steps(ctx: Context, day: str, utc_offset_minutes: int = 0) -> str:
        """Total steps for one local calendar day, across all data sources.

        Args:
            day: Calendar date, 'YYYY-MM-DD'.
            utc_offset_minutes: Local zone offset used to delimit the day.
        """
        offset = timedelta(minutes=utc_offset_minutes)
        try:
            local_noon = datetime.fromisoformat(day).replace(
                hour=12, tzinfo=timezone(offset)
            )
            steps = await total_steps_for_day(store, local_noon, offset)
        except ValueError as exc:
            return _error("invalid_request", str(exc))
        except Unavailable as exc:
            return _error("unavailable", str(exc))
        return json.dumps({"status": "ok", "day": day, "steps": steps})

    @mcp.tool
    async def weight_average(ctx: Context, days: int = 7) -> str:
        """Average body weight over the last ``days`` days, in kilograms.

        Args:
            days: Look-back period (default: 7).
        """
        end = datetime.now(timezone.utc)
        try:
            average = await weekly_weight_average(store, end - timedelta(days=days), end)
        except Unavailable as exc:
            return _error("unavailable", str(exc))
        return json.dumps({"status": "ok", "period_days": days, "average_kg": average})

    @mcp.tool
    async def record_weight(ctx: Context, kilograms: float, at: str | None = None) -> str:
        """Record a manual weight reading.

        Args:
            kilograms: Body weight in kilograms.
            at: Optional ISO 8601 instant; defaults to now.
        """
        started = time.monotonic()
        try:
            when = _parse_instant(at) if at else datetime.now(timezone.utc)
            record_id = await record_weight_reading(store, kilograms, when)
        except ValueError as exc:
            return _error("invalid_request", str(exc))
        except Unavailable as exc:
            _audit("data_write", "record_weight", {"at": at}, started, exc)
            return _error("unavailable", str(exc))

        _audit("data_write", "record_weight", {"at": at}, started, record_count=1)
        return json.dumps({"status": "ok", "record_id": record_id})

    @mcp.tool
    async def list_weights(ctx: Context, days: int = 30) -> str:
        """List weight readings from the last ``days`` days, oldest first.

        Args:
            days: Look-back period (default: 30).
        """
        end = datetime.now(timezone.utc)
        try:
            readings = await read_weights(store, end - timedelta(days=days), end)
        except Unavailable as exc:
            return _error("unavailable", str(exc))
        return json.dumps({
            "status": "ok",
            "period_days": days,
            "readings": [
                {
                    "id": r.record_id,
                    "time": r.time.isoformat(),
                    "kilograms": r.kilograms,
                    "origin": r.origin,
                }
                for r in readings
            ],
        }, indent=2)

    @mcp.tool
    async def record_session(
        ctx: Context,
        start: str,
        end: str,
        steps: int,
        energy_kcal: float,
        heart_rate_bpm: float | None = None,
        exercise_type: str = "running",
        title: str | None = None,
    ) -> str:
        """Record a manual exercise session with its steps and calories.

        When ``heart_rate_bpm`` is given, a heart-rate series at that rate is
        written alongside, one sample every 30 seconds.

        Args:
            start: Session start, ISO 8601 with a zone offset.
            end: Session end, ISO 8601 with a zone offset.
            steps: Steps taken during the session.
            energy_kcal: Energy burned, in kilocalories.
            heart_rate_bpm: Optional constant heart rate for the series.
            exercise_type: e.g. 'running', 'cycling' (default: 'running').
            title: Optional session title.
        """
        started = time.monotonic()
        tool_input = {"start": start, "end": end, "exercise_type": exercise_type}
        bpm = None if heart_rate_bpm is None else (lambda _t: heart_rate_bpm)
        try:
            session_id = await record_session_records(
                store, _parse_instant(start), _parse_instant(end),
                steps=steps, energy_kcal=energy_kcal, heart_rate_bpm=bpm,
                exercise_type=exercise_type, title=title,
            )
        except ValueError as exc:
            return _error("invalid_request", str(exc))
        except Unavailable as exc:
            _audit("data_write", "record_session", tool_input, started, exc)
            return _error("unavailable", str(exc))

        _audit("data_write", "record_session", tool_input, started, record_count=1)
        return json.dumps({"status": "ok", "session_id": session_id})
