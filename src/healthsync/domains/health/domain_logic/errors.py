"""Error taxonomy for the sync and aggregation engine.

Hard errors abort the operation in progress. Soft conditions (a record
without any zone offset, a metric missing from an aggregate) are not
represented here: they degrade the result in place.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for engine errors surfaced to callers."""


class TokenExpired(SyncError):
    """The change token is no longer valid.

    Terminal for the subscription: the caller must issue a new token and
    accept a gap in the change history.
    """


class SessionNotFound(SyncError):
    """A session identifier does not resolve to an exercise session record."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Exercise session not found: {session_id!r}")
        self.session_id = session_id


class Unavailable(SyncError):
    """Transport or platform failure on a record store call. Never retried here."""
