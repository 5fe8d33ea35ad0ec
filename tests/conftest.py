"""Shared test fixtures for healthsync tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("SEED_PATH", "")
    monkeypatch.setenv("WATCHED_RECORD_TYPES", '["exercise_session"]')

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from healthsync.domains.health.domain_logic.models import (  # noqa: E402
    ChangeBatch,
    ChangeToken,
)

# ---------------------------------------------------------------------------
# Scripted change feed
# ---------------------------------------------------------------------------

class ScriptedChangeStore:
    """Store whose ``poll_changes`` replays a fixed list of batches.

    Only the change-feed part of RecordStore is implemented; it records every
    token it was polled with.
    """

    def __init__(self, batches: list[ChangeBatch]) -> None:
        self._batches = list(batches)
        self.polled: list[ChangeToken] = []

    async def poll_changes(self, token: ChangeToken) -> ChangeBatch:
        self.polled.append(token)
        return self._batches.pop(0)


@pytest.fixture
def scripted_store():
    """Factory: ``scripted_store([batch, ...])`` builds a ScriptedChangeStore."""
    return ScriptedChangeStore


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_store():
    """An empty InMemoryRecordStore."""
    from healthsync.domains.health.connectors.memory import InMemoryRecordStore

    return InMemoryRecordStore()


@pytest.fixture
def sync_db():
    """Create an in-memory SyncDatabase for testing."""
    from healthsync.core.storage.database import SyncDatabase

    db = SyncDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def token_store(sync_db):
    from healthsync.core.storage.token_store import ChangeTokenStore

    return ChangeTokenStore(sync_db)


@pytest.fixture
def audit_logger(sync_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from healthsync.core.audit.logger import AuditLogger

    return AuditLogger(sync_db)
