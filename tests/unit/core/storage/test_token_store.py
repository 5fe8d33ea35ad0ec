"""Tests for ChangeTokenStore."""

from __future__ import annotations

from healthsync.core.storage.database import SyncDatabase
from healthsync.core.storage.token_store import ChangeTokenStore
from healthsync.domains.health.domain_logic.models import RecordType


class TestTokenStore:
    def test_missing_subscription(self, token_store):
        assert token_store.get("nothing") is None

    def test_save_and_get(self, token_store):
        token_store.save("sessions", "tok-1", {RecordType.EXERCISE_SESSION})
        assert token_store.get("sessions") == "tok-1"

    def test_save_advances_token_and_keeps_issued_at(self, token_store):
        token_store.save("sessions", "tok-1", {RecordType.EXERCISE_SESSION})
        [before] = token_store.list_subscriptions()
        token_store.save("sessions", "tok-2", {RecordType.EXERCISE_SESSION})
        [after] = token_store.list_subscriptions()

        assert token_store.get("sessions") == "tok-2"
        assert after["issued_at"] == before["issued_at"]
        assert after["updated_at"] >= before["updated_at"]

    def test_clear(self, token_store):
        token_store.save("sessions", "tok-1", {RecordType.EXERCISE_SESSION})
        assert token_store.clear("sessions") is True
        assert token_store.get("sessions") is None
        assert token_store.clear("sessions") is False

    def test_list_subscriptions(self, token_store):
        token_store.save("weights", "w", {RecordType.WEIGHT})
        token_store.save("activity", "a", {RecordType.STEPS, RecordType.EXERCISE_SESSION})
        subs = token_store.list_subscriptions()
        assert [s["subscription"] for s in subs] == ["activity", "weights"]
        assert subs[0]["record_types"] == ["exercise_session", "steps"]
        # Tokens themselves are never listed
        assert "token" not in subs[0]

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "sync.db")
        with SyncDatabase(path) as db:
            ChangeTokenStore(db).save("sessions", "tok-1", {RecordType.EXERCISE_SESSION})
        with SyncDatabase(path) as db:
            assert ChangeTokenStore(db).get("sessions") == "tok-1"
