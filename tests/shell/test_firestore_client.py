"""Tests for the Firestore client with a mocked Firestore SDK client."""

import pytest
from datetime import datetime
from unittest.mock import MagicMock

from waterquest.core.models import EngineSnapshot, HydrationEntry, ReminderKind, ReminderRequest
from waterquest.shell.firestore_client import WaterQuestFirestoreClient


def reminder(identifier: str, hour: int) -> ReminderRequest:
    fire_at = datetime(2025, 6, 2, hour)
    return ReminderRequest(
        identifier=identifier,
        kind=ReminderKind.ADAPTIVE,
        fire_at=fire_at,
        minute_of_day=hour * 60,
        title="WaterQuest",
        body="Sip!",
    )


def doc(doc_id: str, data: dict | None = None) -> MagicMock:
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.to_dict.return_value = data or {}
    return snapshot


@pytest.fixture
def sdk():
    """Mocked google.cloud.firestore.Client."""
    return MagicMock()


@pytest.fixture
def db(sdk):
    client = WaterQuestFirestoreClient()
    client._client = sdk
    return client


@pytest.fixture
def user_collection(sdk):
    """Any subcollection under users/{user_id}."""
    return sdk.collection.return_value.document.return_value.collection.return_value


class TestSnapshot:
    """Tests for snapshot load and save."""

    def test_load_missing(self, db, user_collection):
        """A missing document loads as None."""
        user_collection.document.return_value.get.return_value.exists = False
        assert db.load_snapshot("user-123") is None

    def test_load_existing(self, db, user_collection):
        """A stored document is validated into a snapshot."""
        snapshot = EngineSnapshot(
            entries=[HydrationEntry(volume_ml=400, logged_at=datetime(2025, 6, 2, 9))],
            updated_at=datetime(2025, 6, 2, 9),
        )
        stored = user_collection.document.return_value.get.return_value
        stored.exists = True
        stored.to_dict.return_value = snapshot.model_dump(mode="json")

        assert db.load_snapshot("user-123") == snapshot

    def test_load_error_returns_none(self, db, user_collection):
        """Firestore errors are logged and yield None."""
        user_collection.document.return_value.get.side_effect = RuntimeError("unavailable")
        assert db.load_snapshot("user-123") is None

    def test_save_writes_json(self, db, user_collection):
        """The snapshot is written as JSON-safe data."""
        snapshot = EngineSnapshot(updated_at=datetime(2025, 6, 2, 9))
        assert db.save_snapshot("user-123", snapshot) is True

        written = user_collection.document.return_value.set.call_args[0][0]
        assert written["updated_at"] == "2025-06-02T09:00:00"

    def test_save_error_returns_false(self, db, user_collection):
        """Failed writes return False."""
        user_collection.document.return_value.set.side_effect = RuntimeError("denied")
        assert db.save_snapshot("user-123", EngineSnapshot()) is False


class TestReminders:
    """Tests for the reminder outbox."""

    def test_replace_clears_namespace_only(self, db, sdk, user_collection):
        """Only reminders in the waterquest namespace are cleared."""
        ours = doc("waterquest.smart.0")
        foreign = doc("someone-else.1")
        user_collection.stream.return_value = [ours, foreign]
        batch = sdk.batch.return_value

        requests = [reminder("waterquest.smart.0", 10), reminder("waterquest.smart.1", 12)]
        assert db.replace_scheduled("user-123", requests) is True

        batch.delete.assert_called_once_with(ours.reference)
        assert batch.set.call_count == 2
        batch.commit.assert_called_once()

    def test_replace_with_empty_batch(self, db, sdk, user_collection):
        """An empty plan just clears pending reminders."""
        user_collection.stream.return_value = [doc("waterquest.classic.3")]
        assert db.replace_scheduled("user-123", []) is True
        sdk.batch.return_value.set.assert_not_called()

    def test_replace_error_returns_false(self, db, sdk, user_collection):
        """A failed commit returns False."""
        user_collection.stream.return_value = []
        sdk.batch.return_value.commit.side_effect = RuntimeError("aborted")
        assert db.replace_scheduled("user-123", [reminder("waterquest.smart.0", 10)]) is False

    def test_list_sorted(self, db, user_collection):
        """Pending reminders come back earliest first."""
        late = reminder("waterquest.smart.1", 15)
        early = reminder("waterquest.smart.0", 9)
        user_collection.stream.return_value = [
            doc(late.identifier, late.model_dump(mode="json")),
            doc(early.identifier, early.model_dump(mode="json")),
            doc("other"),
        ]
        assert [r.identifier for r in db.list_scheduled("user-123")] == [early.identifier, late.identifier]

    def test_deliver(self, db, user_collection):
        """Delivered reminders are queued with a timestamp."""
        assert db.deliver("user-123", reminder("waterquest.live.1", 10)) is True
        data = user_collection.add.call_args[0][0]
        assert data["identifier"] == "waterquest.live.1"
        assert "queued_at" in data

    def test_deliver_error_returns_false(self, db, user_collection):
        """Delivery errors return False."""
        user_collection.add.side_effect = RuntimeError("offline")
        assert db.deliver("user-123", reminder("waterquest.live.1", 10)) is False
