"""Firestore Client - Persistence for engine snapshots and reminders.

This module handles all database I/O for the hydration engine.
All I/O is contained here; business logic is in the core module.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from google.cloud import firestore

from ..core.models import EngineSnapshot, ReminderRequest
from ..core.reminders import REMINDER_NAMESPACE


logger = logging.getLogger(__name__)


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
    """

    project_id: str | None = None
    database: str | None = None


class WaterQuestFirestoreClient:
    """Client for persisting engine state and reminders to Firestore.

    Document structure per user:
        users/{user_id}/
            state/snapshot: { entries, profile, game_state, ..., updated_at }
            reminders/{identifier}: pending reminder requests
            deliveries/{auto_id}: reminders delivered by the live loop
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore client.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _user_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to user document."""
        return self.client.collection("users").document(user_id)

    def _snapshot_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to the engine snapshot document."""
        return self._user_ref(user_id).collection("state").document("snapshot")

    def _reminders_ref(self, user_id: str) -> firestore.CollectionReference:
        """Get reference to the pending reminders collection."""
        return self._user_ref(user_id).collection("reminders")

    # ==================== Snapshot Operations ====================

    def load_snapshot(self, user_id: str) -> EngineSnapshot | None:
        """Fetch the persisted engine snapshot.

        Args:
            user_id: The user's ID

        Returns:
            EngineSnapshot if found, None otherwise
        """
        logger.debug("Fetching snapshot for user: %s", user_id[:8])
        try:
            doc = self._snapshot_ref(user_id).get()
            if not doc.exists:
                return None
            return EngineSnapshot.model_validate(doc.to_dict())
        except Exception as e:
            logger.error("Failed to fetch snapshot: %s", str(e))
            return None

    def save_snapshot(self, user_id: str, snapshot: EngineSnapshot) -> bool:
        """Save the engine snapshot, replacing any previous one.

        Args:
            user_id: The user's ID
            snapshot: Snapshot to save

        Returns:
            True if successful
        """
        logger.info("Saving snapshot for user: %s (%d entries)", user_id[:8], len(snapshot.entries))
        try:
            self._snapshot_ref(user_id).set(snapshot.model_dump(mode="json"))
            return True
        except Exception as e:
            logger.error("Failed to save snapshot: %s", str(e))
            return False

    # ==================== Reminder Operations ====================

    def list_scheduled(self, user_id: str) -> list[ReminderRequest]:
        """Fetch pending reminders, earliest first.

        Args:
            user_id: The user's ID

        Returns:
            List of pending reminders (may be empty)
        """
        try:
            requests = [
                ReminderRequest.model_validate(doc.to_dict())
                for doc in self._reminders_ref(user_id).stream()
                if doc.id.startswith(REMINDER_NAMESPACE)
            ]
            return sorted(requests, key=lambda r: r.fire_at)
        except Exception as e:
            logger.error("Failed to fetch reminders: %s", str(e))
            return []

    def replace_scheduled(self, user_id: str, requests: list[ReminderRequest]) -> bool:
        """Clear every pending reminder in the namespace, then write the new batch.

        Both steps commit in one batch so a reader never sees a mix of old
        and new reminders.

        Args:
            user_id: The user's ID
            requests: The freshly planned reminders

        Returns:
            True if successful
        """
        logger.info("Rescheduling %d reminders for user: %s", len(requests), user_id[:8])
        try:
            reminders_ref = self._reminders_ref(user_id)
            batch = self.client.batch()
            for doc in reminders_ref.stream():
                if doc.id.startswith(REMINDER_NAMESPACE):
                    batch.delete(doc.reference)
            for request in requests:
                batch.set(reminders_ref.document(request.identifier), request.model_dump(mode="json"))
            batch.commit()
            return True
        except Exception as e:
            logger.error("Failed to reschedule reminders: %s", str(e))
            return False

    def deliver(self, user_id: str, request: ReminderRequest) -> bool:
        """Record a reminder for immediate delivery by the push worker.

        Args:
            user_id: The user's ID
            request: The reminder to deliver now

        Returns:
            True if successful
        """
        logger.info("Delivering %s reminder to user: %s", request.kind.value, user_id[:8])
        try:
            data = request.model_dump(mode="json")
            data["queued_at"] = datetime.utcnow()
            self._user_ref(user_id).collection("deliveries").add(data)
            return True
        except Exception as e:
            logger.error("Failed to deliver reminder: %s", str(e))
            return False
