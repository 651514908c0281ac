"""
Storage contract consumed by the trigger engine.

All durable state lives behind this interface. Concrete stores must make
trigger creation conflict-detectable: inserting a second live trigger for the
same (project_id, dedup_key) raises DuplicateTriggerError instead of
succeeding.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from coordinator.triggers.models import (
    CoordinationEvent,
    CoordinationTrigger,
    EventDraft,
    TriggerDraft,
)


class StorageError(Exception):
    """Base exception for storage failures (connection loss, timeouts, ...)."""
    pass


class DuplicateTriggerError(StorageError):
    """A live trigger with the same dedup key already exists."""

    def __init__(self, project_id: str, dedup_key: str):
        super().__init__(f"Live trigger already exists for {project_id}/{dedup_key}")
        self.project_id = project_id
        self.dedup_key = dedup_key


class CoordinationStore(ABC):
    """Narrow persistence interface for events and triggers."""

    @abstractmethod
    def get_events(
        self,
        since: datetime,
        event_ids: Optional[List[str]] = None,
        project_id: Optional[str] = None,
    ) -> List[CoordinationEvent]:
        """Return candidate events, oldest first.

        With event_ids, exactly those events (scoped to project_id if given).
        Otherwise unprocessed events that occurred at or after `since`.
        """

    @abstractmethod
    def mark_event_processed(self, event_id: str, processed_at: datetime) -> None:
        """Set processed_at if it is still unset. Never overwrites."""

    @abstractmethod
    def get_latest_trigger_by_dedup_key(
        self,
        dedup_key: str,
        project_id: str,
    ) -> Optional[CoordinationTrigger]:
        """Most recently created trigger for the key, any status."""

    @abstractmethod
    def create_trigger(self, draft: TriggerDraft, created_at: datetime) -> CoordinationTrigger:
        """Insert a PENDING trigger.

        Raises:
            DuplicateTriggerError: a live trigger already holds draft.dedup_key
        """

    @abstractmethod
    def resolve_triggers(
        self,
        project_id: str,
        resolved_at: datetime,
        related_entity_id: Optional[str] = None,
        rule_ids: Optional[List[str]] = None,
    ) -> int:
        """Mark every matching live trigger RESOLVED and return how many changed.

        Returns 0 without touching anything when neither related_entity_id nor
        rule_ids narrow the match.
        """

    @abstractmethod
    def get_pending_trigger_ages(
        self,
        now: datetime,
        project_id: Optional[str] = None,
    ) -> List[CoordinationEvent]:
        """One synthetic aging event per live trigger (see sweep.synthesize_aging_event)."""

    @abstractmethod
    def create_event(self, draft: EventDraft) -> CoordinationEvent:
        """Persist a new, unprocessed event."""
