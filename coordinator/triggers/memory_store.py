"""
In-memory coordination store.

Used by tests and local development. A single lock makes every method
atomic, which gives create_trigger the same check-then-insert guarantee the
database store gets from its partial unique index.
"""

import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from coordinator.config import SWEEP_BATCH_SIZE
from coordinator.triggers.models import (
    CoordinationEvent,
    CoordinationTrigger,
    EventDraft,
    TriggerDraft,
    TriggerStatus,
)
from coordinator.triggers.store import CoordinationStore, DuplicateTriggerError
from coordinator.triggers.sweep import synthesize_aging_event


class InMemoryCoordinationStore(CoordinationStore):
    """Keeps events and triggers in lists, in insertion order."""

    def __init__(
        self,
        events: Optional[List[CoordinationEvent]] = None,
        triggers: Optional[List[CoordinationTrigger]] = None,
        sweep_batch_size: int = SWEEP_BATCH_SIZE,
    ):
        self.events: List[CoordinationEvent] = list(events or [])
        self.triggers: List[CoordinationTrigger] = list(triggers or [])
        self.sweep_batch_size = sweep_batch_size
        self._lock = threading.Lock()

    def get_events(self, since, event_ids=None, project_id=None):
        with self._lock:
            matches = []
            for event in self.events:
                if project_id and event.project_id != project_id:
                    continue
                if event_ids:
                    if event.id not in event_ids:
                        continue
                elif event.processed_at is not None or event.occurred_at < since:
                    continue
                matches.append(event.model_copy())
            return sorted(matches, key=lambda e: e.occurred_at)

    def mark_event_processed(self, event_id, processed_at):
        with self._lock:
            for event in self.events:
                if event.id == event_id and event.processed_at is None:
                    event.processed_at = processed_at

    def get_latest_trigger_by_dedup_key(self, dedup_key, project_id):
        with self._lock:
            return self._latest(dedup_key, project_id)

    def _latest(self, dedup_key: str, project_id: str) -> Optional[CoordinationTrigger]:
        matches = [
            t for t in self.triggers
            if t.dedup_key == dedup_key and t.project_id == project_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda t: t.created_at).model_copy()

    def create_trigger(self, draft: TriggerDraft, created_at: datetime) -> CoordinationTrigger:
        with self._lock:
            for existing in self.triggers:
                if (existing.project_id == draft.project_id
                        and existing.dedup_key == draft.dedup_key
                        and existing.is_live):
                    raise DuplicateTriggerError(draft.project_id, draft.dedup_key)

            trigger = CoordinationTrigger(
                id=str(uuid.uuid4()),
                created_at=created_at,
                status=TriggerStatus.PENDING,
                **draft.model_dump(),
            )
            self.triggers.append(trigger)
            return trigger.model_copy()

    def resolve_triggers(self, project_id, resolved_at, related_entity_id=None, rule_ids=None):
        if not related_entity_id and not rule_ids:
            return 0

        with self._lock:
            count = 0
            for trigger in self.triggers:
                if trigger.project_id != project_id or not trigger.is_live:
                    continue
                if related_entity_id and trigger.related_entity_id != related_entity_id:
                    continue
                if rule_ids and trigger.rule_id not in rule_ids:
                    continue
                trigger.status = TriggerStatus.RESOLVED
                trigger.resolved_at = resolved_at
                count += 1
            return count

    def get_pending_trigger_ages(self, now, project_id=None):
        with self._lock:
            live = [
                t for t in self.triggers
                if t.is_live and (project_id is None or t.project_id == project_id)
            ]
            live.sort(key=lambda t: t.created_at)
            return [synthesize_aging_event(t, now) for t in live[:self.sweep_batch_size]]

    def create_event(self, draft: EventDraft) -> CoordinationEvent:
        with self._lock:
            event = CoordinationEvent(id=str(uuid.uuid4()), **draft.model_dump())
            self.events.append(event)
            return event.model_copy()

    # Helpers for tests and local tooling

    def get_trigger(self, trigger_id: str) -> Optional[CoordinationTrigger]:
        for trigger in self.triggers:
            if trigger.id == trigger_id:
                return trigger
        return None

    def get_event(self, event_id: str) -> Optional[CoordinationEvent]:
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def live_triggers(self) -> Dict[str, CoordinationTrigger]:
        """Live triggers keyed by dedup key."""
        return {t.dedup_key: t for t in self.triggers if t.is_live}
