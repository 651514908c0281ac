"""Coordination trigger engine - turns project activity into escalating nudges."""

from coordinator.triggers.models import (
    CoordinationEvent,
    CoordinationTrigger,
    EventDraft,
    EventSelector,
    EventType,
    ProcessResult,
    Severity,
    TriggerDraft,
    TriggerStatus,
)
from coordinator.triggers.dedup import build_dedup_key
from coordinator.triggers.rules import COORDINATION_RULES
from coordinator.triggers.store import CoordinationStore, StorageError, DuplicateTriggerError
from coordinator.triggers.processor import (
    process_coordination_events,
    resolve_triggers_for_entity,
    record_coordination_event,
)
from coordinator.triggers.sweep import run_scheduled_coordination_sweep
from coordinator.triggers.memory_store import InMemoryCoordinationStore

__all__ = [
    "CoordinationEvent",
    "CoordinationTrigger",
    "EventDraft",
    "EventSelector",
    "EventType",
    "ProcessResult",
    "Severity",
    "TriggerDraft",
    "TriggerStatus",
    "build_dedup_key",
    "COORDINATION_RULES",
    "CoordinationStore",
    "StorageError",
    "DuplicateTriggerError",
    "process_coordination_events",
    "resolve_triggers_for_entity",
    "record_coordination_event",
    "run_scheduled_coordination_sweep",
    "InMemoryCoordinationStore",
]
