"""
Coordination event processor.

Folds raw coordination events into trigger state:
1. Resolve live triggers the event clears
2. Create a trigger when a rule matches and no live trigger holds its dedup key
3. Mark the event processed

Every step is idempotent, so overlapping or repeated runs are safe. The
caller always supplies `now`; nothing here reads the wall clock.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from coordinator.config import EVENT_LOOKBACK_HOURS
from coordinator.triggers.models import (
    CoordinationEvent,
    EventDraft,
    EventSelector,
    DiagnosticEntry,
    ProcessResult,
    TriggerStatus,
)
from coordinator.triggers.metadata import parse_event_metadata, MalformedEventError
from coordinator.triggers.rules import evaluate_creation, evaluate_resolution
from coordinator.triggers.store import CoordinationStore, DuplicateTriggerError

logger = logging.getLogger(__name__)


class _BatchLog:
    """Collects diagnostics for a run when the caller asked for them."""

    def __init__(self, enabled: bool):
        self.entries: Optional[List[DiagnosticEntry]] = [] if enabled else None

    def add(self, level: str, message: str, **fields):
        if self.entries is not None:
            self.entries.append(DiagnosticEntry(level=level, message=message, **fields))


def process_coordination_events(
    store: CoordinationStore,
    now: datetime,
    selector: Optional[EventSelector] = None
) -> ProcessResult:
    """
    Process unprocessed coordination events.

    Args:
        store: Storage backend
        now: Processing timestamp, used for processed_at/created_at/resolved_at
        selector: Explicit event ids, or a time window (default: last
            EVENT_LOOKBACK_HOURS) optionally scoped to a project

    Returns:
        ProcessResult with processed/created/resolved counts

    Raises:
        StorageError (or the backend's own error) if events cannot be fetched.
    """
    selector = selector or EventSelector()
    since = selector.since or now - timedelta(hours=EVENT_LOOKBACK_HOURS)

    events = store.get_events(
        since=since,
        event_ids=selector.event_ids,
        project_id=selector.project_id,
    )
    # Already processed events are never eligible, even when selected by id
    events = [e for e in events if e.processed_at is None]

    return process_event_batch(
        store,
        events,
        now,
        include_diagnostics=selector.include_diagnostics,
    )


def process_event_batch(
    store: CoordinationStore,
    events: List[CoordinationEvent],
    now: datetime,
    synthetic: bool = False,
    include_diagnostics: bool = False
) -> ProcessResult:
    """
    Run the resolve/create/mark pipeline over an already fetched batch.

    Each event is handled in isolation. A failure on one event is logged and
    leaves that event unprocessed; the rest of the batch continues.

    synthetic is True only for sweep events: they are not stored, so they are
    never marked processed, and their sourceEscalationLevel limits creation to
    higher levels. Stored events never get that limit, whatever their
    metadata says.
    """
    result = ProcessResult()
    batch_log = _BatchLog(include_diagnostics)

    for event in events:
        try:
            _process_event(store, event, now, synthetic, result, batch_log)
        except Exception as e:
            result.failed_events += 1
            logger.error(f"Failed to process coordination event {event.id}: {e}", exc_info=True)
            batch_log.add("error", f"Processing failed, will retry: {e}", event_id=event.id)

    result.diagnostics = batch_log.entries

    if result.created_triggers or result.resolved_triggers or result.failed_events:
        logger.info(
            f"Coordination batch: {result.processed_events} processed, "
            f"{result.created_triggers} created, {result.resolved_triggers} resolved, "
            f"{result.failed_events} failed"
        )
    return result


def _process_event(
    store: CoordinationStore,
    event: CoordinationEvent,
    now: datetime,
    synthetic: bool,
    result: ProcessResult,
    batch_log: _BatchLog
) -> None:
    try:
        metadata = parse_event_metadata(event)
    except MalformedEventError as e:
        _skip_malformed(store, event, now, synthetic, result, batch_log, e)
        return

    # Resolution first
    resolution = evaluate_resolution(event, metadata)
    if resolution:
        resolved = store.resolve_triggers(
            project_id=event.project_id,
            resolved_at=now,
            related_entity_id=resolution.related_entity_id,
            rule_ids=resolution.rule_ids,
        )
        result.resolved_triggers += resolved
        if resolved:
            logger.info(
                f"Resolved {resolved} trigger(s) for {resolution.related_entity_id} "
                f"from {event.event_type.value} ({event.id})"
            )
            batch_log.add(
                "info",
                f"Resolved {resolved} trigger(s) from lifecycle event {event.event_type.value}.",
                event_id=event.id,
            )

    # Then creation; a rule rejecting its fields does not undo the resolution above
    try:
        draft = evaluate_creation(
            event,
            metadata,
            source_escalation_level=metadata.source_escalation_level if synthetic else None,
        )
    except MalformedEventError as e:
        _skip_malformed(store, event, now, synthetic, result, batch_log, e)
        return

    if draft:
        latest = store.get_latest_trigger_by_dedup_key(
            dedup_key=draft.dedup_key,
            project_id=draft.project_id,
        )
        if latest and latest.status != TriggerStatus.RESOLVED:
            result.duplicate_triggers += 1
            batch_log.add(
                "debug",
                f"Live trigger {latest.id} already holds this key.",
                event_id=event.id,
                rule_id=draft.rule_id,
                dedup_key=draft.dedup_key,
            )
        else:
            try:
                trigger = store.create_trigger(draft, now)
            except DuplicateTriggerError:
                # Lost a race with a concurrent run; the condition is already recorded
                result.duplicate_triggers += 1
                logger.debug(f"Concurrent insert won for {draft.dedup_key}, skipping")
                batch_log.add(
                    "debug",
                    "Concurrent run created this trigger first.",
                    event_id=event.id,
                    rule_id=draft.rule_id,
                    dedup_key=draft.dedup_key,
                )
            else:
                result.created_triggers += 1
                logger.info(
                    f"Created trigger {trigger.id} ({draft.rule_id} L{draft.escalation_level}) "
                    f"for {draft.target_user_id} from event {event.id}"
                )
                batch_log.add(
                    "info",
                    f"Created trigger at escalation L{draft.escalation_level}.",
                    event_id=event.id,
                    rule_id=draft.rule_id,
                    dedup_key=draft.dedup_key,
                )

    _finish(store, event, now, synthetic, result)


def _skip_malformed(
    store: CoordinationStore,
    event: CoordinationEvent,
    now: datetime,
    synthetic: bool,
    result: ProcessResult,
    batch_log: _BatchLog,
    error: MalformedEventError
) -> None:
    # Unfixable by retrying; mark it so it is not picked up forever
    logger.warning(f"Skipping malformed coordination event {event.id} ({event.event_type.value}): {error.detail}")
    batch_log.add("warning", f"Malformed metadata: {error.detail}", event_id=event.id)
    _finish(store, event, now, synthetic, result)
    result.malformed_events += 1


def _finish(
    store: CoordinationStore,
    event: CoordinationEvent,
    now: datetime,
    synthetic: bool,
    result: ProcessResult
) -> None:
    if not synthetic:
        store.mark_event_processed(event.id, now)
    result.processed_events += 1


def resolve_triggers_for_entity(
    store: CoordinationStore,
    project_id: str,
    related_entity_id: str,
    resolved_at: datetime,
    rule_ids: Optional[List[str]] = None
) -> int:
    """Explicitly resolve every live trigger for an entity (optionally only some rules)."""
    resolved = store.resolve_triggers(
        project_id=project_id,
        resolved_at=resolved_at,
        related_entity_id=related_entity_id,
        rule_ids=rule_ids,
    )
    logger.info(f"Explicitly resolved {resolved} trigger(s) for {project_id}/{related_entity_id}")
    return resolved


def record_coordination_event(
    store: CoordinationStore,
    draft: EventDraft,
    now: datetime,
    process_immediately: bool = True
) -> Tuple[CoordinationEvent, Optional[ProcessResult]]:
    """
    Persist a new coordination event and, by default, process it right away.

    Processing failures do not undo the insert: the event stays unprocessed
    and the next run picks it up.
    """
    event = store.create_event(draft)
    logger.info(f"Recorded coordination event {event.id} ({event.event_type.value}) for project {event.project_id}")

    if not process_immediately:
        return event, None

    result = process_coordination_events(
        store,
        now,
        EventSelector(event_ids=[event.id], project_id=event.project_id),
    )
    return event, result
