"""
Escalation sweep.

The only source of upward escalation. For every live trigger, a synthetic
event describing the trigger's age is run through the normal processor.
When the age crosses a rule's next threshold, the rule produces a draft at a
higher level, which has a new dedup key and so becomes a new trigger. Lower
level triggers stay as they are until something resolves them.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from coordinator.triggers.models import (
    CoordinationEvent,
    CoordinationTrigger,
    EventType,
    ProcessResult,
)
from coordinator.triggers.rules import (
    MISSING_STANDUP_RULE_ID,
    QUESTION_UNANSWERED_RULE_ID,
    ACTION_OVERDUE_RULE_ID,
    BLOCKER_PERSISTED_RULE_ID,
)
from coordinator.triggers.processor import process_event_batch
from coordinator.triggers.store import CoordinationStore

logger = logging.getLogger(__name__)

HOUR_SECONDS = 60 * 60
DAY_SECONDS = 24 * HOUR_SECONDS


def synthesize_aging_event(trigger: CoordinationTrigger, now: datetime) -> CoordinationEvent:
    """
    Build the in-memory event the sweep feeds back for one live trigger.

    Day-based rules add their creation threshold to the trigger's age, since
    the condition already existed for that long when the trigger was created.
    Snooze re-triggers carry no age and never escalate.
    """
    age_seconds = max((now - trigger.created_at).total_seconds(), 0)
    age_hours = math.floor(age_seconds / HOUR_SECONDS)
    age_days = math.floor(age_seconds / DAY_SECONDS)

    metadata = {
        "sourceTriggerId": trigger.id,
        "sourceEscalationLevel": trigger.escalation_level,
        "synthetic": True,
    }

    if trigger.rule_id == QUESTION_UNANSWERED_RULE_ID:
        event_type = EventType.QUESTION_UNANSWERED
        metadata["unansweredHours"] = age_hours
    elif trigger.rule_id == BLOCKER_PERSISTED_RULE_ID:
        event_type = EventType.BLOCKER_PERSISTED
        metadata["blockerDays"] = age_days + 2
    elif trigger.rule_id == MISSING_STANDUP_RULE_ID:
        event_type = EventType.MISSING_STANDUP_DETECTED
        metadata["missingDays"] = age_days + 2
    elif trigger.rule_id == ACTION_OVERDUE_RULE_ID:
        event_type = EventType.ACTION_OVERDUE
        metadata["overdueDays"] = age_days + 1
    else:
        event_type = EventType.SNOOZE_EXPIRED
        metadata["retrigger"] = False

    return CoordinationEvent(
        id=f"synthetic-{trigger.id}",
        project_id=trigger.project_id,
        event_type=event_type,
        target_user_id=trigger.target_user_id,
        related_entity_id=trigger.related_entity_id,
        severity=trigger.severity,
        metadata=metadata,
        occurred_at=now,
        processed_at=None,
    )


def run_scheduled_coordination_sweep(
    store: CoordinationStore,
    now: datetime,
    project_id: Optional[str] = None
) -> ProcessResult:
    """
    Age every live trigger and create escalated triggers where due.

    Args:
        store: Storage backend
        now: Sweep timestamp
        project_id: Restrict to one project; all projects when omitted

    Returns:
        ProcessResult with diagnostics included. Synthetic events are never
        marked processed.
    """
    aging_events = store.get_pending_trigger_ages(now=now, project_id=project_id)
    logger.info(f"Coordination sweep over {len(aging_events)} open trigger(s) (project={project_id or 'all'})")

    return process_event_batch(
        store,
        aging_events,
        now,
        synthetic=True,
        include_diagnostics=True,
    )
