"""
Coordination rule catalog.

A fixed, ordered set of rules. Each rule decides whether an event should
create a trigger (and at which escalation level), and separately whether an
event clears triggers previously created by that rule.

Evaluation order is the order of COORDINATION_RULES:
- resolution predicates are all evaluated, matching rule ids are combined
- creation predicates stop at the first match
"""

from typing import Optional, List, Tuple
from coordinator.triggers.models import (
    CoordinationEvent,
    Severity,
    TriggerCandidate,
    ResolutionMatch,
    TriggerDraft,
    severity_at_least,
)
from coordinator.triggers.metadata import (
    MalformedEventError,
    EventMetadata,
    BlockerPersistedMetadata,
    MissingStandupMetadata,
    QuestionUnansweredMetadata,
    QuestionEventMetadata,
    ActionInteractionMetadata,
    ActionOverdueMetadata,
    SnoozeExpiredMetadata,
)
from coordinator.triggers.dedup import build_dedup_key

MISSING_STANDUP_RULE_ID = "missing-standup-two-days"
QUESTION_UNANSWERED_RULE_ID = "question-unanswered-24h"
ACTION_OVERDUE_RULE_ID = "action-overdue"
BLOCKER_PERSISTED_RULE_ID = "blocker-persisted-high-severity"
SNOOZE_RETRIGGER_RULE_ID = "snooze-expired-retrigger"

ACTION_STATE_DONE = "DONE"
ACTION_STATE_OVERDUE = "OVERDUE"
QUESTION_STATUS_ANSWERED = "ANSWERED"


def escalation_level_for(value: float, level_2_at: float, level_3_at: float) -> int:
    """Map an age measure onto escalation levels 1-3."""
    if value >= level_3_at:
        return 3
    if value >= level_2_at:
        return 2
    return 1


def _require_age(event: CoordinationEvent, key: str, value: Optional[float]) -> float:
    if value is None:
        raise MalformedEventError(event.id, f"{key}: Field required")
    if value < 0:
        raise MalformedEventError(event.id, f"{key}: must be >= 0, got {value}")
    return value


def resolve_escalation_target(
    metadata: EventMetadata,
    escalation_level: int,
    fallback_user_id: Optional[str]
) -> Optional[str]:
    """
    Pick who a trigger should go to at a given escalation level.

    - Level 3+: product owner, then project owner
    - Level 2: dependency owner, then manager
    - Level 1: the event's own target user
    Falls back to the event's target user when no contact is known.
    """
    if escalation_level >= 3:
        return metadata.po_user_id or metadata.project_owner_user_id or fallback_user_id
    if escalation_level == 2:
        return metadata.dependency_owner_user_id or metadata.manager_user_id or fallback_user_id
    return fallback_user_id


def _candidate(
    event: CoordinationEvent,
    metadata: EventMetadata,
    escalation_level: int,
    severity: Severity
) -> Optional[TriggerCandidate]:
    target_user_id = resolve_escalation_target(metadata, escalation_level, event.target_user_id)
    if not target_user_id:
        return None
    return TriggerCandidate(
        target_user_id=target_user_id,
        related_entity_id=event.related_entity_id,
        severity=severity,
        escalation_level=escalation_level,
    )


def _resolution(event: CoordinationEvent, rule_id: str) -> Optional[ResolutionMatch]:
    # Resolution is always scoped to an entity
    if not event.related_entity_id:
        return None
    return ResolutionMatch(related_entity_id=event.related_entity_id, rule_ids=[rule_id])


class CoordinationRule:
    """Base rule. Subclasses override the predicates they support."""

    rule_id: str = ""

    def matches_creation(
        self,
        event: CoordinationEvent,
        metadata: EventMetadata
    ) -> Optional[TriggerCandidate]:
        return None

    def matches_resolution(
        self,
        event: CoordinationEvent,
        metadata: EventMetadata
    ) -> Optional[ResolutionMatch]:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.rule_id}>"


class MissingStandupRule(CoordinationRule):
    """Two or more consecutive missed standups. Cleared by absence, never by an event."""

    rule_id = MISSING_STANDUP_RULE_ID

    def matches_creation(self, event, metadata):
        if not isinstance(metadata, MissingStandupMetadata):
            return None
        missing_days = _require_age(event, "missingDays", metadata.missing_days)
        if missing_days < 2:
            return None
        level = escalation_level_for(missing_days, level_2_at=3, level_3_at=4)
        return _candidate(event, metadata, level, event.severity or Severity.MEDIUM)


class QuestionUnansweredRule(CoordinationRule):
    """Question left unanswered for 24h or more."""

    rule_id = QUESTION_UNANSWERED_RULE_ID

    def matches_creation(self, event, metadata):
        if not isinstance(metadata, QuestionUnansweredMetadata):
            return None
        unanswered_hours = _require_age(event, "unansweredHours", metadata.unanswered_hours)
        if unanswered_hours < 24:
            return None
        level = escalation_level_for(unanswered_hours, level_2_at=48, level_3_at=72)
        return _candidate(event, metadata, level, event.severity or Severity.MEDIUM)

    def matches_resolution(self, event, metadata):
        if isinstance(metadata, QuestionEventMetadata) and metadata.question_status == QUESTION_STATUS_ANSWERED:
            return _resolution(event, self.rule_id)
        return None


class ActionOverdueRule(CoordinationRule):
    """Committed action item past its due date."""

    rule_id = ACTION_OVERDUE_RULE_ID

    def matches_creation(self, event, metadata):
        if isinstance(metadata, ActionOverdueMetadata):
            if metadata.resolved:
                return None
            overdue_days = _require_age(event, "overdueDays", metadata.overdue_days)
        elif isinstance(metadata, ActionInteractionMetadata) and metadata.action_state == ACTION_STATE_OVERDUE:
            overdue_days = 1 if metadata.overdue_days is None else _require_age(event, "overdueDays", metadata.overdue_days)
        else:
            return None
        level = escalation_level_for(overdue_days, level_2_at=3, level_3_at=4)
        return _candidate(event, metadata, level, event.severity or Severity.MEDIUM)

    def matches_resolution(self, event, metadata):
        if isinstance(metadata, ActionInteractionMetadata) and metadata.action_state == ACTION_STATE_DONE:
            return _resolution(event, self.rule_id)
        if isinstance(metadata, ActionOverdueMetadata) and metadata.resolved:
            return _resolution(event, self.rule_id)
        return None


class BlockerPersistedRule(CoordinationRule):
    """HIGH severity blocker open for two days or more."""

    rule_id = BLOCKER_PERSISTED_RULE_ID

    def matches_creation(self, event, metadata):
        if not isinstance(metadata, BlockerPersistedMetadata) or metadata.resolved:
            return None
        if not severity_at_least(event.severity, Severity.HIGH):
            return None
        blocker_days = _require_age(event, "blockerDays", metadata.blocker_days)
        if blocker_days < 2:
            return None
        level = escalation_level_for(blocker_days, level_2_at=3, level_3_at=4)
        return _candidate(event, metadata, level, Severity.HIGH)

    def matches_resolution(self, event, metadata):
        if isinstance(metadata, ActionInteractionMetadata) and metadata.action_state == ACTION_STATE_DONE:
            return _resolution(event, self.rule_id)
        if isinstance(metadata, (BlockerPersistedMetadata, ActionOverdueMetadata)) and metadata.resolved:
            return _resolution(event, self.rule_id)
        return None


class SnoozeRetriggerRule(CoordinationRule):
    """A snoozed reminder came back; re-create it at the level it was snoozed at."""

    rule_id = SNOOZE_RETRIGGER_RULE_ID

    def matches_creation(self, event, metadata):
        if not isinstance(metadata, SnoozeExpiredMetadata) or not metadata.retrigger:
            return None
        return _candidate(
            event,
            metadata,
            metadata.previous_escalation_level,
            event.severity or Severity.MEDIUM,
        )


COORDINATION_RULES: Tuple[CoordinationRule, ...] = (
    MissingStandupRule(),
    QuestionUnansweredRule(),
    ActionOverdueRule(),
    BlockerPersistedRule(),
    SnoozeRetriggerRule(),
)


def get_rule_by_id(rule_id: str) -> Optional[CoordinationRule]:
    for rule in COORDINATION_RULES:
        if rule.rule_id == rule_id:
            return rule
    return None


def evaluate_creation(
    event: CoordinationEvent,
    metadata: EventMetadata,
    rules: Tuple[CoordinationRule, ...] = COORDINATION_RULES,
    source_escalation_level: Optional[int] = None
) -> Optional[TriggerDraft]:
    """
    Return a draft from the first rule whose creation predicate matches.

    source_escalation_level is set only for sweep events: the draft must then
    be strictly above the level of the trigger being aged.

    Raises:
        MalformedEventError: a matching rule found its fields missing or invalid,
            or an id cannot form a dedup key.
    """
    for rule in rules:
        candidate = rule.matches_creation(event, metadata)
        if candidate is None:
            continue
        if source_escalation_level and candidate.escalation_level <= source_escalation_level:
            return None
        try:
            dedup_key = build_dedup_key(
                rule.rule_id,
                candidate.target_user_id,
                candidate.related_entity_id,
                candidate.escalation_level,
            )
        except ValueError as e:
            raise MalformedEventError(event.id, str(e)) from e
        return TriggerDraft(
            project_id=event.project_id,
            rule_id=rule.rule_id,
            target_user_id=candidate.target_user_id,
            related_entity_id=candidate.related_entity_id,
            severity=candidate.severity,
            escalation_level=candidate.escalation_level,
            dedup_key=dedup_key,
        )
    return None


def evaluate_resolution(
    event: CoordinationEvent,
    metadata: EventMetadata,
    rules: Tuple[CoordinationRule, ...] = COORDINATION_RULES
) -> Optional[ResolutionMatch]:
    """Combine every matching resolution predicate into one request, in catalog order."""
    related_entity_id = None
    rule_ids: List[str] = []
    for rule in rules:
        match = rule.matches_resolution(event, metadata)
        if match is None:
            continue
        related_entity_id = match.related_entity_id
        for rule_id in match.rule_ids:
            if rule_id not in rule_ids:
                rule_ids.append(rule_id)

    if not rule_ids:
        return None
    return ResolutionMatch(related_entity_id=related_entity_id, rule_ids=rule_ids)
