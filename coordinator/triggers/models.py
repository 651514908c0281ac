"""Data models for the coordination trigger engine."""

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Severity carried from the originating condition."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
}


def severity_at_least(actual: Optional[Severity], minimum: Severity) -> bool:
    """Compare severities by rank. A missing severity ranks as LOW."""
    return SEVERITY_RANK[actual or Severity.LOW] >= SEVERITY_RANK[minimum]


class EventType(str, Enum):
    """Closed set of observed project activity facts."""
    SUMMARY_VIEWED = "SUMMARY_VIEWED"
    EVIDENCE_CLICKED = "EVIDENCE_CLICKED"
    FEEDBACK_SUBMITTED = "FEEDBACK_SUBMITTED"
    DIGEST_COPIED = "DIGEST_COPIED"
    ACTION_INTERACTION = "ACTION_INTERACTION"  # State change on a committed action
    QUESTION_EVENT = "QUESTION_EVENT"  # Question lifecycle (e.g. answered)
    BLOCKER_PERSISTED = "BLOCKER_PERSISTED"
    MISSING_STANDUP_DETECTED = "MISSING_STANDUP_DETECTED"
    STALE_WORK_DETECTED = "STALE_WORK_DETECTED"
    LOW_CONFIDENCE_DETECTED = "LOW_CONFIDENCE_DETECTED"
    ACTION_OVERDUE = "ACTION_OVERDUE"
    QUESTION_UNANSWERED = "QUESTION_UNANSWERED"
    SNOOZE_EXPIRED = "SNOOZE_EXPIRED"


class TriggerStatus(str, Enum):
    """Trigger lifecycle: PENDING -> SENT -> RESOLVED."""
    PENDING = "PENDING"
    SENT = "SENT"  # Set by the delivery side, never by this engine
    RESOLVED = "RESOLVED"


LIVE_STATUSES = (TriggerStatus.PENDING, TriggerStatus.SENT)


class CoordinationEvent(BaseModel):
    """One observed fact about project activity."""
    id: str
    project_id: str
    event_type: EventType
    target_user_id: Optional[str] = None
    related_entity_id: Optional[str] = None  # None only for project-wide events
    severity: Optional[Severity] = None
    metadata: Dict[str, Any] = {}  # Raw payload, keys as stored (camelCase)
    occurred_at: datetime
    processed_at: Optional[datetime] = None


class EventDraft(BaseModel):
    """A new event as reported by an ingestion path."""
    project_id: str
    event_type: EventType
    target_user_id: Optional[str] = None
    related_entity_id: Optional[str] = None
    severity: Optional[Severity] = None
    metadata: Dict[str, Any] = {}
    occurred_at: datetime


class TriggerDraft(BaseModel):
    """Everything needed to create a trigger; stores assign id, status and created_at."""
    project_id: str
    rule_id: str
    target_user_id: str
    related_entity_id: Optional[str] = None
    severity: Severity
    escalation_level: int = Field(ge=1)
    dedup_key: str


class CoordinationTrigger(BaseModel):
    """An open or closed escalation condition."""
    id: str
    project_id: str
    rule_id: str
    target_user_id: str
    related_entity_id: Optional[str] = None
    severity: Severity
    escalation_level: int = Field(ge=1)  # 1 owner, 2 dependency owner/manager, 3+ lead/PO
    dedup_key: str
    status: TriggerStatus = TriggerStatus.PENDING
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES


class TriggerCandidate(BaseModel):
    """Result of a rule's creation predicate."""
    target_user_id: str
    related_entity_id: Optional[str] = None
    severity: Severity
    escalation_level: int = Field(ge=1)


class ResolutionMatch(BaseModel):
    """Result of a rule's resolution predicate."""
    related_entity_id: str
    rule_ids: List[str]


class EventSelector(BaseModel):
    """Which events a processing run should consider."""
    event_ids: Optional[List[str]] = None  # Explicit ids win over the time window
    since: Optional[datetime] = None  # Defaults to now - EVENT_LOOKBACK_HOURS
    project_id: Optional[str] = None
    include_diagnostics: bool = False


class DiagnosticEntry(BaseModel):
    """A single line of processing trace returned to callers on request."""
    level: str  # "info", "debug", "warning", "error"
    message: str
    event_id: Optional[str] = None
    rule_id: Optional[str] = None
    dedup_key: Optional[str] = None


class ProcessResult(BaseModel):
    """Aggregate outcome of a processing run or sweep."""
    processed_events: int = 0
    created_triggers: int = 0
    resolved_triggers: int = 0
    duplicate_triggers: int = 0  # Creation skipped because a live trigger already held the key
    malformed_events: int = 0
    failed_events: int = 0  # Left unprocessed, retried on the next run
    diagnostics: Optional[List[DiagnosticEntry]] = None
