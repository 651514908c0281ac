"""
Typed event metadata.

Each event type carries its own metadata shape. The raw payload is validated
into one variant of a discriminated union keyed by event type, so rules can
read typed fields instead of digging through an open dict.

Age and count fields are optional here and range-checked by the creation
rule that reads them, so a lifecycle event that only resolves triggers is
never rejected over a field it does not use.
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from coordinator.triggers.models import CoordinationEvent


class MalformedEventError(ValueError):
    """Event metadata is missing or has invalid fields for its type."""

    def __init__(self, event_id: str, detail: str):
        super().__init__(f"Malformed metadata on event {event_id}: {detail}")
        self.event_id = event_id
        self.detail = detail


class EventMetadata(BaseModel):
    """Fields shared by every variant: who to escalate to."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    po_user_id: Optional[str] = Field(None, alias="poUserId")
    project_owner_user_id: Optional[str] = Field(None, alias="projectOwnerUserId")
    dependency_owner_user_id: Optional[str] = Field(None, alias="dependencyOwnerUserId")
    manager_user_id: Optional[str] = Field(None, alias="managerUserId")
    # Read only for sweep-synthesized events
    source_escalation_level: Optional[int] = Field(None, alias="sourceEscalationLevel")


class BlockerPersistedMetadata(EventMetadata):
    event_type: Literal["BLOCKER_PERSISTED"]
    blocker_days: Optional[int] = Field(None, alias="blockerDays")
    resolved: bool = False
    blocker_reason: Optional[str] = Field(None, alias="blockerReason")


class MissingStandupMetadata(EventMetadata):
    event_type: Literal["MISSING_STANDUP_DETECTED"]
    missing_days: Optional[int] = Field(None, alias="missingDays")


class QuestionUnansweredMetadata(EventMetadata):
    event_type: Literal["QUESTION_UNANSWERED"]
    unanswered_hours: Optional[float] = Field(None, alias="unansweredHours")


class QuestionEventMetadata(EventMetadata):
    event_type: Literal["QUESTION_EVENT"]
    question_status: Optional[str] = Field(None, alias="questionStatus")


class ActionInteractionMetadata(EventMetadata):
    event_type: Literal["ACTION_INTERACTION"]
    action_state: Optional[str] = Field(None, alias="actionState")
    overdue_days: Optional[int] = Field(None, alias="overdueDays")


class ActionOverdueMetadata(EventMetadata):
    event_type: Literal["ACTION_OVERDUE"]
    overdue_days: int = Field(1, alias="overdueDays")
    resolved: bool = False


class SnoozeExpiredMetadata(EventMetadata):
    event_type: Literal["SNOOZE_EXPIRED"]
    retrigger: bool = False
    previous_escalation_level: Optional[int] = Field(None, alias="previousEscalationLevel", ge=1)

    @model_validator(mode="after")
    def _level_required_for_retrigger(self):
        if self.retrigger and self.previous_escalation_level is None:
            raise ValueError("previousEscalationLevel is required when retrigger is true")
        return self


class ActivityMetadata(EventMetadata):
    """Telemetry events that no rule inspects."""
    event_type: Literal[
        "SUMMARY_VIEWED",
        "EVIDENCE_CLICKED",
        "FEEDBACK_SUBMITTED",
        "DIGEST_COPIED",
        "STALE_WORK_DETECTED",
        "LOW_CONFIDENCE_DETECTED",
    ]


AnyEventMetadata = Annotated[
    Union[
        BlockerPersistedMetadata,
        MissingStandupMetadata,
        QuestionUnansweredMetadata,
        QuestionEventMetadata,
        ActionInteractionMetadata,
        ActionOverdueMetadata,
        SnoozeExpiredMetadata,
        ActivityMetadata,
    ],
    Field(discriminator="event_type"),
]

_metadata_adapter = TypeAdapter(AnyEventMetadata)


def parse_event_metadata(event: CoordinationEvent) -> EventMetadata:
    """
    Validate an event's raw metadata into its typed variant.

    Raises:
        MalformedEventError: if required fields are missing or invalid.
    """
    payload = {**(event.metadata or {}), "event_type": event.event_type.value}
    try:
        return _metadata_adapter.validate_python(payload)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise MalformedEventError(event.id, errors) from e
