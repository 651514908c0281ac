"""
SQLAlchemy implementation of the coordination storage contract.

Each call runs in its own short session and commits before returning, so a
trigger write is durable before the processor marks the event processed.
Timestamps are stored as naive UTC and returned timezone-aware.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coordinator.config import SWEEP_BATCH_SIZE
from coordinator.db.database import SessionLocal
from coordinator.db.models import CoordinationEventRecord, CoordinationTriggerRecord
from coordinator.triggers.models import (
    CoordinationEvent,
    CoordinationTrigger,
    EventDraft,
    TriggerDraft,
    TriggerStatus,
    LIVE_STATUSES,
)
from coordinator.triggers.store import CoordinationStore, StorageError, DuplicateTriggerError
from coordinator.triggers.sweep import synthesize_aging_event

logger = logging.getLogger(__name__)

_LIVE_STATUS_VALUES = [status.value for status in LIVE_STATUSES]


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_event(record: CoordinationEventRecord) -> CoordinationEvent:
    return CoordinationEvent(
        id=record.id,
        project_id=record.project_id,
        event_type=record.event_type,
        target_user_id=record.target_user_id,
        related_entity_id=record.related_entity_id,
        severity=record.severity,
        metadata=record.meta_data or {},
        occurred_at=_from_db(record.occurred_at),
        processed_at=_from_db(record.processed_at),
    )


def _to_trigger(record: CoordinationTriggerRecord) -> CoordinationTrigger:
    return CoordinationTrigger(
        id=record.id,
        project_id=record.project_id,
        rule_id=record.rule_id,
        target_user_id=record.target_user_id,
        related_entity_id=record.related_entity_id,
        severity=record.severity,
        escalation_level=record.escalation_level,
        dedup_key=record.dedup_key,
        status=record.status,
        created_at=_from_db(record.created_at),
        resolved_at=_from_db(record.resolved_at),
    )


class SqlAlchemyCoordinationStore(CoordinationStore):
    """Coordination store backed by the coordination_events/coordination_triggers tables."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        sweep_batch_size: int = SWEEP_BATCH_SIZE
    ):
        self.session_factory = session_factory
        self.sweep_batch_size = sweep_batch_size

    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Coordination store error: {e}")
            raise StorageError(str(e)) from e
        finally:
            db.close()

    def get_events(self, since, event_ids=None, project_id=None):
        with self._session() as db:
            query = db.query(CoordinationEventRecord)
            if project_id:
                query = query.filter(CoordinationEventRecord.project_id == project_id)
            if event_ids:
                query = query.filter(CoordinationEventRecord.id.in_(event_ids))
            else:
                query = query.filter(
                    CoordinationEventRecord.occurred_at >= _to_db(since),
                    CoordinationEventRecord.processed_at.is_(None),
                )
            records = query.order_by(CoordinationEventRecord.occurred_at.asc()).all()
            return [_to_event(r) for r in records]

    def mark_event_processed(self, event_id, processed_at):
        with self._session() as db:
            db.query(CoordinationEventRecord).filter(
                CoordinationEventRecord.id == event_id,
                CoordinationEventRecord.processed_at.is_(None),
            ).update(
                {CoordinationEventRecord.processed_at: _to_db(processed_at)},
                synchronize_session=False,
            )

    def get_latest_trigger_by_dedup_key(self, dedup_key, project_id):
        with self._session() as db:
            record = db.query(CoordinationTriggerRecord).filter(
                CoordinationTriggerRecord.dedup_key == dedup_key,
                CoordinationTriggerRecord.project_id == project_id,
            ).order_by(desc(CoordinationTriggerRecord.created_at)).first()
            return _to_trigger(record) if record else None

    def create_trigger(self, draft: TriggerDraft, created_at: datetime) -> CoordinationTrigger:
        db = self.session_factory()
        try:
            record = CoordinationTriggerRecord(
                project_id=draft.project_id,
                rule_id=draft.rule_id,
                target_user_id=draft.target_user_id,
                related_entity_id=draft.related_entity_id,
                severity=draft.severity.value,
                escalation_level=draft.escalation_level,
                dedup_key=draft.dedup_key,
                status=TriggerStatus.PENDING.value,
                created_at=_to_db(created_at),
            )
            db.add(record)
            db.commit()
            db.refresh(record)
            return _to_trigger(record)
        except IntegrityError as e:
            db.rollback()
            raise DuplicateTriggerError(draft.project_id, draft.dedup_key) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Coordination store error creating {draft.dedup_key}: {e}")
            raise StorageError(str(e)) from e
        finally:
            db.close()

    def resolve_triggers(self, project_id, resolved_at, related_entity_id=None, rule_ids=None):
        if not related_entity_id and not rule_ids:
            return 0

        with self._session() as db:
            query = db.query(CoordinationTriggerRecord).filter(
                CoordinationTriggerRecord.project_id == project_id,
                CoordinationTriggerRecord.status.in_(_LIVE_STATUS_VALUES),
            )
            if related_entity_id:
                query = query.filter(CoordinationTriggerRecord.related_entity_id == related_entity_id)
            if rule_ids:
                query = query.filter(CoordinationTriggerRecord.rule_id.in_(rule_ids))
            return query.update(
                {
                    CoordinationTriggerRecord.status: TriggerStatus.RESOLVED.value,
                    CoordinationTriggerRecord.resolved_at: _to_db(resolved_at),
                },
                synchronize_session=False,
            )

    def get_pending_trigger_ages(self, now, project_id=None):
        with self._session() as db:
            query = db.query(CoordinationTriggerRecord).filter(
                CoordinationTriggerRecord.status.in_(_LIVE_STATUS_VALUES),
            )
            if project_id:
                query = query.filter(CoordinationTriggerRecord.project_id == project_id)
            records = query.order_by(CoordinationTriggerRecord.created_at.asc()).limit(self.sweep_batch_size).all()
            return [synthesize_aging_event(_to_trigger(r), now) for r in records]

    def create_event(self, draft: EventDraft) -> CoordinationEvent:
        with self._session() as db:
            record = CoordinationEventRecord(
                project_id=draft.project_id,
                event_type=draft.event_type.value,
                target_user_id=draft.target_user_id,
                related_entity_id=draft.related_entity_id,
                severity=draft.severity.value if draft.severity else None,
                meta_data=draft.metadata,
                occurred_at=_to_db(draft.occurred_at),
            )
            db.add(record)
            db.flush()
            db.refresh(record)
            return _to_event(record)

    def mark_trigger_sent(self, trigger_id: str) -> bool:
        """Delivery-side helper: PENDING -> SENT. Returns False if the trigger was not pending."""
        with self._session() as db:
            updated = db.query(CoordinationTriggerRecord).filter(
                CoordinationTriggerRecord.id == trigger_id,
                CoordinationTriggerRecord.status == TriggerStatus.PENDING.value,
            ).update(
                {CoordinationTriggerRecord.status: TriggerStatus.SENT.value},
                synchronize_session=False,
            )
            return updated > 0
