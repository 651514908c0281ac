"""
Database models for coordination events and triggers.
"""

import uuid
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index, text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class CoordinationEventRecord(Base):
    """Raw project activity fact, written by ingestion and read by the processor."""
    __tablename__ = "coordination_events"

    id = Column(String(64), primary_key=True, default=_new_id)
    project_id = Column(String(255), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)  # EventType value
    target_user_id = Column(String(255), nullable=True, index=True)
    related_entity_id = Column(String(255), nullable=True)
    severity = Column(String(10), nullable=True)  # 'LOW', 'MEDIUM', 'HIGH'
    meta_data = Column(JSON, nullable=True)
    occurred_at = Column(DateTime, nullable=False)
    processed_at = Column(DateTime, nullable=True)  # Set once, by the processor
    created_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_coordination_events_project_occurred", "project_id", "occurred_at"),
        Index("ix_coordination_events_project_processed", "project_id", "processed_at"),
    )


class CoordinationTriggerRecord(Base):
    """Open or closed escalation condition."""
    __tablename__ = "coordination_triggers"

    id = Column(String(64), primary_key=True, default=_new_id)
    project_id = Column(String(255), nullable=False, index=True)
    rule_id = Column(String(100), nullable=False)
    target_user_id = Column(String(255), nullable=False)
    related_entity_id = Column(String(255), nullable=True)
    severity = Column(String(10), nullable=False)
    escalation_level = Column(Integer, nullable=False)
    dedup_key = Column(String(700), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")  # 'PENDING', 'SENT', 'RESOLVED'
    created_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_coordination_triggers_project_status_entity", "project_id", "status", "related_entity_id"),
        Index("ix_coordination_triggers_dedup_created", "dedup_key", "created_at"),
        # At most one live trigger per (project, dedup key)
        Index(
            "uq_coordination_triggers_live_dedup",
            "project_id",
            "dedup_key",
            unique=True,
            sqlite_where=text("status != 'RESOLVED'"),
            postgresql_where=text("status != 'RESOLVED'"),
        ),
    )
