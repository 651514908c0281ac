"""Database package for coordination events and triggers."""

from coordinator.db.database import init_db, engine, SessionLocal
from coordinator.db.models import Base, CoordinationEventRecord, CoordinationTriggerRecord
from coordinator.db.store import SqlAlchemyCoordinationStore

__all__ = [
    "init_db",
    "engine",
    "SessionLocal",
    "Base",
    "CoordinationEventRecord",
    "CoordinationTriggerRecord",
    "SqlAlchemyCoordinationStore",
]
