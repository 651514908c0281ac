"""Shared fixtures for coordination engine tests."""

import itertools
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coordinator.db.database import init_db
from coordinator.db.store import SqlAlchemyCoordinationStore
from coordinator.triggers.dedup import build_dedup_key
from coordinator.triggers.memory_store import InMemoryCoordinationStore
from coordinator.triggers.models import CoordinationEvent, Severity, TriggerDraft

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def store():
    return InMemoryCoordinationStore()


@pytest.fixture
def make_event():
    """Factory for CoordinationEvent with sensible defaults."""
    counter = itertools.count(1)

    def _make(
        event_type,
        metadata=None,
        project_id="project-1",
        target_user_id="user-2",
        related_entity_id="entity-1",
        severity=None,
        occurred_at=T0,
        processed_at=None,
        event_id=None,
    ):
        return CoordinationEvent(
            id=event_id or f"event-{next(counter)}",
            project_id=project_id,
            event_type=event_type,
            target_user_id=target_user_id,
            related_entity_id=related_entity_id,
            severity=severity,
            metadata=metadata or {},
            occurred_at=occurred_at,
            processed_at=processed_at,
        )

    return _make


@pytest.fixture
def seed_trigger():
    """Insert a trigger directly into a store, bypassing the rules."""

    def _seed(
        store,
        rule_id,
        escalation_level=1,
        project_id="project-1",
        target_user_id="user-2",
        related_entity_id="entity-1",
        severity=Severity.MEDIUM,
        created_at=T0,
    ):
        draft = TriggerDraft(
            project_id=project_id,
            rule_id=rule_id,
            target_user_id=target_user_id,
            related_entity_id=related_entity_id,
            severity=severity,
            escalation_level=escalation_level,
            dedup_key=build_dedup_key(rule_id, target_user_id, related_entity_id, escalation_level),
        )
        return store.create_trigger(draft, created_at)

    return _seed


@pytest.fixture
def sql_store():
    """SqlAlchemyCoordinationStore over a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield SqlAlchemyCoordinationStore(session_factory=session_factory)
    engine.dispose()
