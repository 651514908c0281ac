"""
HTTP surface for the coordination engine.

Thin FastAPI app used by the rest of the project-management application:
ingestion paths post coordination events here, operators can trigger a
processing run or a sweep, and the periodic sweep runs in the background.
The wall clock is read here and passed down; the engine never reads it.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from fastapi import FastAPI, Depends, HTTPException
from pydantic import BaseModel

from coordinator import __version__
from coordinator.config import LOG_LEVEL, COORDINATION_SCHEDULER_ENABLED
from coordinator.db.database import init_db
from coordinator.db.store import SqlAlchemyCoordinationStore
from coordinator.triggers.models import (
    CoordinationEvent,
    EventDraft,
    EventSelector,
    EventType,
    ProcessResult,
    Severity,
)
from coordinator.triggers.processor import (
    process_coordination_events,
    record_coordination_event,
    resolve_triggers_for_entity,
)
from coordinator.triggers.store import CoordinationStore, StorageError
from coordinator.triggers.sweep import run_scheduled_coordination_sweep

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def get_store() -> CoordinationStore:
    """Store dependency; overridden in tests."""
    return SqlAlchemyCoordinationStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the sweep scheduler."""
    init_db()

    if COORDINATION_SCHEDULER_ENABLED:
        from coordinator.triggers.scheduler import start_scheduler
        start_scheduler(SqlAlchemyCoordinationStore)
        logger.info("Coordination sweep scheduler starting...")

    yield

    if COORDINATION_SCHEDULER_ENABLED:
        from coordinator.triggers.scheduler import stop_scheduler
        stop_scheduler()
        logger.info("Coordination sweep scheduler stopped")


app = FastAPI(
    title="coordinator",
    description="Coordination trigger engine",
    version=__version__,
    lifespan=lifespan
)


class EventIn(BaseModel):
    """Coordination event as posted by an ingestion path."""
    event_type: EventType
    target_user_id: Optional[str] = None
    related_entity_id: Optional[str] = None
    severity: Optional[Severity] = None
    metadata: Dict[str, Any] = {}
    occurred_at: Optional[datetime] = None
    process_immediately: bool = True


class RecordedEvent(BaseModel):
    event: CoordinationEvent
    result: Optional[ProcessResult] = None


class ProcessRequest(BaseModel):
    event_ids: Optional[List[str]] = None
    since: Optional[datetime] = None
    project_id: Optional[str] = None
    include_diagnostics: bool = False


class ResolveRequest(BaseModel):
    related_entity_id: str
    rule_ids: Optional[List[str]] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "coordinator", "version": __version__}


@app.post("/projects/{project_id}/coordination/events", response_model=RecordedEvent)
def post_coordination_event(
    project_id: str,
    body: EventIn,
    store: CoordinationStore = Depends(get_store)
):
    """Record a coordination event and process it unless told not to."""
    now = _utcnow()
    draft = EventDraft(
        project_id=project_id,
        event_type=body.event_type,
        target_user_id=body.target_user_id,
        related_entity_id=body.related_entity_id,
        severity=body.severity,
        metadata=body.metadata,
        occurred_at=body.occurred_at or now,
    )
    try:
        event, result = record_coordination_event(
            store, draft, now, process_immediately=body.process_immediately
        )
    except StorageError as e:
        logger.error(f"Could not record coordination event for {project_id}: {e}")
        raise HTTPException(status_code=503, detail="Coordination storage unavailable")
    return RecordedEvent(event=event, result=result)


@app.post("/coordination/process", response_model=ProcessResult)
def post_process(body: ProcessRequest, store: CoordinationStore = Depends(get_store)):
    """Process pending coordination events now."""
    selector = EventSelector(**body.model_dump())
    try:
        return process_coordination_events(store, _utcnow(), selector)
    except StorageError as e:
        logger.error(f"Coordination processing failed: {e}")
        raise HTTPException(status_code=503, detail="Coordination storage unavailable")


@app.post("/coordination/sweep", response_model=ProcessResult)
def post_sweep(project_id: Optional[str] = None, store: CoordinationStore = Depends(get_store)):
    """Run one escalation sweep now, for one project or all."""
    try:
        return run_scheduled_coordination_sweep(store, _utcnow(), project_id=project_id)
    except StorageError as e:
        logger.error(f"Coordination sweep failed: {e}")
        raise HTTPException(status_code=503, detail="Coordination storage unavailable")


@app.post("/projects/{project_id}/coordination/resolve")
def post_resolve(project_id: str, body: ResolveRequest, store: CoordinationStore = Depends(get_store)):
    """Resolve every live trigger for an entity, e.g. when the entity is closed or deleted."""
    try:
        resolved = resolve_triggers_for_entity(
            store,
            project_id=project_id,
            related_entity_id=body.related_entity_id,
            resolved_at=_utcnow(),
            rule_ids=body.rule_ids,
        )
    except StorageError as e:
        logger.error(f"Coordination resolve failed for {project_id}: {e}")
        raise HTTPException(status_code=503, detail="Coordination storage unavailable")
    return {"resolved_triggers": resolved}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
