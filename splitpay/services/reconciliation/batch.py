"""Background sync job management.

Allows submitting sync runs as background tasks and tracking their
progress.  Uses an in-memory dict for job tracking, so job history is
per process and lost on restart.
"""

from __future__ import annotations

import uuid
from typing import Callable, Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from splitpay.core.database import utcnow
from splitpay.core.logging import get_logger
from splitpay.services.container import ServiceContainer
from splitpay.services.settlement.orchestrator import SettlementCompleted

logger = get_logger(__name__)

# In-memory job tracker
_jobs: dict[str, dict] = {}


def submit_sync_job(
    db_factory: Callable[[], Session],
    container: ServiceContainer,
    background_tasks: BackgroundTasks,
    limit: Optional[int] = None,
) -> str:
    """Submit a full sync run to execute in the background.

    Returns job_id immediately so the caller can poll for status later.
    """
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "status": "pending",
        "limit": limit,
        "submitted_at": utcnow().isoformat(),
        "summary": None,
        "error": None,
    }
    background_tasks.add_task(_run_job, job_id, db_factory, container, limit)
    return job_id


def _run_job(
    job_id: str,
    db_factory: Callable[[], Session],
    container: ServiceContainer,
    limit: Optional[int],
) -> None:
    """Background task that runs one sync pass."""
    _jobs[job_id]["status"] = "running"
    try:
        db: Session = db_factory()
        try:
            summary = container.reconciliation(db).sync_all(limit=limit)
            _jobs[job_id]["status"] = "completed"
            _jobs[job_id]["summary"] = summary.as_dict()
        finally:
            db.close()
    except Exception as e:
        logger.exception("Sync job %s failed", job_id)
        _jobs[job_id]["status"] = "failed"
        _jobs[job_id]["error"] = str(e)


def get_job_status(job_id: str) -> dict | None:
    """Look up a job by ID.  Returns None if not found."""
    return _jobs.get(job_id)


def list_jobs() -> list[dict]:
    """Return all tracked jobs in submission order."""
    return list(_jobs.values())


def run_settlement_sync(
    db_factory: Callable[[], Session],
    container: ServiceContainer,
    event: SettlementCompleted,
) -> None:
    """Background task: sync a just-settled order in its own session."""
    try:
        db: Session = db_factory()
        try:
            container.reconciliation(db).on_settlement_completed(event)
        finally:
            db.close()
    except Exception:
        # The scheduled run picks these sales up again
        logger.exception("Immediate sync for order %s failed", event.order_id)
