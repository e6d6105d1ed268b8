"""Background sync job management.

Allows submitting sync runs as background tasks and tracking their
progress.  Jobs live in an in-memory dict, so they are lost on restart;
the persisted ``SyncReport`` is the durable record of each run.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import get_logger
from app.services.reconciliation.engine import SyncEngine

logger = get_logger(__name__)

# In-memory job tracker
_jobs: dict[str, dict] = {}


def submit_sync_job(
    db_factory,  # callable that creates a new session
    background_tasks: BackgroundTasks,
    worker_count: Optional[int] = None,
    suspend_threshold: Optional[int] = None,
    max_pages: Optional[int] = None,
) -> str:
    """Submit a sync job to run in background.

    Returns job_id immediately so the caller can poll for status later.
    """
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "status": "pending",
        "submitted_at": datetime.utcnow().isoformat(),
        "worker_count": worker_count,
        "suspend_threshold": suspend_threshold,
        "max_pages": max_pages,
        "report_id": None,
        "report_status": None,
        "error": None,
    }
    background_tasks.add_task(
        _run_job, job_id, db_factory, worker_count, suspend_threshold, max_pages
    )
    logger.info("Sync job %s submitted", job_id)
    return job_id


def _run_job(
    job_id: str,
    db_factory,
    worker_count: Optional[int],
    suspend_threshold: Optional[int],
    max_pages: Optional[int],
) -> None:
    """Background task that runs one sync."""
    _jobs[job_id]["status"] = "running"
    try:
        db: Session = db_factory()
        try:
            engine = SyncEngine(db, settings)
            report = engine.run(
                worker_count=worker_count,
                suspend_threshold=suspend_threshold,
                max_pages=max_pages,
            )
            _jobs[job_id]["status"] = "completed"
            _jobs[job_id]["report_id"] = str(report.id)
            _jobs[job_id]["report_status"] = report.status
        finally:
            db.close()
    except Exception as e:
        logger.error("Job %s failed: %s", job_id, e)
        _jobs[job_id]["status"] = "failed"
        _jobs[job_id]["error"] = str(e)


def get_job_status(job_id: str) -> dict | None:
    """Look up a job by ID.  Returns None if not found."""
    return _jobs.get(job_id)


def list_jobs() -> list[dict]:
    """Return all tracked jobs in submission order."""
    return list(_jobs.values())
