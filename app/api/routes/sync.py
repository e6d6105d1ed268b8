"""Sync endpoints.

Provides routes to trigger a sync run (inline or in the background),
poll background jobs, and retrieve past sync reports.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import FetchFailedError
from app.core.logging import get_logger
from app.models.sync_report import SyncReport
from app.schemas.sync import SyncReportResponse, SyncRunRequest
from app.services.reconciliation.engine import SyncEngine

logger = get_logger(__name__)

router = APIRouter()


def get_sync_engine(db: Session = Depends(get_db)) -> SyncEngine:
    """Engine wired to the real vendor clients."""
    return SyncEngine(db=db, config=settings)


@router.post("/run", response_model=SyncReportResponse)
def run_sync(
    body: Optional[SyncRunRequest] = None,
    engine: SyncEngine = Depends(get_sync_engine),
) -> SyncReport:
    """Run a sync and return the finished report.

    Responds 502 when the vendor report could not be fetched at all, so a
    failed fetch is never mistaken for an empty diff.
    """
    body = body or SyncRunRequest()
    logger.info(
        "Sync requested: workers=%s threshold=%s max_pages=%s",
        body.worker_count,
        body.suspend_threshold,
        body.max_pages,
    )

    try:
        report = engine.run(
            worker_count=body.worker_count,
            suspend_threshold=body.suspend_threshold,
            max_pages=body.max_pages,
        )
    except FetchFailedError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    except Exception as exc:
        logger.exception("Sync run failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return report


@router.get("/reports", response_model=List[SyncReportResponse])
def list_reports(
    db: Session = Depends(get_db),
) -> list[SyncReport]:
    """List all sync reports, newest first."""
    return db.query(SyncReport).order_by(SyncReport.created_at.desc()).all()


@router.get("/reports/latest", response_model=SyncReportResponse)
def latest_report(db: Session = Depends(get_db)) -> SyncReport:
    """Most recent sync report."""
    report = db.query(SyncReport).order_by(SyncReport.created_at.desc()).first()
    if report is None:
        raise HTTPException(status_code=404, detail="No sync reports yet")
    return report


@router.get("/reports/{report_id}", response_model=SyncReportResponse)
def get_report(
    report_id: UUID,
    db: Session = Depends(get_db),
) -> SyncReport:
    """Retrieve a single sync report by ID."""
    report = db.query(SyncReport).filter(SyncReport.id == report_id).first()
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


# ── Background runs ──────────────────────────────────────────────────


@router.post("/run-async")
def run_sync_async(
    background_tasks: BackgroundTasks,
    body: Optional[SyncRunRequest] = None,
):
    """Submit a sync as a background job.

    Returns immediately with a job_id that can be polled via GET /jobs/{id}.
    """
    from app.core.database import SessionLocal
    from app.services.reconciliation.batch import submit_sync_job

    body = body or SyncRunRequest()
    job_id = submit_sync_job(
        db_factory=SessionLocal,
        background_tasks=background_tasks,
        worker_count=body.worker_count,
        suspend_threshold=body.suspend_threshold,
        max_pages=body.max_pages,
    )
    return {
        "job_id": job_id,
        "status": "pending",
        "message": "Sync job submitted",
    }


@router.get("/jobs")
def list_jobs():
    """List all submitted sync jobs."""
    from app.services.reconciliation.batch import list_jobs as _list_jobs

    return {"jobs": _list_jobs()}


@router.get("/jobs/{job_id}")
def get_job(job_id: str):
    """Poll a specific job's status by its ID."""
    from app.services.reconciliation.batch import get_job_status

    job = get_job_status(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
