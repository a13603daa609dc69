"""
Audit trail of reconciliation job runs (reconciliation_runs table).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reconciler.models import ReconciliationRun, RunJobType, RunMode, RunStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_run(db: Session, job_type: RunJobType, mode: RunMode) -> ReconciliationRun:
    run = ReconciliationRun(job_type=job_type, mode=mode, status=RunStatus.RUNNING, started_at=_utcnow())
    db.add(run)
    db.commit()
    logger.info("Run %s started: %s/%s", run.id, job_type.value, mode.value)
    return run


def finish_run(
    db: Session,
    run: ReconciliationRun,
    summary: Optional[dict] = None,
    items_processed: int = 0,
    items_failed: int = 0,
    error: Optional[str] = None,
) -> None:
    """Close a run. A failure to write the audit row is logged, never raised over the job result."""
    try:
        run.status = RunStatus.FAILED if error else RunStatus.SUCCESS
        run.finished_at = _utcnow()
        run.items_processed = items_processed
        run.items_failed = items_failed
        run.summary = summary
        run.error_message = error
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to record end of run %s: %s", run.id, e)


def recent_runs(db: Session, limit: int = 20, job_type: Optional[RunJobType] = None) -> list[ReconciliationRun]:
    query = db.query(ReconciliationRun)
    if job_type:
        query = query.filter(ReconciliationRun.job_type == job_type)
    return query.order_by(ReconciliationRun.started_at.desc()).limit(limit).all()


def run_to_dict(run: ReconciliationRun) -> dict:
    return {
        "id": run.id,
        "jobType": run.job_type.value,
        "mode": run.mode.value,
        "status": run.status.value,
        "startedAt": run.started_at.isoformat() if run.started_at else None,
        "finishedAt": run.finished_at.isoformat() if run.finished_at else None,
        "itemsProcessed": run.items_processed or 0,
        "itemsFailed": run.items_failed or 0,
        "summary": run.summary,
        "errorMessage": run.error_message,
    }
