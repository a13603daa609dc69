"""
Worker Scheduler Configuration

Registers and schedules the tracking sync and payment reconciliation workers.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from reconciler.config import settings
from reconciler.database import SessionLocal
from reconciler.services import delhivery_service, hdfc_payment_service
from reconciler.services.errors import ConfigurationError
from reconciler.services.payment_reconciliation import PaymentReconciliationJob
from reconciler.services.tracking_sync import TrackingSyncJob

logger = logging.getLogger(__name__)


async def run_tracking_sync_worker() -> Dict[str, Any]:
    """Sync all active shipments. Uses its own DB session."""
    db = SessionLocal()
    try:
        job = TrackingSyncJob(db, delhivery_service.get_client())
        summary = await job.sync_all()
        return {
            "success": True,
            "message": f"processed={summary.processed} changed={summary.changed} errored={summary.errored}",
            "summary": summary.to_dict(),
        }
    finally:
        db.close()


async def run_payment_reconcile_worker() -> Dict[str, Any]:
    """Reconcile pending payments; dry-run unless PAYMENT_RECONCILE_SCHEDULED_EXECUTE is set."""
    db = SessionLocal()
    try:
        job = PaymentReconciliationJob(db, hdfc_payment_service.get_client())
        summary = await job.run(execute=settings.PAYMENT_RECONCILE_SCHEDULED_EXECUTE)
        return {
            "success": True,
            "message": (
                f"{'dry-run' if summary.dry_run else 'execute'}: checked={summary.checked} "
                f"credited={summary.credited} errored={summary.errored}"
            ),
            "summary": summary.to_dict(),
        }
    finally:
        db.close()


class WorkerScheduler:
    """Scheduler for running background workers at specified intervals."""

    def __init__(
        self,
        workers: Optional[Dict[str, Callable[[], Awaitable[Dict[str, Any]]]]] = None,
        intervals: Optional[Dict[str, int]] = None,
        tick_seconds: float = 60,
    ):
        workers = workers or {
            "tracking_sync": run_tracking_sync_worker,
            "payment_reconcile": run_payment_reconcile_worker,
        }
        intervals = intervals or {
            "tracking_sync": settings.TRACKING_SYNC_INTERVAL_SECONDS,
            "payment_reconcile": settings.PAYMENT_RECONCILE_INTERVAL_SECONDS,
        }
        self.workers = {
            name: {
                "func": func,
                "interval": intervals[name],
                "last_run": None,
                "last_result": None,
                "in_progress": False,
                "enabled": True,
            }
            for name, func in workers.items()
        }
        self.tick_seconds = tick_seconds
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def run_worker(self, worker_name: str) -> Dict[str, Any]:
        """
        Run a single worker and log results.

        A worker that is still running from a previous tick is not started again.
        """
        worker_config = self.workers[worker_name]
        if worker_config["in_progress"]:
            logger.info("Worker %s still running; skipping", worker_name)
            return {"success": False, "message": "already running"}

        worker_config["in_progress"] = True
        try:
            logger.info("Starting worker: %s", worker_name)
            result = await worker_config["func"]()
            if result.get("success", False):
                logger.info("Worker %s completed: %s", worker_name, result.get("message", "No message"))
            else:
                logger.error("Worker %s failed: %s", worker_name, result.get("message", "Unknown error"))
        except ConfigurationError as e:
            logger.error("Worker %s not configured: %s", worker_name, e)
            result = {"success": False, "message": f"not configured: {e}"}
        except Exception as e:
            logger.exception("Worker %s crashed: %s", worker_name, e)
            result = {"success": False, "message": f"Worker crashed: {e}"}
        finally:
            worker_config["in_progress"] = False
            worker_config["last_run"] = datetime.now(timezone.utc)

        result.setdefault("timestamp", worker_config["last_run"].isoformat())
        worker_config["last_result"] = {k: v for k, v in result.items() if k != "summary"}
        return result

    def due_workers(self, now: datetime) -> list[str]:
        due = []
        for worker_name, worker_config in self.workers.items():
            if not worker_config["enabled"] or worker_config["in_progress"]:
                continue
            last_run = worker_config["last_run"]
            if last_run is None or (now - last_run).total_seconds() >= worker_config["interval"]:
                due.append(worker_name)
        return due

    async def start_scheduler(self):
        """Start the background worker scheduler."""
        self.running = True
        logger.info("Worker scheduler started")

        while self.running:
            for worker_name in self.due_workers(datetime.now(timezone.utc)):
                asyncio.create_task(self.run_worker(worker_name))
            await asyncio.sleep(self.tick_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.start_scheduler())

    def stop_scheduler(self):
        """Stop the background worker scheduler."""
        self.running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info("Worker scheduler stopped")

    def get_worker_status(self) -> Dict[str, Any]:
        """Get current status of all workers."""
        status = {}
        for worker_name, worker_config in self.workers.items():
            last_run = worker_config["last_run"]
            next_run = last_run + timedelta(seconds=worker_config["interval"]) if last_run else None
            status[worker_name] = {
                "enabled": worker_config["enabled"],
                "in_progress": worker_config["in_progress"],
                "last_run": last_run.isoformat() if last_run else None,
                "next_run": next_run.isoformat() if next_run else None,
                "interval_seconds": worker_config["interval"],
                "last_result": worker_config["last_result"],
                "status": "running" if self.running else "stopped",
            }
        return status


# Global scheduler instance
scheduler = WorkerScheduler()


def start_background_workers():
    """Start the background worker scheduler."""
    scheduler.start()
    logger.info("Background workers started")


def stop_background_workers():
    """Stop the background worker scheduler."""
    scheduler.stop_scheduler()


def get_workers_status() -> Dict[str, Any]:
    """Get status of all background workers."""
    return scheduler.get_worker_status()
