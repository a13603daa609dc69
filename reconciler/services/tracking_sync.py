"""
Tracking sync: pull carrier status for tracked shipments and project it onto the
tracking record and the order.

Per shipment: carrier API -> extract -> map -> ShipmentRecordStore.apply_status.
Shipments are processed one at a time through BatchRunner; a failure on one AWB
is recorded and the run continues with the next.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from reconciler.config import settings
from reconciler.models import RunJobType, RunMode, ShipmentStatus
from reconciler.services.batch_runner import BatchResult, BatchRunner
from reconciler.services.errors import ConfigurationError
from reconciler.services.run_history import finish_run, start_run
from reconciler.services.shipment_store import ShipmentRecordStore
from reconciler.services.status_extractor import extract_status
from reconciler.services.status_mapper import UNKNOWN, map_shipment_status

logger = logging.getLogger(__name__)


class TrackingClient(Protocol):
    async def fetch_tracking_status(self, waybill: str) -> Any: ...


@dataclass
class TrackingItemResult:
    awb: str
    outcome: str
    raw_status: Optional[str] = None
    status: Optional[str] = None
    previous_status: Optional[str] = None
    matched_path: Optional[str] = None
    terminal: bool = False
    repaired: bool = False

    def to_dict(self) -> dict:
        return {
            "awb": self.awb,
            "outcome": self.outcome,
            "raw_status": self.raw_status,
            "status": self.status,
            "previous_status": self.previous_status,
            "matched_path": self.matched_path,
            "terminal": self.terminal,
            "repaired": self.repaired,
        }


@dataclass
class TrackingSyncSummary:
    mode: str
    processed: int = 0
    changed: int = 0
    unchanged: int = 0
    not_found: int = 0
    repaired: int = 0
    delivered: int = 0
    errored: int = 0
    unmapped: list[dict] = field(default_factory=list)
    status_updates: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    items: list[TrackingItemResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "processed": self.processed,
            "changed": self.changed,
            "unchanged": self.unchanged,
            "not_found": self.not_found,
            "repaired": self.repaired,
            "delivered": self.delivered,
            "errored": self.errored,
            "unmapped": self.unmapped,
            "status_updates": self.status_updates,
            "errors": self.errors,
            "items": [i.to_dict() for i in self.items],
        }


def _value(status: Optional[ShipmentStatus]) -> Optional[str]:
    return status.value if status is not None else None


class TrackingSyncJob:
    """Sync carrier tracking status into TrackingRecord and Order."""

    def __init__(
        self,
        db: Session,
        client: TrackingClient,
        store: Optional[ShipmentRecordStore] = None,
        runner: Optional[BatchRunner] = None,
        error_limit: Optional[int] = None,
    ):
        self.db = db
        self.client = client
        self.store = store or ShipmentRecordStore(db)
        self.runner = runner or BatchRunner(
            delay_seconds=settings.TRACKING_SYNC_DELAY_MS / 1000,
            max_delay_seconds=settings.MAX_BACKOFF_DELAY_MS / 1000,
            fatal_exceptions=(ConfigurationError, OperationalError),
        )
        self.error_limit = error_limit if error_limit is not None else settings.SUMMARY_ERROR_LIMIT

    async def sync_all(self, limit: Optional[int] = None) -> TrackingSyncSummary:
        """Sync every active tracking record (least recently synced first)."""
        awbs = [r.awb_number for r in self.store.active_records(limit)]
        logger.info("Tracking sync: %s active shipments", len(awbs))
        return await self._run(RunMode.SYNC_ALL, awbs)

    async def sync_one(self, awb: str) -> TrackingSyncSummary:
        """Sync a single AWB, active or not."""
        return await self._run(RunMode.SYNC_ONE, [awb.strip()])

    async def _run(self, mode: RunMode, awbs: list[str]) -> TrackingSyncSummary:
        run = start_run(self.db, RunJobType.TRACKING_SYNC, mode)
        try:
            batch = await self.runner.run(awbs, self._sync_awb, key=lambda awb: awb)
        except Exception as e:
            finish_run(self.db, run, error=f"{type(e).__name__}: {e}")
            raise
        summary = self._summarize(mode, batch)
        finish_run(
            self.db,
            run,
            summary=summary.to_dict(),
            items_processed=summary.processed,
            items_failed=summary.errored,
        )
        logger.info(
            "Tracking sync done: processed=%s changed=%s unchanged=%s not_found=%s unmapped=%s repaired=%s errored=%s",
            summary.processed, summary.changed, summary.unchanged, summary.not_found,
            len(summary.unmapped), summary.repaired, summary.errored,
        )
        return summary

    async def _sync_awb(self, awb: str) -> TrackingItemResult:
        # Unknown AWBs fail here, before spending an API call
        self.store.get_record(awb)

        payload = await self.client.fetch_tracking_status(awb)
        extracted = extract_status(payload)
        if extracted is None:
            logger.info("AWB %s: no status in carrier response", awb)
            result = self.store.apply_status(awb, None, UNKNOWN)
            return TrackingItemResult(
                awb=awb,
                outcome="repaired" if result.repaired else "not_found",
                status=_value(result.status),
                previous_status=_value(result.previous_status),
                terminal=result.terminal,
                repaired=result.repaired,
            )

        canonical = map_shipment_status(extracted.raw_status)
        result = self.store.apply_status(awb, extracted, canonical)
        if result.unmapped:
            outcome = "unmapped"
        elif result.changed:
            outcome = "changed"
        elif result.repaired:
            outcome = "repaired"
        else:
            outcome = "unchanged"
        return TrackingItemResult(
            awb=awb,
            outcome=outcome,
            raw_status=extracted.raw_status,
            status=_value(result.status),
            previous_status=_value(result.previous_status),
            matched_path=extracted.matched_path,
            terminal=result.terminal,
            repaired=result.repaired,
        )

    def _summarize(self, mode: RunMode, batch: BatchResult[TrackingItemResult]) -> TrackingSyncSummary:
        summary = TrackingSyncSummary(mode=mode.value, processed=len(batch.outcomes))
        updates: Counter = Counter()
        for outcome in batch.succeeded:
            item = outcome.value
            summary.items.append(item)
            if item.outcome == "changed":
                summary.changed += 1
                updates[item.status] += 1
                if item.status == ShipmentStatus.DELIVERED.value:
                    summary.delivered += 1
            elif item.outcome == "unmapped":
                summary.unmapped.append({"awb": item.awb, "raw_status": item.raw_status})
                # The order can still have been brought in line in the same pass
                if item.repaired:
                    summary.repaired += 1
            elif item.outcome == "not_found":
                summary.not_found += 1
            elif item.outcome == "repaired":
                summary.repaired += 1
            else:
                summary.unchanged += 1
                updates["no_change"] += 1
        summary.status_updates = dict(updates)
        summary.errored = len(batch.failed)
        summary.errors = batch.errors[: self.error_limit]
        return summary
