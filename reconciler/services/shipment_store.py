"""
Shipment record store: applies a canonical carrier status to the tracking record
and mirrors it onto the order.

The tracking record and the order are written in two separate commits, tracking
first. Whether the order needs writing is decided from the order itself
(order.status vs tracking.current_status), so an order write that failed on one
run is completed on the next one without touching tracking history again.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from reconciler.models import Order, OrderStatusHistory, ShipmentStatus, TrackingRecord, TrackingStatusHistory
from reconciler.services.errors import ConcurrentUpdateError, PersistenceError, RecordNotFoundError
from reconciler.services.status_extractor import ExtractedStatus, parse_carrier_timestamp
from reconciler.services.status_mapper import UNKNOWN, ShipmentMapping, is_final_shipment_status

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ApplyResult:
    changed: bool
    terminal: bool
    repaired: bool = False
    unmapped: bool = False
    status: Optional[ShipmentStatus] = None
    previous_status: Optional[ShipmentStatus] = None


class ShipmentRecordStore:
    """Reads and writes TrackingRecord + Order for the tracking sync."""

    source = "delhivery_tracking_api"

    def __init__(self, db: Session, now: Callable[[], datetime] = _utcnow):
        self.db = db
        self._now = now

    def get_record(self, awb: str) -> TrackingRecord:
        record = self.db.query(TrackingRecord).filter(TrackingRecord.awb_number == awb).first()
        if record is None:
            raise RecordNotFoundError(f"No tracking record for AWB {awb}")
        return record

    def active_records(self, limit: Optional[int] = None) -> list[TrackingRecord]:
        query = (
            self.db.query(TrackingRecord)
            .filter(TrackingRecord.is_active.is_(True))
            .order_by(
                TrackingRecord.last_synced_at.is_(None).desc(),
                TrackingRecord.last_synced_at.asc(),
                TrackingRecord.awb_number.asc(),
            )
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def apply_status(
        self,
        awb: str,
        extracted: Optional[ExtractedStatus],
        canonical: ShipmentMapping,
    ) -> ApplyResult:
        """
        Apply one sync observation for an AWB.

        No-op when the status is unmapped, when the shipment is already delivered,
        or when the status is unchanged and carries no new timestamp/location.
        Otherwise appends exactly one history entry. The order mirror is brought in
        line with the tracking record in every case.
        """
        record = self.get_record(awb)
        previous = record.current_status
        synced_at = self._now()
        unmapped = extracted is not None and canonical is UNKNOWN
        changed = False

        if extracted is None:
            logger.debug("AWB %s: no carrier status this cycle", awb)
        elif unmapped:
            logger.warning("AWB %s: carrier status %r not mapped, keeping %s", awb, extracted.raw_status, previous)
        elif record.is_delivered:
            if canonical != ShipmentStatus.DELIVERED:
                logger.warning("AWB %s already delivered; ignoring carrier status %r", awb, extracted.raw_status)
        else:
            occurred_at = parse_carrier_timestamp(extracted.occurred_at)
            if self._has_new_information(record, canonical, occurred_at, extracted.location):
                self._record_status(record, extracted, canonical, occurred_at or synced_at, synced_at)
                self._commit(f"tracking record {awb}")
                changed = True
                logger.info("AWB %s: %s -> %s (%r)", awb, previous, canonical.value, extracted.raw_status)
            else:
                logger.debug("AWB %s: no change (%s)", awb, canonical.value)

        try:
            projected = self._project_order(record, synced_at)
        except PersistenceError:
            if changed:
                logger.error("AWB %s: tracking record updated but order projection failed; will repair next run", awb)
            raise

        return ApplyResult(
            changed=changed,
            terminal=not record.is_active,
            repaired=projected and not changed,
            unmapped=unmapped,
            status=record.current_status,
            previous_status=previous,
        )

    def _has_new_information(
        self,
        record: TrackingRecord,
        canonical: ShipmentStatus,
        occurred_at: Optional[datetime],
        location: Optional[str],
    ) -> bool:
        if record.current_status != canonical:
            return True
        last = record.status_history[-1] if record.status_history else None
        if last is None:
            return occurred_at is not None or bool(location)
        if occurred_at is not None and occurred_at != last.occurred_at:
            return True
        return bool(location) and location != last.location

    def _record_status(
        self,
        record: TrackingRecord,
        extracted: ExtractedStatus,
        canonical: ShipmentStatus,
        occurred_at: datetime,
        synced_at: datetime,
    ) -> None:
        record.status_history.append(
            TrackingStatusHistory(
                status=canonical,
                raw_status=extracted.raw_status,
                status_type=extracted.status_type,
                location=extracted.location,
                occurred_at=occurred_at,
                recorded_at=synced_at,
                extraction_path=extracted.matched_path,
            )
        )
        record.current_status = canonical
        record.raw_last_status = extracted.raw_status
        record.last_synced_at = synced_at
        record.is_active = not is_final_shipment_status(canonical)
        if canonical == ShipmentStatus.DELIVERED:
            record.is_delivered = True
            record.delivered_at = occurred_at
            record.delivery_location = extracted.location

    def _project_order(self, record: TrackingRecord, synced_at: datetime) -> bool:
        """
        Bring order.status in line with the tracking record. Returns True if it wrote.

        Conditional UPDATE on the status still differing: only the run that flips
        the status appends order history.
        """
        status = record.current_status
        if status is None:
            return False
        order = self.db.query(Order).filter(Order.order_ref == record.order_ref).first()
        if order is None:
            logger.warning("AWB %s: no order %s to project status onto", record.awb_number, record.order_ref)
            return False
        if order.status == status:
            return False

        last = record.status_history[-1] if record.status_history else None
        old_status = order.status
        values = {"status": status}
        if status == ShipmentStatus.DELIVERED:
            values["delivered_at"] = record.delivered_at
        if status == ShipmentStatus.CANCELLED and order.cancelled_at is None:
            values["cancelled_at"] = last.occurred_at if last else synced_at
        try:
            updated = (
                self.db.query(Order)
                .filter(Order.id == order.id, or_(Order.status.is_(None), Order.status != status))
                .update(values, synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to persist order {order.order_ref}: {e}") from e
        if updated == 0:
            self.db.expire(order)
            logger.info("Order %s already projected to %s by another run", order.order_ref, status.value)
            return False

        self.db.add(
            OrderStatusHistory(
                order_id=order.id,
                status=status,
                raw_status=record.raw_last_status,
                location=last.location if last else None,
                remarks=f"Status updated from carrier: {record.raw_last_status}",
                source=self.source,
                occurred_at=last.occurred_at if last else None,
                recorded_at=synced_at,
            )
        )
        self._commit(f"order {order.order_ref}")
        logger.info("Order %s: %s -> %s", order.order_ref, old_status, status.value)
        return True

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConcurrentUpdateError(f"{what} was modified by another run") from e
        except SQLAlchemyError as e:
            # Includes OperationalError (lock waits, deadlocks, serialization failures)
            self.db.rollback()
            raise PersistenceError(f"failed to persist {what}: {e}") from e
