"""
Operator endpoints for tracking sync and payment reconciliation.
Every route requires the X-Operator-Token header.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from reconciler.config import settings
from reconciler.database import get_db
from reconciler.http.requests.schemas import PaymentReconcileRequest, TrackingSyncRequest
from reconciler.models import Order
from reconciler.services import delhivery_service, hdfc_payment_service
from reconciler.services.errors import ConfigurationError, RecordNotFoundError
from reconciler.services.payment_reconciliation import PaymentReconciliationJob
from reconciler.services.run_history import recent_runs, run_to_dict
from reconciler.services.shipment_store import ShipmentRecordStore
from reconciler.services.status_mapper import status_category
from reconciler.services.tracking_sync import TrackingSyncJob
from reconciler.workers.scheduler import get_workers_status

logger = logging.getLogger(__name__)


def require_operator(x_operator_token: Optional[str] = Header(default=None)) -> None:
    expected = settings.OPERATOR_API_TOKEN
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Operator API is not configured")
    if not x_operator_token or not hmac.compare_digest(x_operator_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid operator token")


def get_tracking_client():
    try:
        return delhivery_service.get_client()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


def get_payment_client():
    try:
        return hdfc_payment_service.get_client()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


router = APIRouter(dependencies=[Depends(require_operator)])


@router.post("/tracking/sync")
async def sync_all_tracking(
    body: Optional[TrackingSyncRequest] = None,
    db: Session = Depends(get_db),
    client=Depends(get_tracking_client),
):
    """Sync every active shipment with the carrier."""
    limit = body.limit if body else None
    try:
        summary = await TrackingSyncJob(db, client).sync_all(limit=limit)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return summary.to_dict()


@router.post("/tracking/{awb}/sync")
async def sync_one_tracking(
    awb: str,
    db: Session = Depends(get_db),
    client=Depends(get_tracking_client),
):
    """Sync a single AWB, including ones no longer tracked on schedule."""
    try:
        summary = await TrackingSyncJob(db, client).sync_one(awb)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return summary.to_dict()


@router.get("/tracking/{awb}")
async def get_tracking(awb: str, db: Session = Depends(get_db)):
    """Tracking record, its history, and the order's mirrored status."""
    try:
        record = ShipmentRecordStore(db).get_record(awb)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    order = db.query(Order).filter(Order.order_ref == record.order_ref).first()
    current = record.current_status
    return {
        "awb": record.awb_number,
        "orderRef": record.order_ref,
        "courier": record.courier_name,
        "status": current.value if current else None,
        "category": status_category(current) if current else None,
        "rawStatus": record.raw_last_status,
        "isDelivered": record.is_delivered,
        "deliveredAt": record.delivered_at.isoformat() if record.delivered_at else None,
        "deliveryLocation": record.delivery_location,
        "isActive": record.is_active,
        "lastSyncedAt": record.last_synced_at.isoformat() if record.last_synced_at else None,
        "orderStatus": order.status.value if order and order.status else None,
        "inSync": bool(order) and order.status == current,
        "history": [
            {
                "status": h.status.value,
                "rawStatus": h.raw_status,
                "statusType": h.status_type,
                "location": h.location,
                "occurredAt": h.occurred_at.isoformat() if h.occurred_at else None,
                "recordedAt": h.recorded_at.isoformat() if h.recorded_at else None,
                "extractionPath": h.extraction_path,
            }
            for h in record.status_history
        ],
    }


@router.post("/payments/reconcile")
async def reconcile_payments(
    body: PaymentReconcileRequest,
    db: Session = Depends(get_db),
    client=Depends(get_payment_client),
):
    """Reconcile pending transactions. Dry run unless execute is true."""
    logger.info("Operator payment reconciliation requested (execute=%s)", body.execute)
    try:
        summary = await PaymentReconciliationJob(db, client).run(
            execute=body.execute,
            limit=body.limit,
            transaction_ids=body.transaction_ids,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return summary.to_dict()


@router.get("/runs")
async def list_runs(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Most recent job runs, newest first."""
    return [run_to_dict(run) for run in recent_runs(db, limit=limit)]


@router.get("/workers")
async def workers_status():
    return get_workers_status()
