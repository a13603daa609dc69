"""
Canonical status mapping for carrier and gateway status strings.

Exact-key lookup only. A raw string that is not in the table maps to UNKNOWN and
the caller keeps whatever canonical status it already had. No substring guessing:
"AUTO_REFUNDED" is a failed payment, not a refund of a successful one.
"""
import logging
from typing import Optional, Union

from reconciler.models import PaymentStatus, ShipmentStatus

logger = logging.getLogger(__name__)


class _Unknown:
    """Sentinel for a raw status that has no entry in the mapping table."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()

ShipmentMapping = Union[ShipmentStatus, _Unknown]
PaymentMapping = Union[PaymentStatus, _Unknown]


# Delhivery raw status (whitespace-collapsed, lower) -> canonical
SHIPMENT_STATUS_MAP: dict[str, ShipmentStatus] = {
    # delivered
    "delivered": ShipmentStatus.DELIVERED,
    # out for delivery
    "out for delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "outfor delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "out-for-delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "out_for_delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "outfordelivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "out for delivery (ofd)": ShipmentStatus.OUT_FOR_DELIVERY,
    "ofd": ShipmentStatus.OUT_FOR_DELIVERY,
    "dispatched": ShipmentStatus.OUT_FOR_DELIVERY,
    # in transit; "Pending" is the carrier's word for waiting at the destination hub
    "in transit": ShipmentStatus.IN_TRANSIT,
    "intransit": ShipmentStatus.IN_TRANSIT,
    "in-transit": ShipmentStatus.IN_TRANSIT,
    "in_transit": ShipmentStatus.IN_TRANSIT,
    "in transist": ShipmentStatus.IN_TRANSIT,
    "intranist": ShipmentStatus.IN_TRANSIT,
    "pending": ShipmentStatus.IN_TRANSIT,
    # pickup / manifest
    "manifested": ShipmentStatus.PICKUP_PENDING,
    "manifest": ShipmentStatus.PICKUP_PENDING,
    "pickup": ShipmentStatus.PICKUP_PENDING,
    "pickup scheduled": ShipmentStatus.PICKUP_PENDING,
    "pickup and manifest": ShipmentStatus.PICKUP_PENDING,
    "pickups_manifests": ShipmentStatus.PICKUP_PENDING,
    "pickup_pending": ShipmentStatus.PICKUP_PENDING,
    "not picked": ShipmentStatus.PICKUP_PENDING,
    "notpicked": ShipmentStatus.PICKUP_PENDING,
    "not-picked": ShipmentStatus.PICKUP_PENDING,
    "not_picked": ShipmentStatus.PICKUP_PENDING,
    "ready to ship": ShipmentStatus.PICKUP_PENDING,
    "ready_to_ship": ShipmentStatus.PICKUP_PENDING,
    # non-delivery report
    "ndr": ShipmentStatus.NDR,
    "non-delivery report": ShipmentStatus.NDR,
    "non delivery report": ShipmentStatus.NDR,
    "non delivery": ShipmentStatus.NDR,
    "undelivered": ShipmentStatus.NDR,
    # return to origin
    "rto": ShipmentStatus.RTO,
    "r.t.o": ShipmentStatus.RTO,
    "r.t.o.": ShipmentStatus.RTO,
    "return to origin": ShipmentStatus.RTO,
    "returned": ShipmentStatus.RTO,
    "rto initiated": ShipmentStatus.RTO,
    "rto delivered": ShipmentStatus.RTO,
    "rto-del": ShipmentStatus.RTO,
    "rto_del": ShipmentStatus.RTO,
    # cancelled
    "cancelled": ShipmentStatus.CANCELLED,
    "canceled": ShipmentStatus.CANCELLED,
    "cancel": ShipmentStatus.CANCELLED,
    # lost
    "lost": ShipmentStatus.LOST,
}

# HDFC SmartGateway (Juspay) order status -> canonical
PAYMENT_STATUS_MAP: dict[str, PaymentStatus] = {
    "CHARGED": PaymentStatus.COMPLETED,
    "COD_INITIATED": PaymentStatus.COMPLETED,
    "NEW": PaymentStatus.PENDING,
    "STARTED": PaymentStatus.PENDING,
    "PENDING": PaymentStatus.PENDING,
    "PENDING_VBV": PaymentStatus.PENDING,
    "AUTHORIZING": PaymentStatus.PENDING,
    "AUTHORIZED": PaymentStatus.PENDING,
    "AUTHORIZATION_FAILED": PaymentStatus.FAILED,
    "AUTHENTICATION_FAILED": PaymentStatus.FAILED,
    "JUSPAY_DECLINED": PaymentStatus.FAILED,
    "AUTO_REFUNDED": PaymentStatus.FAILED,
}

# Once reached, scheduled tracking stops
FINAL_SHIPMENT_STATUSES = frozenset(
    {ShipmentStatus.DELIVERED, ShipmentStatus.RTO, ShipmentStatus.CANCELLED, ShipmentStatus.LOST}
)

# Operator-facing grouping
STATUS_CATEGORIES = {
    ShipmentStatus.PICKUP_PENDING: "PICKUPS_AND_MANIFESTS",
    ShipmentStatus.IN_TRANSIT: "IN_TRANSIT",
    ShipmentStatus.OUT_FOR_DELIVERY: "IN_TRANSIT",
    ShipmentStatus.DELIVERED: "DELIVERED",
    ShipmentStatus.NDR: "NDR",
    ShipmentStatus.RTO: "RTO",
    ShipmentStatus.CANCELLED: "CANCELLED",
    ShipmentStatus.LOST: "LOST",
}


def _normalize(raw: Optional[str]) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    collapsed = " ".join(raw.split())
    return collapsed or None


def map_shipment_status(raw_status: Optional[str]) -> ShipmentMapping:
    key = _normalize(raw_status)
    if key is None:
        return UNKNOWN
    mapped = SHIPMENT_STATUS_MAP.get(key.lower())
    if mapped is None:
        logger.warning("Unmapped carrier status %r", raw_status)
        return UNKNOWN
    return mapped


def map_payment_status(raw_status: Optional[str]) -> PaymentMapping:
    key = _normalize(raw_status)
    if key is None:
        return UNKNOWN
    mapped = PAYMENT_STATUS_MAP.get(key.upper())
    if mapped is None:
        logger.warning("Unmapped gateway status %r", raw_status)
        return UNKNOWN
    return mapped


def is_final_shipment_status(status: ShipmentMapping) -> bool:
    return status in FINAL_SHIPMENT_STATUSES


def status_category(status: ShipmentMapping) -> Optional[str]:
    if status is UNKNOWN:
        return None
    return STATUS_CATEGORIES.get(status)
