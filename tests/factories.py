"""
Model factories and fake external clients for the test suite.
"""
from decimal import Decimal
from typing import Any, Optional

from reconciler.models import (
    Order,
    PaymentStatus,
    ShipmentStatus,
    TrackingRecord,
    Transaction,
    User,
)


def make_user(db, balance: str = "0.00", email: Optional[str] = None) -> User:
    user = User(
        name="Test Merchant",
        email=email or f"merchant{db.query(User).count()}@example.com",
        wallet_balance=Decimal(balance),
    )
    db.add(user)
    db.commit()
    return user


def make_order(db, order_ref: str, status: Optional[ShipmentStatus] = None, user: Optional[User] = None) -> Order:
    order = Order(order_ref=order_ref, status=status, user_id=user.id if user else None)
    db.add(order)
    db.commit()
    return order


def make_tracking(
    db,
    awb: str,
    order_ref: Optional[str] = None,
    status: Optional[ShipmentStatus] = ShipmentStatus.IN_TRANSIT,
    with_order: bool = True,
    **fields,
) -> TrackingRecord:
    order_ref = order_ref or f"ORD-{awb}"
    if with_order:
        make_order(db, order_ref, status=status)
    record = TrackingRecord(awb_number=awb, order_ref=order_ref, current_status=status, **fields)
    db.add(record)
    db.commit()
    return record


def make_transaction(
    db,
    user: User,
    transaction_id: str,
    amount: str,
    status: PaymentStatus = PaymentStatus.PENDING,
    gateway_order_ref: Optional[str] = None,
    **fields,
) -> Transaction:
    txn = Transaction(
        transaction_id=transaction_id,
        user_id=user.id,
        amount=Decimal(amount),
        status=status,
        payment_status=status,
        gateway_order_ref=gateway_order_ref or f"HDFC-{transaction_id}",
        description="Wallet recharge",
        **fields,
    )
    db.add(txn)
    db.commit()
    return txn


def delhivery_payload(
    status: str,
    location: Optional[str] = None,
    when: Optional[str] = None,
    status_type: Optional[str] = None,
) -> dict:
    """Tracking response in the carrier's usual nested shape."""
    return {
        "ShipmentData": [
            {
                "Shipment": {
                    "AWB": "TEST",
                    "Status": {
                        "Status": status,
                        "StatusType": status_type,
                        "StatusLocation": location,
                        "StatusDateTime": when,
                    },
                }
            }
        ]
    }


class FakeCarrier:
    """Carrier client returning canned payloads (or raising) per AWB."""

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: list[str] = []

    async def fetch_tracking_status(self, waybill: str) -> Any:
        self.calls.append(waybill)
        response = self.responses.get(waybill, {})
        if isinstance(response, BaseException):
            raise response
        return response


class FakeGateway:
    """Payment gateway client returning canned order-status payloads (or raising) per order ref."""

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: list[str] = []

    async def fetch_payment_status(self, order_ref: str) -> dict:
        self.calls.append(order_ref)
        response = self.responses[order_ref]
        if isinstance(response, BaseException):
            raise response
        return response
