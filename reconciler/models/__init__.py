"""
SQLAlchemy models for the reconciliation engine.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Numeric, Enum as SQLEnum, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reconciler.database import Base
import enum
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum(enum_cls):
    # Persist enum values ("in_transit"), not member names
    return SQLEnum(enum_cls, values_callable=lambda e: [m.value for m in e], native_enum=False, length=32)


# Enums
class ShipmentStatus(str, enum.Enum):
    PICKUP_PENDING = "pickup_pending"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    NDR = "ndr"
    RTO = "rto"
    CANCELLED = "cancelled"
    LOST = "lost"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

class RunJobType(str, enum.Enum):
    TRACKING_SYNC = "tracking_sync"
    PAYMENT_RECONCILE = "payment_reconcile"

class RunMode(str, enum.Enum):
    SYNC_ALL = "sync_all"
    SYNC_ONE = "sync_one"
    DRY_RUN = "dry_run"
    EXECUTE = "execute"

class RunStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_PAYMENT_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.FAILED)


# Models
class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    wallet_balance = Column("wallet_balance", Numeric(12, 2), default=0, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    transactions = relationship("Transaction", back_populates="user")


class Order(Base):
    """Order-side mirror of the shipment status. Written by the tracking sync as a secondary effect."""
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    order_ref = Column("order_ref", String, unique=True, nullable=False, index=True)
    user_id = Column("user_id", String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(_enum(ShipmentStatus), nullable=True)
    delivered_at = Column("delivered_at", DateTime, nullable=True)
    cancelled_at = Column("cancelled_at", DateTime, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.recorded_at",
        cascade="all, delete-orphan",
    )


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(_enum(ShipmentStatus), nullable=False)
    raw_status = Column("raw_status", String, nullable=True)
    location = Column("location", String, nullable=True)
    remarks = Column("remarks", String, nullable=True)
    source = Column("source", String, nullable=False, default="delhivery_tracking_api")
    occurred_at = Column("occurred_at", DateTime, nullable=True)
    recorded_at = Column("recorded_at", DateTime, nullable=False)

    order = relationship("Order", back_populates="status_history")


class TrackingRecord(Base):
    __tablename__ = "tracking_records"

    id = Column(String, primary_key=True, default=_uuid)
    awb_number = Column("awb_number", String, unique=True, nullable=False, index=True)
    order_ref = Column("order_ref", String, nullable=False, index=True)
    courier_name = Column("courier_name", String, nullable=False, default="delhivery")
    current_status = Column("current_status", _enum(ShipmentStatus), nullable=True)
    raw_last_status = Column("raw_last_status", String, nullable=True)
    last_synced_at = Column("last_synced_at", DateTime, nullable=True)
    is_delivered = Column("is_delivered", Boolean, default=False, nullable=False)
    delivered_at = Column("delivered_at", DateTime, nullable=True)
    delivery_location = Column("delivery_location", String, nullable=True)
    is_active = Column("is_active", Boolean, default=True, nullable=False, index=True)
    version = Column("version", Integer, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())

    status_history = relationship(
        "TrackingStatusHistory",
        back_populates="tracking_record",
        order_by="TrackingStatusHistory.recorded_at",
        cascade="all, delete-orphan",
    )

    # Conditional UPDATE ... WHERE version = :read_version; a stale write raises StaleDataError
    __mapper_args__ = {"version_id_col": version}


class TrackingStatusHistory(Base):
    __tablename__ = "tracking_status_history"

    id = Column(String, primary_key=True, default=_uuid)
    tracking_record_id = Column(
        "tracking_record_id", String, ForeignKey("tracking_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(_enum(ShipmentStatus), nullable=False)
    raw_status = Column("raw_status", String, nullable=False)
    status_type = Column("status_type", String, nullable=True)
    location = Column("location", String, nullable=True)
    occurred_at = Column("occurred_at", DateTime, nullable=False)
    recorded_at = Column("recorded_at", DateTime, nullable=False)
    extraction_path = Column("extraction_path", String, nullable=True)

    tracking_record = relationship("TrackingRecord", back_populates="status_history")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=_uuid)
    transaction_id = Column("transaction_id", String, unique=True, nullable=False, index=True)
    user_id = Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column("amount", Numeric(12, 2), nullable=False)
    status = Column(_enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    description = Column("description", String, nullable=True)

    # payment info
    payment_gateway = Column("payment_gateway", String, nullable=False, default="hdfc")
    gateway_order_ref = Column("gateway_order_ref", String, nullable=True, index=True)
    payment_status = Column("payment_status", _enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    gateway_txn_id = Column("gateway_txn_id", String, nullable=True)
    bank_ref_no = Column("bank_ref_no", String, nullable=True)
    payment_method = Column("payment_method", String, nullable=True)
    paid_at = Column("paid_at", DateTime, nullable=True)
    failure_reason = Column("failure_reason", String, nullable=True)
    gateway_response = Column("gateway_response", JSON, nullable=True)

    # balance info, recorded at credit time
    opening_balance = Column("opening_balance", Numeric(12, 2), nullable=True)
    closing_balance = Column("closing_balance", Numeric(12, 2), nullable=True)

    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="transactions")


class WalletLedgerEntry(Base):
    """Wallet-side record of a credit. One row per transaction, ever."""
    __tablename__ = "wallet_ledger"

    id = Column(String, primary_key=True, default=_uuid)
    transaction_id = Column(
        "transaction_id", String, ForeignKey("transactions.id", ondelete="RESTRICT"), nullable=False
    )
    user_id = Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column("amount", Numeric(12, 2), nullable=False)
    opening_balance = Column("opening_balance", Numeric(12, 2), nullable=False)
    closing_balance = Column("closing_balance", Numeric(12, 2), nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())

    __table_args__ = (UniqueConstraint("transaction_id", name="uq_wallet_ledger_transaction"),)


class ReconciliationRun(Base):
    __tablename__ = "reconciliation_runs"

    id = Column(String, primary_key=True, default=_uuid)
    job_type = Column("job_type", _enum(RunJobType), nullable=False, index=True)
    mode = Column("mode", _enum(RunMode), nullable=False)
    status = Column(_enum(RunStatus), default=RunStatus.RUNNING, nullable=False)
    started_at = Column("started_at", DateTime, nullable=False)
    finished_at = Column("finished_at", DateTime, nullable=True)
    items_processed = Column("items_processed", Integer, default=0)
    items_failed = Column("items_failed", Integer, default=0)
    summary = Column("summary", JSON, nullable=True)
    error_message = Column("error_message", String, nullable=True)
