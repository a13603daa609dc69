"""
Payment record store: settles a pending Transaction against the gateway's verdict
and credits the user's wallet at most once.

Two guards, one per side of the write:
  * Transaction side: the status transition is a conditional UPDATE
    ... WHERE status = 'pending'. Zero rows means another run got there first.
  * Wallet side: every credit inserts a wallet_ledger row keyed (UNIQUE) by the
    transaction. A ledger row for a still-pending transaction means the wallet was
    credited but the status write was lost; the next run finishes the status
    write from the ledger row and does not credit again. A failure verdict for such
    a transaction is refused and left for an operator.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from reconciler.models import (
    TERMINAL_PAYMENT_STATUSES,
    PaymentStatus,
    Transaction,
    User,
    WalletLedgerEntry,
)
from reconciler.services.errors import PersistenceError, RecordNotFoundError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class SettleResult:
    credited: bool = False
    already_terminal: bool = False
    repaired: bool = False
    status: Optional[PaymentStatus] = None
    amount: Decimal = Decimal("0")
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None


class PaymentRecordStore:
    """Transaction ledger + wallet balance access for payment reconciliation."""

    def __init__(self, db: Session, now: Callable[[], datetime] = _utcnow):
        self.db = db
        self._now = now

    def get_transaction(self, transaction_id: str) -> Transaction:
        txn = self.db.query(Transaction).filter(Transaction.transaction_id == transaction_id).first()
        if txn is None:
            raise RecordNotFoundError(f"No transaction {transaction_id}")
        return txn

    def pending_transactions(
        self,
        gateway: str = "hdfc",
        limit: Optional[int] = None,
        transaction_ids: Optional[Iterable[str]] = None,
    ) -> list[Transaction]:
        query = self.db.query(Transaction).filter(
            Transaction.status == PaymentStatus.PENDING,
            Transaction.payment_gateway == gateway,
            Transaction.gateway_order_ref.isnot(None),
        )
        if transaction_ids:
            query = query.filter(Transaction.transaction_id.in_(list(transaction_ids)))
        query = query.order_by(Transaction.created_at.asc(), Transaction.transaction_id.asc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def wallet_balance(self, user_id: str) -> Decimal:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise RecordNotFoundError(f"No user {user_id}")
        return Decimal(user.wallet_balance or 0)

    def preview_credit(self, txn: Transaction, opening: Optional[Decimal] = None) -> tuple[Decimal, Decimal]:
        """(opening, closing) the wallet would have if txn were credited now. Writes nothing."""
        if opening is None:
            opening = self.wallet_balance(txn.user_id)
        return opening, round_money(opening + Decimal(txn.amount))

    def settle_transaction(
        self,
        transaction_id: str,
        gateway_status: PaymentStatus,
        gateway_response: Optional[dict] = None,
    ) -> SettleResult:
        """Move a pending transaction to completed (crediting the wallet) or failed."""
        if gateway_status not in TERMINAL_PAYMENT_STATUSES:
            raise ValueError(f"cannot settle transaction with non-terminal status {gateway_status!r}")
        response = gateway_response or {}

        txn = self.get_transaction(transaction_id)
        amount = Decimal(txn.amount)
        if txn.status in TERMINAL_PAYMENT_STATUSES:
            logger.info("Transaction %s already %s; nothing to do", transaction_id, txn.status.value)
            return SettleResult(already_terminal=True, status=txn.status, amount=amount)

        if gateway_status == PaymentStatus.FAILED:
            self.check_not_credited(txn, response.get("status"))
            if not self._mark_failed(txn, response):
                return self._lost_race(transaction_id, amount)
            logger.info("Transaction %s marked failed (%s)", transaction_id, response.get("status"))
            return SettleResult(status=PaymentStatus.FAILED, amount=amount)

        credited = False
        entry = self.ledger_entry(txn.id)
        if entry is None:
            entry = self._credit_wallet(txn)
            if entry is None:
                entry = self.ledger_entry(txn.id)
            else:
                credited = True
        else:
            logger.warning(
                "Transaction %s: wallet already credited (ledger %s) but status still pending; completing it",
                transaction_id, entry.id,
            )
        if entry is None:
            raise PersistenceError(f"wallet credit for {transaction_id} could not be recorded")

        completed = self._mark_completed(txn, entry, response)
        if not completed and not credited:
            return self._lost_race(transaction_id, amount)
        if credited:
            logger.info(
                "Transaction %s: credited %s, wallet %s -> %s",
                transaction_id, amount, entry.opening_balance, entry.closing_balance,
            )
        return SettleResult(
            credited=credited,
            repaired=completed and not credited,
            status=PaymentStatus.COMPLETED,
            amount=amount,
            opening_balance=Decimal(entry.opening_balance),
            closing_balance=Decimal(entry.closing_balance),
        )

    def _lost_race(self, transaction_id: str, amount: Decimal) -> SettleResult:
        self.db.expire_all()
        txn = self.get_transaction(transaction_id)
        logger.info("Transaction %s settled by a concurrent run (%s)", transaction_id, txn.status.value)
        return SettleResult(already_terminal=True, status=txn.status, amount=amount)

    def ledger_entry(self, txn_pk: str) -> Optional[WalletLedgerEntry]:
        return self.db.query(WalletLedgerEntry).filter(WalletLedgerEntry.transaction_id == txn_pk).first()

    def check_not_credited(self, txn: Transaction, raw_status: Optional[str] = None) -> None:
        """
        Refuse to fail a transaction whose wallet credit already landed.

        A ledger row on a pending transaction means the credit committed and the
        completed write was lost. The transaction stays pending and the item is
        reported as an error for an operator to resolve.
        """
        entry = self.ledger_entry(txn.id)
        if entry is None:
            return
        logger.error(
            "Transaction %s: gateway reports %r but wallet already credited %s (ledger %s); left pending",
            txn.transaction_id, raw_status, entry.amount, entry.id,
        )
        raise PersistenceError(
            f"transaction {txn.transaction_id}: gateway reports {raw_status} but wallet already credited "
            f"{entry.amount} (ledger {entry.id}); needs manual review"
        )

    def _credit_wallet(self, txn: Transaction) -> Optional[WalletLedgerEntry]:
        """
        Read-modify-write the wallet and insert the ledger row in one commit.
        Returns None if a concurrent run inserted the ledger row first.
        """
        try:
            user = self.db.query(User).filter(User.id == txn.user_id).with_for_update().first()
            if user is None:
                raise RecordNotFoundError(f"No user {txn.user_id} for transaction {txn.transaction_id}")
            amount = Decimal(txn.amount)
            opening = Decimal(user.wallet_balance or 0)
            closing = round_money(opening + amount)
            user.wallet_balance = closing
            entry = WalletLedgerEntry(
                transaction_id=txn.id,
                user_id=user.id,
                amount=amount,
                opening_balance=opening,
                closing_balance=closing,
            )
            self.db.add(entry)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Transaction %s: wallet credited by a concurrent run", txn.transaction_id)
            return None
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"wallet credit for {txn.transaction_id} failed: {e}") from e
        return entry

    def _mark_completed(self, txn: Transaction, entry: WalletLedgerEntry, response: dict) -> bool:
        now = self._now()
        return self._transition(
            txn,
            {
                "status": PaymentStatus.COMPLETED,
                "payment_status": PaymentStatus.COMPLETED,
                "gateway_txn_id": _opt_str(response.get("txn_id")),
                "bank_ref_no": _opt_str(response.get("bank_ref_no")),
                "payment_method": _opt_str(response.get("payment_method")),
                "paid_at": now,
                "opening_balance": entry.opening_balance,
                "closing_balance": entry.closing_balance,
                "gateway_response": response or None,
                "updated_at": now,
            },
        )

    def _mark_failed(self, txn: Transaction, response: dict) -> bool:
        reason = response.get("error_message") or f"Payment failed with status: {response.get('status')}"
        return self._transition(
            txn,
            {
                "status": PaymentStatus.FAILED,
                "payment_status": PaymentStatus.FAILED,
                "failure_reason": str(reason),
                "gateway_response": response or None,
                "updated_at": self._now(),
            },
        )

    def _transition(self, txn: Transaction, values: dict) -> bool:
        """Compare-and-set from pending. True if this call made the transition."""
        transaction_id = txn.transaction_id
        try:
            updated = (
                self.db.query(Transaction)
                .filter(Transaction.id == txn.id, Transaction.status == PaymentStatus.PENDING)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"status update for {transaction_id} failed: {e}") from e
        return updated == 1
