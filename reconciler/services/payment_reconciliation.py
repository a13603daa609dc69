"""
Payment reconciliation: settle pending HDFC transactions against the gateway's
order status.

dry-run (default) asks the gateway and reports what would happen, writing nothing
to transactions or wallets. execute settles each transaction through
PaymentRecordStore, which credits a wallet at most once.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from reconciler.config import settings
from reconciler.models import PaymentStatus, RunJobType, RunMode, Transaction
from reconciler.services.batch_runner import BatchResult, BatchRunner
from reconciler.services.errors import ConfigurationError
from reconciler.services.payment_store import PaymentRecordStore, round_money
from reconciler.services.run_history import finish_run, start_run
from reconciler.services.status_mapper import UNKNOWN, map_payment_status

logger = logging.getLogger(__name__)


class PaymentGatewayClient(Protocol):
    async def fetch_payment_status(self, order_ref: str) -> dict[str, Any]: ...


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(round_money(value)) if value is not None else None


@dataclass
class PaymentItemResult:
    transaction_id: str
    order_ref: str
    user_id: str
    amount: Decimal
    raw_status: Optional[str]
    status: str
    outcome: str
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "order_ref": self.order_ref,
            "user_id": self.user_id,
            "amount": _money(self.amount),
            "raw_status": self.raw_status,
            "status": self.status,
            "outcome": self.outcome,
            "opening_balance": _money(self.opening_balance),
            "closing_balance": _money(self.closing_balance),
        }


@dataclass
class ReconciliationSummary:
    dry_run: bool
    checked: int = 0
    credited: int = 0
    failed: int = 0
    still_pending: int = 0
    already_terminal: int = 0
    repaired: int = 0
    errored: int = 0
    total_credited: Decimal = Decimal("0.00")
    unmapped: list[dict] = field(default_factory=list)
    items: list[PaymentItemResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "checked": self.checked,
            "credited": self.credited,
            "failed": self.failed,
            "still_pending": self.still_pending,
            "already_terminal": self.already_terminal,
            "repaired": self.repaired,
            "errored": self.errored,
            "total_credited": _money(self.total_credited),
            "unmapped": self.unmapped,
            "items": [i.to_dict() for i in self.items],
            "errors": self.errors,
        }


class PaymentReconciliationJob:
    """Reconcile pending transactions with the payment gateway."""

    def __init__(
        self,
        db: Session,
        client: PaymentGatewayClient,
        store: Optional[PaymentRecordStore] = None,
        runner: Optional[BatchRunner] = None,
        error_limit: Optional[int] = None,
    ):
        self.db = db
        self.client = client
        self.store = store or PaymentRecordStore(db)
        self.runner = runner or BatchRunner(
            delay_seconds=settings.PAYMENT_RECONCILE_DELAY_MS / 1000,
            max_delay_seconds=settings.MAX_BACKOFF_DELAY_MS / 1000,
            fatal_exceptions=(ConfigurationError, OperationalError),
        )
        self.error_limit = error_limit if error_limit is not None else settings.SUMMARY_ERROR_LIMIT
        self._execute = False
        self._projected: dict[str, Decimal] = {}

    async def run(
        self,
        execute: bool = False,
        limit: Optional[int] = None,
        transaction_ids: Optional[Iterable[str]] = None,
    ) -> ReconciliationSummary:
        self._execute = execute
        self._projected = {}
        mode = RunMode.EXECUTE if execute else RunMode.DRY_RUN

        pending = self.store.pending_transactions(limit=limit, transaction_ids=transaction_ids)
        logger.info("Payment reconciliation (%s): %s pending transactions", mode.value, len(pending))

        run = start_run(self.db, RunJobType.PAYMENT_RECONCILE, mode)
        try:
            batch = await self.runner.run(pending, self._reconcile_one, key=lambda txn: txn.transaction_id)
        except Exception as e:
            finish_run(self.db, run, error=f"{type(e).__name__}: {e}")
            raise

        summary = self._summarize(batch)
        finish_run(
            self.db,
            run,
            summary=summary.to_dict(),
            items_processed=summary.checked,
            items_failed=summary.errored,
        )
        logger.info(
            "Payment reconciliation (%s) done: checked=%s credited=%s failed=%s still_pending=%s errored=%s total=%s",
            mode.value, summary.checked, summary.credited, summary.failed,
            summary.still_pending, summary.errored, summary.total_credited,
        )
        return summary

    async def _reconcile_one(self, txn: Transaction) -> PaymentItemResult:
        transaction_id = txn.transaction_id
        order_ref = txn.gateway_order_ref
        response = await self.client.fetch_payment_status(order_ref)
        raw_status = response.get("status")
        canonical = map_payment_status(raw_status)

        result = PaymentItemResult(
            transaction_id=transaction_id,
            order_ref=order_ref,
            user_id=txn.user_id,
            amount=Decimal(txn.amount),
            raw_status=raw_status,
            status="unknown" if canonical is UNKNOWN else canonical.value,
            outcome="still_pending",
        )

        if canonical is UNKNOWN:
            result.outcome = "unmapped"
            return result
        if canonical == PaymentStatus.PENDING:
            logger.info("Transaction %s still pending at gateway (%s)", transaction_id, raw_status)
            return result

        if not self._execute:
            return self._preview(txn, canonical, result)

        settled = self.store.settle_transaction(transaction_id, canonical, response)
        result.opening_balance = settled.opening_balance
        result.closing_balance = settled.closing_balance
        if settled.already_terminal:
            result.outcome = "already_terminal"
            result.status = settled.status.value if settled.status else result.status
        elif settled.credited:
            result.outcome = "credited"
        elif settled.repaired:
            result.outcome = "repaired"
        elif settled.status == PaymentStatus.FAILED:
            result.outcome = "failed"
        return result

    def _preview(self, txn: Transaction, canonical: PaymentStatus, result: PaymentItemResult) -> PaymentItemResult:
        if canonical == PaymentStatus.FAILED:
            self.store.check_not_credited(txn, result.raw_status)
            result.outcome = "would_fail"
            return result

        entry = self.store.ledger_entry(txn.id)
        if entry is not None:
            result.outcome = "would_repair"
            result.opening_balance = Decimal(entry.opening_balance)
            result.closing_balance = Decimal(entry.closing_balance)
            return result

        # Several pending credits for one user stack on the projected balance
        opening, closing = self.store.preview_credit(txn, self._projected.get(txn.user_id))
        self._projected[txn.user_id] = closing
        result.outcome = "would_credit"
        result.opening_balance = opening
        result.closing_balance = closing
        return result

    def _summarize(self, batch: BatchResult[PaymentItemResult]) -> ReconciliationSummary:
        summary = ReconciliationSummary(dry_run=not self._execute, checked=len(batch.outcomes))
        total = Decimal("0")
        for outcome in batch.succeeded:
            item = outcome.value
            summary.items.append(item)
            if item.outcome in ("credited", "would_credit"):
                summary.credited += 1
                total += item.amount
            elif item.outcome in ("failed", "would_fail"):
                summary.failed += 1
            elif item.outcome in ("repaired", "would_repair"):
                summary.repaired += 1
            elif item.outcome == "already_terminal":
                summary.already_terminal += 1
            else:
                summary.still_pending += 1
                if item.outcome == "unmapped":
                    summary.unmapped.append({"transaction_id": item.transaction_id, "raw_status": item.raw_status})
        summary.total_credited = round_money(total)
        summary.errored = len(batch.failed)
        summary.errors = batch.errors[: self.error_limit]
        return summary
