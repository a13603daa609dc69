"""
Operator CLI.

    reconciler sync-one <AWB> [--json]
    reconciler sync-all [--limit N] [--json]
    reconciler reconcile [--execute] [--limit N] [--transaction ID ...] [--json]

Exit status: 0 when the run completed (per-item failures are in the summary),
1 on a fatal configuration or database error, 2 on a usage error.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from sqlalchemy.exc import OperationalError

from reconciler.config import settings
from reconciler.database import Base, SessionLocal
from reconciler.services import delhivery_service, hdfc_payment_service
from reconciler.services.errors import ConfigurationError
from reconciler.services.payment_reconciliation import PaymentReconciliationJob
from reconciler.services.tracking_sync import TrackingSyncJob

logger = logging.getLogger("reconciler.cli")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2

_TRACKING_COUNTS = ("processed", "changed", "unchanged", "not_found", "repaired", "delivered", "errored")
_PAYMENT_COUNTS = ("checked", "credited", "failed", "still_pending", "already_terminal", "repaired", "errored")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reconciler",
        description="Sync carrier tracking status and reconcile gateway payments",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    one = sub.add_parser("sync-one", help="Sync a single AWB")
    one.add_argument("awb", help="Carrier waybill number")
    one.add_argument("--json", action="store_true", help="Print the summary as JSON")

    every = sub.add_parser("sync-all", help="Sync all active shipments")
    every.add_argument("--limit", type=int, default=None, help="Sync at most N shipments")
    every.add_argument("--json", action="store_true", help="Print the summary as JSON")

    rec = sub.add_parser("reconcile", help="Reconcile pending payments (dry run by default)")
    rec.add_argument("--execute", action="store_true", help="Settle transactions and credit wallets")
    rec.add_argument("--limit", type=int, default=None, help="Check at most N transactions")
    rec.add_argument(
        "--transaction", dest="transaction_ids", action="append", metavar="ID",
        help="Only this internal transaction id (repeatable)",
    )
    rec.add_argument("--json", action="store_true", help="Print the summary as JSON")
    return parser


def _format_summary(title: str, data: dict, counts: Sequence[str]) -> str:
    lines = [title]
    for name in counts:
        lines.append(f"  {name:<17}{data.get(name, 0)}")
    if "total_credited" in data:
        lines.append(f"  {'total_credited':<17}{data['total_credited']}")
    if data.get("status_updates"):
        lines.append("  status updates:")
        for status, count in sorted(data["status_updates"].items()):
            lines.append(f"    {status:<17}{count}")
    if data.get("unmapped"):
        lines.append(f"  unmapped ({len(data['unmapped'])}):")
        for entry in data["unmapped"]:
            ref = entry.get("awb") or entry.get("transaction_id")
            lines.append(f"    {ref}: {entry.get('raw_status')!r}")
    if data.get("errors"):
        lines.append(f"  errors (first {len(data['errors'])}):")
        for message in data["errors"]:
            lines.append(f"    {message}")
    return "\n".join(lines)


def _format_payment_items(data: dict) -> str:
    lines = []
    for item in data.get("items", []):
        balance = ""
        if item.get("closing_balance") is not None:
            balance = f"  wallet {item['opening_balance']} -> {item['closing_balance']}"
        lines.append(
            f"  {item['transaction_id']:<24}{item['outcome']:<17}{item['amount']:>12}  {item['raw_status']}{balance}"
        )
    return "\n".join(lines)


async def _run(args: argparse.Namespace, db) -> dict:
    if args.command == "reconcile":
        job = PaymentReconciliationJob(db, hdfc_payment_service.get_client())
        summary = await job.run(execute=args.execute, limit=args.limit, transaction_ids=args.transaction_ids)
        return summary.to_dict()

    job = TrackingSyncJob(db, delhivery_service.get_client())
    if args.command == "sync-one":
        summary = await job.sync_one(args.awb)
    else:
        summary = await job.sync_all(limit=args.limit)
    return summary.to_dict()


def render(args: argparse.Namespace, data: dict) -> str:
    if args.json:
        return json.dumps(data, indent=2, default=str)
    if args.command == "reconcile":
        title = f"payment reconciliation ({'DRY RUN' if data['dry_run'] else 'EXECUTE'})"
        text = _format_summary(title, data, _PAYMENT_COUNTS)
        items = _format_payment_items(data)
        return f"{text}\n{items}" if items else text
    return _format_summary(f"tracking sync ({data['mode']})", data, _TRACKING_COUNTS)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return EXIT_USAGE if e.code else EXIT_OK

    if getattr(args, "limit", None) is not None and args.limit < 1:
        parser.print_usage(sys.stderr)
        print("reconciler: error: --limit must be a positive integer", file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    db = SessionLocal()
    try:
        Base.metadata.create_all(bind=db.get_bind())
        data = asyncio.run(_run(args, db))
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_FATAL
    except OperationalError as e:
        logger.error("Database unavailable: %s", e)
        return EXIT_FATAL
    finally:
        db.close()

    print(render(args, data))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
