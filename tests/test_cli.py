"""
Operator CLI tests - modes, output and exit codes
"""
import json
from decimal import Decimal

import pytest

from reconciler import cli
from reconciler.models import PaymentStatus, Transaction, User
from reconciler.services import delhivery_service, hdfc_payment_service
from reconciler.services.errors import ConfigurationError
from tests.factories import delhivery_payload, make_tracking, make_transaction, make_user


@pytest.fixture
def wired(session_factory, carrier, gateway, monkeypatch):
    """CLI bound to the test database and fake clients, no pacing."""
    monkeypatch.setattr(cli, "SessionLocal", session_factory)
    monkeypatch.setattr(delhivery_service, "get_client", lambda api_key=None: carrier)
    monkeypatch.setattr(hdfc_payment_service, "get_client", lambda: gateway)
    monkeypatch.setattr(cli.settings, "TRACKING_SYNC_DELAY_MS", 0)
    monkeypatch.setattr(cli.settings, "PAYMENT_RECONCILE_DELAY_MS", 0)
    return carrier, gateway


def _refuse(*args, **kwargs):
    raise ConfigurationError("HDFC_API_KEY not set")


class TestCliModes:
    def test_sync_one_json(self, wired, db_session, capsys):
        carrier, _ = wired
        make_tracking(db_session, "AWB1")
        carrier.responses["AWB1"] = delhivery_payload("Delivered", location="Mumbai")

        code = cli.main(["sync-one", "AWB1", "--json"])

        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["mode"] == "sync_one"
        assert out["delivered"] == 1

    def test_sync_all_text_summary(self, wired, db_session, capsys):
        carrier, _ = wired
        make_tracking(db_session, "AWB1")
        make_tracking(db_session, "AWB2")
        carrier.responses["AWB1"] = delhivery_payload("In Transit")
        carrier.responses["AWB2"] = delhivery_payload("Beamed Up")

        code = cli.main(["sync-all"])

        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("tracking sync (sync_all)")
        assert "processed" in out
        assert "AWB2: 'Beamed Up'" in out

    def test_per_item_errors_do_not_change_exit_code(self, wired, capsys):
        code = cli.main(["sync-one", "UNKNOWN-AWB"])
        out = capsys.readouterr().out
        assert code == 0
        assert "errors (first 1)" in out
        assert "UNKNOWN-AWB" in out

    def test_reconcile_defaults_to_dry_run(self, wired, db_session, capsys):
        _, gateway = wired
        user = make_user(db_session, balance="0")
        make_transaction(db_session, user, "t1", "500", gateway_order_ref="G1")
        gateway.responses["G1"] = {"status": "CHARGED"}

        code = cli.main(["reconcile"])

        out = capsys.readouterr().out
        assert code == 0
        assert "DRY RUN" in out
        assert "would_credit" in out
        assert "wallet 0.00 -> 500.00" in out
        db_session.expire_all()
        assert db_session.query(User).one().wallet_balance == Decimal("0")

    def test_reconcile_execute_for_one_transaction(self, wired, db_session, capsys):
        _, gateway = wired
        user = make_user(db_session, balance="0")
        make_transaction(db_session, user, "t1", "500", gateway_order_ref="G1")
        make_transaction(db_session, user, "t2", "75", gateway_order_ref="G2")
        gateway.responses["G1"] = {"status": "CHARGED"}

        code = cli.main(["reconcile", "--execute", "--transaction", "t1", "--json"])

        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["dry_run"] is False
        assert out["total_credited"] == "500.00"
        db_session.expire_all()
        statuses = {t.transaction_id: t.status for t in db_session.query(Transaction).all()}
        assert statuses == {"t1": PaymentStatus.COMPLETED, "t2": PaymentStatus.PENDING}


class TestCliExitCodes:
    def test_configuration_error_is_fatal(self, wired, monkeypatch):
        monkeypatch.setattr(hdfc_payment_service, "get_client", _refuse)
        assert cli.main(["reconcile", "--execute"]) == 1

    @pytest.mark.parametrize(
        "argv",
        [[], ["teleport"], ["sync-one"], ["sync-all", "--limit", "zero"], ["reconcile", "--limit", "0"]],
    )
    def test_usage_errors(self, wired, argv, capsys):
        assert cli.main(argv) == 2

    def test_help_exits_cleanly(self, capsys):
        assert cli.main(["--help"]) == 0
        assert "sync-one" in capsys.readouterr().out
