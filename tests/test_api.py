"""
Operator HTTP endpoint tests
"""
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from reconciler.config import settings
from reconciler.database import get_db
from reconciler.http.controllers import reconciliation
from reconciler.models import ShipmentStatus, User
from routes.api import register_routes
from tests.factories import delhivery_payload, make_tracking, make_transaction, make_user

TOKEN = "op-token"
AUTH = {"X-Operator-Token": TOKEN}


@pytest.fixture
def client(db_session, carrier, gateway, monkeypatch):
    monkeypatch.setattr(settings, "OPERATOR_API_TOKEN", TOKEN)
    monkeypatch.setattr(settings, "TRACKING_SYNC_DELAY_MS", 0)
    monkeypatch.setattr(settings, "PAYMENT_RECONCILE_DELAY_MS", 0)
    app = FastAPI()
    register_routes(app, settings)
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[reconciliation.get_tracking_client] = lambda: carrier
    app.dependency_overrides[reconciliation.get_payment_client] = lambda: gateway
    return TestClient(app)


class TestOperatorAuth:
    def test_missing_token(self, client):
        assert client.get("/api/reconciliation/runs").status_code == 401

    def test_wrong_token(self, client):
        resp = client.get("/api/reconciliation/runs", headers={"X-Operator-Token": "nope"})
        assert resp.status_code == 401

    def test_unconfigured_token_refuses(self, client, monkeypatch):
        monkeypatch.setattr(settings, "OPERATOR_API_TOKEN", "")
        resp = client.get("/api/reconciliation/runs", headers=AUTH)
        assert resp.status_code == 503


class TestTrackingEndpoints:
    def test_sync_all_and_read_back(self, client, db_session, carrier):
        make_tracking(db_session, "AWB1", order_ref="ORD-1")
        carrier.responses["AWB1"] = delhivery_payload("Delivered", location="Mumbai", when="2024-01-15T14:30:00")

        resp = client.post("/api/reconciliation/tracking/sync", json={}, headers=AUTH)

        assert resp.status_code == 200
        body = resp.json()
        assert body["mode"] == "sync_all"
        assert body["changed"] == 1
        assert body["delivered"] == 1

        detail = client.get("/api/reconciliation/tracking/AWB1", headers=AUTH).json()
        assert detail["status"] == "delivered"
        assert detail["category"] == "DELIVERED"
        assert detail["isDelivered"] is True
        assert detail["deliveredAt"] == "2024-01-15T14:30:00"
        assert detail["orderStatus"] == "delivered"
        assert detail["inSync"] is True
        assert len(detail["history"]) == 1
        assert detail["history"][0]["location"] == "Mumbai"

    def test_sync_all_with_limit(self, client, db_session, carrier):
        make_tracking(db_session, "AWB1")
        make_tracking(db_session, "AWB2")
        resp = client.post("/api/reconciliation/tracking/sync", json={"limit": 1}, headers=AUTH)
        assert resp.json()["processed"] == 1
        assert len(carrier.calls) == 1

    def test_invalid_limit(self, client):
        resp = client.post("/api/reconciliation/tracking/sync", json={"limit": 0}, headers=AUTH)
        assert resp.status_code == 422

    def test_sync_one(self, client, db_session, carrier):
        make_tracking(db_session, "AWB1", status=ShipmentStatus.PICKUP_PENDING)
        carrier.responses["AWB1"] = delhivery_payload("In Transit")

        body = client.post("/api/reconciliation/tracking/AWB1/sync", headers=AUTH).json()

        assert body["mode"] == "sync_one"
        assert body["items"][0]["previous_status"] == "pickup_pending"
        assert body["items"][0]["status"] == "in_transit"

    def test_sync_one_unknown_awb_is_reported_not_raised(self, client):
        resp = client.post("/api/reconciliation/tracking/NOPE/sync", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["errored"] == 1

    def test_unknown_tracking_record(self, client):
        assert client.get("/api/reconciliation/tracking/NOPE", headers=AUTH).status_code == 404


class TestPaymentEndpoints:
    def test_dry_run_by_default(self, client, db_session, gateway):
        user = make_user(db_session, balance="0")
        make_transaction(db_session, user, "t1", "500", gateway_order_ref="G1")
        gateway.responses["G1"] = {"status": "CHARGED"}

        body = client.post("/api/reconciliation/payments/reconcile", json={}, headers=AUTH).json()

        assert body["dry_run"] is True
        assert body["credited"] == 1
        assert body["total_credited"] == "500.00"
        db_session.expire_all()
        assert db_session.query(User).one().wallet_balance == Decimal("0")

    def test_execute(self, client, db_session, gateway):
        user = make_user(db_session, balance="0")
        make_transaction(db_session, user, "t1", "500", gateway_order_ref="G1")
        gateway.responses["G1"] = {"status": "CHARGED"}

        body = client.post(
            "/api/reconciliation/payments/reconcile",
            json={"execute": True, "transaction_ids": ["t1"]},
            headers=AUTH,
        ).json()

        assert body["dry_run"] is False
        assert body["items"][0]["outcome"] == "credited"
        assert body["items"][0]["closing_balance"] == "500.00"
        db_session.expire_all()
        assert db_session.query(User).one().wallet_balance == Decimal("500.00")


class TestRunsAndWorkers:
    def test_runs_are_listed(self, client, db_session, gateway):
        client.post("/api/reconciliation/payments/reconcile", json={}, headers=AUTH)
        client.post("/api/reconciliation/tracking/sync", json={}, headers=AUTH)

        runs = client.get("/api/reconciliation/runs?limit=5", headers=AUTH).json()

        assert len(runs) == 2
        assert {r["jobType"] for r in runs} == {"payment_reconcile", "tracking_sync"}
        assert all(r["status"] == "success" for r in runs)

    def test_workers_status(self, client):
        body = client.get("/api/reconciliation/workers", headers=AUTH).json()
        assert set(body) == {"tracking_sync", "payment_reconcile"}
        assert body["tracking_sync"]["last_run"] is None
