"""API integration tests for the authenticated webhook endpoints."""

from __future__ import annotations

from decimal import Decimal

import pytest

from splitpay.models.sale import SALE_REFUNDED, Sale

TEST_WEBHOOK_KEY = "test-webhook-key"

AUTH = {"Authorization": f"Bearer {TEST_WEBHOOK_KEY}"}


def _settled(db_session, seed, container, card):
    seed.merchant(7, 3)
    seed.merchant(8, 4)
    seed.ownership(101, 7, 3)
    seed.ownership(102, 8, 4)
    order = seed.order([(101, "Mug", "30.00"), (102, "Poster", "70.00")])
    assert container.orchestrator(db_session).settle(order.id, card).success
    return order


# ── Authentication ───────────────────────────────────────────────────


class TestAuth:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"headers": {"Authorization": "Bearer wrong"}},
            {"headers": {"Authorization": TEST_WEBHOOK_KEY}},
            {"params": {"key": "wrong"}},
        ],
    )
    def test_rejects_missing_or_wrong_key(self, client, kwargs):
        response = client.get("/webhook/status", **kwargs)
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid webhook key"

    def test_accepts_bearer(self, client):
        assert client.get("/webhook/status", headers=AUTH).status_code == 200

    def test_accepts_legacy_query_key(self, client):
        response = client.get("/webhook/status", params={"key": TEST_WEBHOOK_KEY})
        assert response.status_code == 200

    def test_empty_configured_key_rejects_everything(self, client, container):
        container.config.webhook_key = ""
        response = client.get("/webhook/status", headers={"Authorization": "Bearer "})
        assert response.status_code == 401


# ── JSON endpoints ───────────────────────────────────────────────────


class TestJsonWebhooks:
    def test_status_reports_network_totals(self, client, db_session, seed, container, card):
        _settled(db_session, seed, container, card)

        data = client.get("/webhook/status", headers=AUTH).json()

        assert data["success"] is True
        assert data["status"] == "active"
        assert data["stats"]["total_sales"] == "100.00"
        assert data["stats"]["active_merchants"] == 2
        assert data["stats"]["total_products"] == 2

    def test_echo(self, client):
        response = client.post("/webhook/test", json={"hello": "world"}, headers=AUTH)
        data = response.json()
        assert data["received_data"] == {"hello": "world"}
        assert data["message"] == "Webhook test successful"

    def test_sale_replay_is_idempotent(self, client, db_session, seed, container, card, notifier):
        order = _settled(db_session, seed, container, card)
        body = {
            "order_id": order.id,
            "transaction_id": "T1",
            "amount": "30.00",
            "merchant_user_id": 7,
        }

        first = client.post("/webhook/sale", json=body, headers=AUTH).json()
        second = client.post("/webhook/sale", json=body, headers=AUTH).json()

        assert first["action"] == "synced"
        assert second["action"] == "already_synced"
        assert db_session.query(Sale).filter_by(merchant_user_id=7).count() == 1
        assert len(notifier.sales) == 1

    def test_sale_validation_error(self, client):
        response = client.post("/webhook/sale", json={"order_id": 1}, headers=AUTH)
        assert response.status_code == 422

    def test_refund(self, client, db_session, seed, container, card, notifier):
        order = _settled(db_session, seed, container, card)

        response = client.post(
            "/webhook/refund",
            json={"order_id": order.id, "refund_amount": "50.00", "refund_reason": "late"},
            headers=AUTH,
        )

        assert response.json()["action"] == "refunded"
        db_session.expire_all()
        amounts = sorted(s.amount for s in db_session.query(Sale).all())
        assert amounts == [Decimal("15.00"), Decimal("35.00")]
        assert all(s.status == SALE_REFUNDED for s in db_session.query(Sale).all())
        assert len(notifier.refunds) == 2


# ── Legacy form endpoint ─────────────────────────────────────────────


class TestLegacyWebhook:
    def _post(self, client, kind, data=None):
        return client.post(
            "/webhook/legacy",
            params={"mmpo_webhook": kind, "key": TEST_WEBHOOK_KEY},
            data=data or {},
        )

    def test_form_sale(self, client, db_session, seed, container, card):
        order = _settled(db_session, seed, container, card)

        response = self._post(
            client,
            "sale",
            {
                "order_id": str(order.id),
                "transaction_id": "T2",
                "amount": "70.00",
                "merchant_user_id": "8",
                "product_id": "",
            },
        )

        assert response.status_code == 200, response.text
        assert response.json()["action"] == "synced"

    def test_missing_fields(self, client):
        response = self._post(client, "refund", {"order_id": "5"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or missing fields: refund_amount"

    def test_status(self, client):
        response = self._post(client, "status")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_unknown_type(self, client):
        response = self._post(client, "bogus")
        assert response.status_code == 400
