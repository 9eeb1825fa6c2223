"""API integration tests for cart validation, settlement and refunds."""

from __future__ import annotations

from decimal import Decimal

from splitpay.models.merchant_ledger import MerchantOrder
from splitpay.models.sale import Sale
from splitpay.models.storefront import Order


def _card_fields(card) -> dict:
    return {
        "card_number": card.number,
        "card_expiry": card.expiry,
        "card_cvc": card.cvc,
    }


def _seed_two_merchants(seed):
    seed.merchant(7, 3)
    seed.merchant(8, 4)
    seed.ownership(101, 7, 3)
    seed.ownership(102, 8, 4)


# ── POST /validate ───────────────────────────────────────────────────


def test_validate_cart_ok(client, seed):
    _seed_two_merchants(seed)
    response = client.post(
        "/api/v1/checkout/validate",
        json={"items": [{"product_id": 101, "name": "Mug"}, {"product_id": 102, "name": "Poster"}]},
    )
    assert response.status_code == 200
    assert response.json() == {"valid": True, "invalid_items": [], "message": ""}


def test_validate_cart_lists_unresolvable_items(client, seed):
    _seed_two_merchants(seed)
    response = client.post(
        "/api/v1/checkout/validate",
        json={"items": [{"product_id": 101, "name": "Mug"}, {"product_id": 999, "name": "Lamp"}]},
    )
    data = response.json()
    assert data["valid"] is False
    assert data["invalid_items"] == ["Lamp"]
    assert "missing merchant configuration" in data["message"]


def test_validate_cart_requires_items(client):
    response = client.post("/api/v1/checkout/validate", json={"items": []})
    assert response.status_code == 422


# ── POST /orders/{id}/settle ─────────────────────────────────────────


def test_settle_success_syncs_in_background(client, db_session, seed, card, notifier):
    _seed_two_merchants(seed)
    order = seed.order([(101, "Mug", "30.00"), (102, "Poster", "70.00")])

    response = client.post(
        f"/api/v1/checkout/orders/{order.id}/settle", json=_card_fields(card)
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["result"] == "success"
    assert data["transaction_ids"] == ["T1", "T2"]
    assert Decimal(data["total_charged"]) == Decimal("100.00")
    assert data["redirect_url"] == f"/checkout/order-received/{order.id}"

    # TestClient runs background tasks before returning
    db_session.expire_all()
    assert all(s.synced for s in db_session.query(Sale).all())
    assert db_session.query(MerchantOrder).count() == 2
    assert len(notifier.confirmations) == 2


def test_settle_decline_returns_fail_result(client, db_session, seed, card, gateway):
    _seed_two_merchants(seed)
    gateway.decline_users.add("merchant8")
    order = seed.order([(101, "Mug", "30.00"), (102, "Poster", "70.00")])

    response = client.post(
        f"/api/v1/checkout/orders/{order.id}/settle", json=_card_fields(card)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["result"] == "fail"
    assert data["message"] == "Insufficient funds. Please use a different card."
    assert data["transaction_ids"] == []
    assert gateway.voids == ["T1"]
    assert db_session.query(Sale).count() == 0


def test_settle_updates_billing_first(client, db_session, seed, card):
    _seed_two_merchants(seed)
    order = seed.order([(101, "Mug", "30.00")])
    fields = _card_fields(card)
    fields["billing"] = {"first_name": "Grace", "last_name": "Hopper", "email": "grace@example.com"}

    response = client.post(f"/api/v1/checkout/orders/{order.id}/settle", json=fields)

    assert response.json()["result"] == "success"
    db_session.expire_all()
    assert db_session.get(Order, order.id).billing["first_name"] == "Grace"


def test_settle_unknown_order_with_billing_is_404(client, card):
    fields = _card_fields(card)
    fields["billing"] = {"first_name": "Grace"}
    response = client.post("/api/v1/checkout/orders/4242/settle", json=fields)
    assert response.status_code == 404


def test_settle_response_never_echoes_card(client, seed, card):
    _seed_two_merchants(seed)
    order = seed.order([(101, "Mug", "30.00")])
    response = client.post(
        f"/api/v1/checkout/orders/{order.id}/settle", json=_card_fields(card)
    )
    assert "4111" not in response.text


# ── POST /orders/{id}/refund ─────────────────────────────────────────


def test_refund_partial(client, db_session, seed, card, container, gateway):
    _seed_two_merchants(seed)
    order = seed.order([(101, "Mug", "30.00"), (102, "Poster", "70.00")])
    assert container.orchestrator(db_session).settle(order.id, card).success

    response = client.post(
        f"/api/v1/checkout/orders/{order.id}/refund",
        json={"amount": "50.00", "reason": "damaged"},
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["success"] is True
    assert Decimal(data["refunded_total"]) == Decimal("50.00")
    assert gateway.refunds == [("T1", Decimal("15.00")), ("T2", Decimal("35.00"))]


def test_refund_without_sales_is_400(client, seed):
    order = seed.order([(101, "Mug", "30.00")])
    response = client.post(f"/api/v1/checkout/orders/{order.id}/refund", json={})
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "No payment records found for this order."
    assert detail["refunded_total"] == "0.00"


def test_refund_rejects_non_positive_amount(client):
    response = client.post("/api/v1/checkout/orders/1/refund", json={"amount": "0"})
    assert response.status_code == 422
