"""Tests for the processor gateway client.

No network: every test wires ``httpx.MockTransport`` into the client and
inspects the form fields the gateway sent.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from urllib.parse import parse_qsl

import httpx
import pytest

from splitpay.core.config import Settings
from splitpay.core.logging import redact_fields
from splitpay.services.processor import gateway as gateway_module
from splitpay.services.processor.card import CardData
from splitpay.services.processor.gateway import (
    GENERIC_FAILURE_MESSAGE,
    OUTCOME_APPROVED,
    OUTCOME_DECLINED,
    OUTCOME_ERROR,
    TRANSPORT_ERROR_MESSAGE,
    UNAVAILABLE_MESSAGE,
    ProcessorGateway,
    translate_message,
)
from splitpay.services.storefront import OrderContext


# ── Helpers ──────────────────────────────────────────────────────────


def _config(**overrides) -> Settings:
    defaults = {
        "database_url": "sqlite://",
        "test_database_url": "sqlite://",
        "site_name": "Test Network",
        "processor_api_url": "https://processor.test/api/transact.php",
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _gateway(handler, sent: list | None = None, **config) -> ProcessorGateway:
    def _capture(request: httpx.Request) -> httpx.Response:
        if sent is not None:
            sent.append(dict(parse_qsl(request.content.decode())))
        return handler(request)

    client = httpx.Client(transport=httpx.MockTransport(_capture))
    return ProcessorGateway(_config(**config), client=client)


def _reply(body: str, status: int = 200):
    return lambda request: httpx.Response(status, text=body)


def _credentials(api_key=None):
    return SimpleNamespace(
        processor_username="merchant7",
        processor_password="hunter2",
        processor_api_key=api_key,
    )


def _order() -> OrderContext:
    return OrderContext(
        order_id=1001,
        site_id=1,
        total=Decimal("42.00"),
        billing={"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
        customer_ip="203.0.113.7",
    )


CARD = CardData(number="4111 1111 1111 1111", expiry="12/29", cvc="123")


# ── charge ───────────────────────────────────────────────────────────


class TestCharge:
    def test_approved(self):
        sent = []
        gateway = _gateway(
            _reply("response=1&responsetext=SUCCESS&authcode=123456&transactionid=T100"),
            sent,
        )
        result = gateway.charge(_credentials(), _order(), CARD, Decimal("42"))

        assert result.success
        assert result.outcome == OUTCOME_APPROVED
        assert result.transaction_id == "T100"
        assert result.auth_code == "123456"

        fields = sent[0]
        assert fields["type"] == "sale"
        assert fields["amount"] == "42.00"
        assert fields["ccnumber"] == "4111111111111111"
        assert fields["ccexp"] == "1229"
        assert fields["orderid"] == "1001"
        assert fields["firstname"] == "Ada"
        assert "security_key" not in fields

    def test_api_key_sent_as_security_key(self):
        sent = []
        gateway = _gateway(_reply("response=1&transactionid=T1"), sent)
        gateway.charge(_credentials(api_key="sk_live"), _order(), CARD, Decimal("1"))
        assert sent[0]["security_key"] == "sk_live"

    def test_decline_maps_to_friendly_message(self):
        gateway = _gateway(_reply("response=2&responsetext=Insufficient+Funds"))
        result = gateway.charge(_credentials(), _order(), CARD, Decimal("42"))

        assert not result.success
        assert result.outcome == OUTCOME_DECLINED
        assert result.declined
        assert result.message == "Insufficient funds. Please use a different card."

    def test_error_code_hides_processor_text(self, caplog):
        gateway = _gateway(_reply("response=3&responsetext=Authentication+Failed"))
        gateway_module.logger.addHandler(caplog.handler)
        try:
            result = gateway.charge(_credentials(), _order(), CARD, Decimal("42"))
        finally:
            gateway_module.logger.removeHandler(caplog.handler)

        assert result.outcome == OUTCOME_ERROR
        assert not result.declined
        assert result.message == TRANSPORT_ERROR_MESSAGE
        assert "Authentication Failed" in caplog.text

    def test_unknown_response_code_is_an_error(self):
        gateway = _gateway(_reply("response=7&responsetext=Something+odd"))
        result = gateway.charge(_credentials(), _order(), CARD, Decimal("42"))

        assert result.outcome == OUTCOME_ERROR
        assert result.message == TRANSPORT_ERROR_MESSAGE

    def test_unknown_decline_text_passes_through(self):
        gateway = _gateway(_reply("response=2&responsetext=Do+Not+Honor"))
        result = gateway.charge(_credentials(), _order(), CARD, Decimal("42"))

        assert result.declined
        assert result.message == "Do Not Honor"

    def test_transport_error_fails_closed(self):
        def _boom(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        gateway = _gateway(_boom)
        result = gateway.charge(_credentials(), _order(), CARD, Decimal("42"))

        assert not result.success
        assert result.outcome == OUTCOME_ERROR
        assert result.message == TRANSPORT_ERROR_MESSAGE

    def test_non_200_is_unavailable(self):
        gateway = _gateway(_reply("oops", status=503))
        result = gateway.charge(_credentials(), _order(), CARD, Decimal("42"))

        assert not result.success
        assert result.message == UNAVAILABLE_MESSAGE


# ── void / refund ────────────────────────────────────────────────────


class TestVoidAndRefund:
    def test_void_sends_transaction_id(self):
        sent = []
        gateway = _gateway(_reply("response=1&transactionid=T100"), sent)
        result = gateway.void(_credentials(), "T100")

        assert result.success
        assert sent[0]["type"] == "void"
        assert sent[0]["transactionid"] == "T100"
        assert "amount" not in sent[0]

    def test_refund_formats_amount_and_reason(self):
        sent = []
        gateway = _gateway(_reply("response=1&transactionid=R1"), sent)
        result = gateway.refund(_credentials(), "T100", Decimal("15"), "damaged")

        assert result.success
        assert result.transaction_id == "R1"
        assert sent[0]["type"] == "refund"
        assert sent[0]["amount"] == "15.00"
        assert sent[0]["orderdescription"] == "Refund: damaged"

    def test_refund_failure_message(self):
        gateway = _gateway(_reply("response=3"))
        result = gateway.refund(_credentials(), "T100", Decimal("15"))
        assert not result.success
        assert result.message == TRANSPORT_ERROR_MESSAGE


# ── test_credentials ─────────────────────────────────────────────────


class TestCredentialCheck:
    @pytest.mark.parametrize("code,expected", [("1", True), ("2", True), ("3", False)])
    def test_approved_and_declined_both_count_as_valid(self, code, expected):
        sent = []
        gateway = _gateway(_reply(f"response={code}"), sent)
        assert gateway.test_credentials("user", "pass") is expected

        fields = sent[0]
        assert fields["type"] == "auth"
        assert fields["amount"] == "1.00"
        assert fields["ccnumber"] == "4111111111111111"

    def test_transport_error_means_invalid(self):
        def _boom(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = _gateway(_boom)
        assert gateway.test_credentials("user", "pass") is False


# ── Message translation and redaction ────────────────────────────────


class TestMessagesAndRedaction:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("DECLINED", "Payment was declined. Please check your card details."),
            ("Expired Card", "Card has expired. Please use a different card."),
            ("Invalid CVV", "Invalid security code. Please check and try again."),
            (
                "Invalid Card Number REFID:1",
                "Invalid card number. Please check and try again.",
            ),
        ],
    )
    def test_known_reasons(self, text, expected):
        assert translate_message({"responsetext": text}) == expected

    def test_missing_text_is_generic(self):
        assert translate_message({}) == GENERIC_FAILURE_MESSAGE

    def test_redact_drops_card_and_masks_key(self):
        clean = redact_fields(
            {
                "username": "merchant7",
                "password": "hunter2",
                "ccnumber": "4111111111111111",
                "cvv": "123",
                "security_key": "sk_live",
                "amount": "42.00",
            }
        )
        assert clean == {
            "username": "merchant7",
            "security_key": "***",
            "amount": "42.00",
        }
