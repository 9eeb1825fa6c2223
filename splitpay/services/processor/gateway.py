"""Processor Gateway client.

Turns a charge, void or refund intent into a form-encoded POST against
the processor's transaction endpoint and normalises the reply into a
``ProcessorResult``.  The client is stateless apart from its HTTP
connection pool and fails closed: transport errors and timeouts come
back as unsuccessful results, never as exceptions.

Processor reply codes:
  1 = approved, 2 = declined, 3 = error
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import parse_qsl

import httpx

from splitpay.core.config import Settings
from splitpay.core.logging import get_logger, redact_fields
from splitpay.services.processor.card import CardData
from splitpay.services.storefront import OrderContext

logger = get_logger(__name__)

OUTCOME_APPROVED = "approved"
OUTCOME_DECLINED = "declined"
OUTCOME_ERROR = "error"

_RESPONSE_OUTCOMES = {
    "1": OUTCOME_APPROVED,
    "2": OUTCOME_DECLINED,
    "3": OUTCOME_ERROR,
}

# Substring of the processor's response text -> customer-safe message
DECLINE_MESSAGES = {
    "DECLINED": "Payment was declined. Please check your card details.",
    "INVALID CARD NUMBER": "Invalid card number. Please check and try again.",
    "INVALID EXPIRATION DATE": "Invalid expiration date. Please check and try again.",
    "INSUFFICIENT FUNDS": "Insufficient funds. Please use a different card.",
    "EXPIRED CARD": "Card has expired. Please use a different card.",
    "INVALID CVV": "Invalid security code. Please check and try again.",
}

GENERIC_FAILURE_MESSAGE = "Payment failed. Please try again or contact support."
TRANSPORT_ERROR_MESSAGE = "Payment processing error. Please try again."
UNAVAILABLE_MESSAGE = "Payment service unavailable. Please try again."

TEST_CARD_NUMBER = "4111111111111111"
TEST_CARD_CVV = "123"
TEST_AMOUNT = Decimal("1.00")


@dataclass
class ProcessorResult:
    """Normalised reply from the processor."""

    success: bool
    outcome: str
    message: str
    transaction_id: str = ""
    auth_code: str = ""
    response_code: str = ""
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def declined(self) -> bool:
        return self.outcome == OUTCOME_DECLINED


def translate_message(result: dict[str, Any]) -> str:
    """Map a decline's response text onto a stable customer message.

    Unrecognised decline text passes through unchanged.  Error replies
    never reach this function.
    """
    text = result.get("responsetext")
    if not text:
        return GENERIC_FAILURE_MESSAGE
    upper = text.upper()
    for key, message in DECLINE_MESSAGES.items():
        if key in upper:
            return message
    return text


def format_amount(amount: Decimal) -> str:
    return f"{Decimal(amount).quantize(Decimal('0.01'))}"


class ProcessorGateway:
    """HTTP adapter for the payment processor's transaction API."""

    def __init__(
        self,
        config: Settings,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self.api_url = config.processor_api_url
        self.client = client or httpx.Client(
            headers={"User-Agent": f"splitpay/1.0; {config.site_name}"},
        )

    # ── Public API ───────────────────────────────────────────────────

    def charge(
        self,
        credentials,
        order: OrderContext,
        card: CardData,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> ProcessorResult:
        """Capture ``amount`` on the merchant's account."""
        billing = order.billing
        data = {
            **self._auth_fields(
                credentials.processor_username,
                credentials.processor_password,
                credentials.processor_api_key,
            ),
            "type": "sale",
            "amount": format_amount(amount),
            "ccnumber": card.digits,
            "ccexp": card.expiry_mmyy,
            "cvv": card.cvc,
            "orderid": str(order.order_id),
            "orderdescription": description
            or f"Order #{order.order_id} - {self.config.site_name}",
            "firstname": billing.get("first_name", ""),
            "lastname": billing.get("last_name", ""),
            "address1": billing.get("address_1", ""),
            "address2": billing.get("address_2", ""),
            "city": billing.get("city", ""),
            "state": billing.get("state", ""),
            "zip": billing.get("postcode", ""),
            "country": billing.get("country", ""),
            "phone": billing.get("phone", ""),
            "email": billing.get("email", ""),
            "ipaddress": order.customer_ip or "",
        }
        result = self._post(data, self.config.processor_charge_timeout_seconds)
        if result.success:
            result.message = "Payment successful"
        logger.info(
            "Charge order=%s amount=%s outcome=%s transaction=%s",
            order.order_id,
            data["amount"],
            result.outcome,
            result.transaction_id or "-",
        )
        return result

    def void(self, credentials, transaction_id: str) -> ProcessorResult:
        data = {
            **self._auth_fields(
                credentials.processor_username,
                credentials.processor_password,
                credentials.processor_api_key,
            ),
            "type": "void",
            "transactionid": transaction_id,
        }
        result = self._post(data, self.config.processor_charge_timeout_seconds)
        if result.success:
            result.message = "Transaction voided successfully"
        logger.info("Void transaction=%s outcome=%s", transaction_id, result.outcome)
        return result

    def refund(
        self,
        credentials,
        transaction_id: str,
        amount: Decimal,
        reason: str = "",
    ) -> ProcessorResult:
        data = {
            **self._auth_fields(
                credentials.processor_username,
                credentials.processor_password,
                credentials.processor_api_key,
            ),
            "type": "refund",
            "transactionid": transaction_id,
            "amount": format_amount(amount),
            "orderdescription": f"Refund: {reason}",
        }
        result = self._post(data, self.config.processor_charge_timeout_seconds)
        if result.success:
            result.message = "Refund processed successfully"
        logger.info(
            "Refund transaction=%s amount=%s outcome=%s",
            transaction_id,
            data["amount"],
            result.outcome,
        )
        return result

    def test_credentials(
        self, username: str, password: str, api_key: Optional[str] = None
    ) -> bool:
        """Run a $1.00 authorization with the well-known test card.

        Approved and declined both prove the credentials authenticate;
        only an error reply (or no reply) means they are invalid.
        """
        next_year = (date.today().year + 1) % 100
        data = {
            **self._auth_fields(username, password, api_key),
            "type": "auth",
            "ccnumber": TEST_CARD_NUMBER,
            "ccexp": f"12{next_year:02d}",
            "cvv": TEST_CARD_CVV,
            "amount": format_amount(TEST_AMOUNT),
            "firstname": "Test",
            "lastname": "User",
            "address1": "123 Test St",
            "city": "Test City",
            "state": "TS",
            "zip": "12345",
            "country": "US",
            "email": "test@example.com",
        }
        result = self._post(data, self.config.processor_test_timeout_seconds)
        return result.outcome in (OUTCOME_APPROVED, OUTCOME_DECLINED)

    def close(self) -> None:
        self.client.close()

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _auth_fields(
        username: str, password: str, api_key: Optional[str]
    ) -> dict[str, str]:
        fields = {"username": username or "", "password": password or ""}
        if api_key:
            fields["security_key"] = api_key
        return fields

    def _post(self, data: dict[str, str], timeout: float) -> ProcessorResult:
        if self.config.debug:
            logger.debug("Processor request: %s", redact_fields(data))

        try:
            response = self.client.post(self.api_url, data=data, timeout=timeout)
        except httpx.HTTPError as exc:
            logger.error(
                "Processor transport error (%s): %s",
                type(exc).__name__,
                redact_fields(data),
            )
            return ProcessorResult(
                success=False, outcome=OUTCOME_ERROR, message=TRANSPORT_ERROR_MESSAGE
            )

        if response.status_code != 200:
            logger.error(
                "Processor HTTP %d for type=%s", response.status_code, data.get("type")
            )
            return ProcessorResult(
                success=False, outcome=OUTCOME_ERROR, message=UNAVAILABLE_MESSAGE
            )

        result = dict(parse_qsl(response.text, keep_blank_values=True))
        if self.config.debug:
            logger.debug("Processor response: %s", redact_fields(result))

        code = str(result.get("response", ""))
        outcome = _RESPONSE_OUTCOMES.get(code, OUTCOME_ERROR)
        if outcome == OUTCOME_APPROVED:
            return ProcessorResult(
                success=True,
                outcome=outcome,
                message="Approved",
                transaction_id=result.get("transactionid", ""),
                auth_code=result.get("authcode", ""),
                response_code=code,
                raw=result,
            )

        if outcome == OUTCOME_DECLINED:
            message = translate_message(result)
        else:
            # Processor diagnostics are for operators, not customers
            logger.error(
                "Processor error for type=%s response=%s: %s",
                data.get("type"),
                code or "<missing>",
                result.get("responsetext", ""),
            )
            message = TRANSPORT_ERROR_MESSAGE

        return ProcessorResult(
            success=False,
            outcome=outcome,
            message=message,
            transaction_id=result.get("transactionid", ""),
            response_code=code,
            raw=result,
        )
