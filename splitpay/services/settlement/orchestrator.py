"""Settlement Orchestrator: split one checkout across several merchants.

Each order line is charged, in placement order, against the processor
account of the merchant that owns it.  The customer sees one outcome:
either every line settles, or every line already captured is voided and
its sale row retracted before the failure is reported.

Flow for ``settle``:
  1. Validate card fields (no network call yet).
  2. Re-resolve ownership; abort if any line is unresolvable.
  3. Charge line by line.  Lines for the same product are merged into
     one charge with their amounts summed, so a product yields one sale.
     Each capture is written as a pending sale in its own short
     transaction, so no DB transaction spans a processor call.
  4. All captured: promote this attempt's pending rows to completed in a
     single transaction, then run the storefront finalize hooks.
  5. Return the ``SettlementCompleted`` event for reconciliation.  The
     event only exists after step 4 committed.

Refunds are the deliberate exception to all-or-nothing: a refund that
fails part way stops there, and refunds already issued stay issued.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from splitpay.core.config import Settings
from splitpay.core.exceptions import (
    ConfigurationError,
    PartialSettlementFailure,
    ProcessorDecline,
    ProcessorError,
    SplitPayError,
    ValidationError,
)
from splitpay.core.logging import get_logger
from splitpay.models.credential import MerchantCredential
from splitpay.models.sale import SALE_PENDING, SALE_REFUNDED
from splitpay.services.ledger.store import LedgerStore
from splitpay.services.processor.card import CardData, validate_card
from splitpay.services.processor.gateway import ProcessorGateway, TRANSPORT_ERROR_MESSAGE
from splitpay.services.settlement.allocation import (
    allocate_refund,
    commission_for,
    to_money,
)
from splitpay.services.settlement.resolver import OwnershipResolver
from splitpay.services.storefront import OrderContext, OrderLineContext, Storefront

logger = get_logger(__name__)

NO_PAYMENT_RECORD_MESSAGE = "No payment records found for this order."


class SettlementState(str, enum.Enum):
    NOT_STARTED = "not_started"
    CHARGING = "charging"
    ALL_CHARGED = "all_charged"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ChargeGroup:
    """Order lines for one product, charged and recorded together."""

    product_id: int
    names: list[str]
    amount: Decimal


def group_lines(lines: list[OrderLineContext]) -> list[ChargeGroup]:
    """Merge lines by product, keeping first-placement order."""
    groups: dict[int, ChargeGroup] = {}
    for line in sorted(lines, key=lambda line: line.position):
        group = groups.get(line.product_id)
        if group is None:
            groups[line.product_id] = ChargeGroup(
                product_id=line.product_id, names=[line.name], amount=line.amount
            )
            continue
        group.amount += line.amount
        if line.name not in group.names:
            group.names.append(line.name)
    return list(groups.values())


@dataclass
class ChargedLine:
    product_id: int
    credentials: MerchantCredential
    amount: Decimal
    transaction_id: str
    sale_id: Optional[uuid.UUID] = None


@dataclass
class SettlementAttempt:
    """What has been captured so far for one order, in charge order.

    Lives only for the duration of one ``settle`` call and drives the
    compensating voids if a later line fails.
    """

    order_id: int
    state: SettlementState = SettlementState.NOT_STARTED
    charging_index: int = -1
    charged: list[ChargedLine] = field(default_factory=list)

    @property
    def sale_ids(self) -> list[uuid.UUID]:
        return [c.sale_id for c in self.charged if c.sale_id is not None]

    @property
    def transaction_ids(self) -> list[str]:
        return [c.transaction_id for c in self.charged]


@dataclass(frozen=True)
class SettlementCompleted:
    """Emitted once every sale row for the order is durably completed."""

    order_id: int
    transaction_ids: list[str]
    sale_ids: list[uuid.UUID]
    total_charged: Decimal


@dataclass
class SettlementResult:
    success: bool
    message: str = ""
    transaction_ids: list[str] = field(default_factory=list)
    total_charged: Decimal = Decimal("0.00")
    error_kind: Optional[str] = None
    invalid_items: list[str] = field(default_factory=list)
    redirect_url: Optional[str] = None
    event: Optional[SettlementCompleted] = None


@dataclass
class RefundResult:
    success: bool
    message: str = ""
    refunded_total: Decimal = Decimal("0.00")
    refunded_sale_ids: list[uuid.UUID] = field(default_factory=list)


class SettlementOrchestrator:
    """Charges, compensates and refunds multi-merchant orders."""

    def __init__(
        self,
        store: LedgerStore,
        resolver: OwnershipResolver,
        gateway: ProcessorGateway,
        storefront: Storefront,
        config: Settings,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.gateway = gateway
        self.storefront = storefront
        self.config = config

    # ── Public API ───────────────────────────────────────────────────

    def settle(self, order_id: int, card: CardData) -> SettlementResult:
        """Charge every line of ``order_id`` or none of them."""
        attempt = SettlementAttempt(order_id=order_id)
        try:
            return self._settle(attempt, card)
        except SplitPayError as exc:
            return self._fail(attempt, exc)
        except Exception:
            logger.exception("Unexpected error while settling order %s", order_id)
            return self._fail(attempt, ProcessorError(TRANSPORT_ERROR_MESSAGE))

    def refund(
        self,
        order_id: int,
        amount: Optional[Decimal] = None,
        reason: str = "",
    ) -> RefundResult:
        """Refund an order's completed sales, proportionally when partial.

        Stops at the first failing sale.  Sales refunded before it are
        not reversed.
        """
        try:
            return self._refund(order_id, amount, reason)
        except Exception:
            logger.exception("Unexpected error while refunding order %s", order_id)
            self.store.db.rollback()
            return RefundResult(success=False, message=TRANSPORT_ERROR_MESSAGE)

    # ── Private helpers: settlement ──────────────────────────────────

    def _settle(self, attempt: SettlementAttempt, card: CardData) -> SettlementResult:
        validate_card(card)

        site_id = self.config.listing_site_id
        order = self.storefront.get_order_context(attempt.order_id, site_id)
        if order is None:
            raise ValidationError("Order not found.")
        if order.is_paid:
            raise ValidationError("This order has already been paid.")
        if not order.lines:
            raise ValidationError("This order has no items to pay for.")

        resolution = self.resolver.resolve(order.lines, site_id)
        if not resolution.valid:
            raise ConfigurationError(resolution.message, resolution.invalid_items)

        attempt.state = SettlementState.CHARGING
        for index, group in enumerate(group_lines(order.lines)):
            attempt.charging_index = index
            merchant = resolution.per_item[group.product_id]
            result = self.gateway.charge(
                merchant.credentials,
                order,
                card,
                group.amount,
                description=f"Order #{order.order_id} - {', '.join(group.names)}",
            )
            if not result.success:
                if result.declined:
                    raise ProcessorDecline(result.message)
                raise ProcessorError(result.message)

            charged = ChargedLine(
                product_id=group.product_id,
                credentials=merchant.credentials,
                amount=group.amount,
                transaction_id=result.transaction_id,
            )
            attempt.charged.append(charged)

            try:
                sale = self.store.record_sale(
                    order_id=order.order_id,
                    product_id=group.product_id,
                    merchant_user_id=merchant.ownership.owner_user_id,
                    merchant_site_id=merchant.ownership.owner_site_id,
                    listing_site_id=site_id,
                    amount=to_money(group.amount),
                    commission=commission_for(
                        group.amount, merchant.ownership.commission_rate
                    ),
                    transaction_id=result.transaction_id,
                    status=SALE_PENDING,
                )
            except SQLAlchemyError:
                logger.exception(
                    "Could not record sale for order %s product %s",
                    order.order_id,
                    group.product_id,
                )
                raise ProcessorError(TRANSPORT_ERROR_MESSAGE)
            charged.sale_id = sale.id

        attempt.state = SettlementState.ALL_CHARGED
        try:
            self.store.promote_pending(attempt.sale_ids)
        except SQLAlchemyError:
            logger.exception("Could not complete sales for order %s", order.order_id)
            raise ProcessorError(TRANSPORT_ERROR_MESSAGE)

        total = sum((c.amount for c in attempt.charged), Decimal("0.00"))
        attempt.state = SettlementState.FINALIZING
        self._finalize(order, attempt, total)
        attempt.state = SettlementState.DONE

        logger.info(
            "Order %s settled across %d charges, total=%s",
            order.order_id,
            len(attempt.charged),
            total,
        )
        return SettlementResult(
            success=True,
            message="Payment successful",
            transaction_ids=attempt.transaction_ids,
            total_charged=total,
            redirect_url=self.config.order_received_path.format(
                order_id=order.order_id
            ),
            event=SettlementCompleted(
                order_id=order.order_id,
                transaction_ids=attempt.transaction_ids,
                sale_ids=attempt.sale_ids,
                total_charged=total,
            ),
        )

    def _finalize(
        self, order: OrderContext, attempt: SettlementAttempt, total: Decimal
    ) -> None:
        """Storefront hooks.  Money has moved, so failures here only log."""
        try:
            self.storefront.mark_paid(order.order_id, attempt.transaction_ids)
            self.storefront.add_note(
                order.order_id,
                "Multi-merchant payment completed. Transaction IDs: "
                f"{', '.join(attempt.transaction_ids)}. Total: {total}",
            )
            self.storefront.reduce_stock(order.order_id)
            self.storefront.clear_cart(order.cart_token)
        except Exception:
            logger.exception("Finalize hooks failed for settled order %s", order.order_id)
            self.store.db.rollback()

    def _fail(self, attempt: SettlementAttempt, error: SplitPayError) -> SettlementResult:
        """Void captured charges, retract pending rows, report ``error``."""
        attempt.state = SettlementState.FAILED
        self.store.db.rollback()

        if attempt.charged:
            voided, void_failures = self._compensate(attempt)
            failure = PartialSettlementFailure(error.message, voided, void_failures)
            logger.warning(
                "Order %s failed at line %d after %d captures (%s); voided=%s failed_voids=%s",
                attempt.order_id,
                attempt.charging_index + 1,
                len(attempt.charged),
                error.kind,
                voided,
                void_failures,
            )
            error_kind = failure.kind
        else:
            logger.info("Order %s not settled (%s): %s", attempt.order_id, error.kind, error.message)
            error_kind = error.kind

        if attempt.charging_index >= 0:
            try:
                self.storefront.add_note(
                    attempt.order_id, f"Payment failed: {error.message}"
                )
            except Exception:
                logger.exception(
                    "Could not add failure note to order %s", attempt.order_id
                )
                self.store.db.rollback()

        return SettlementResult(
            success=False,
            message=error.message,
            error_kind=error_kind,
            invalid_items=getattr(error, "invalid_items", []),
        )

    def _compensate(self, attempt: SettlementAttempt) -> tuple[list[str], list[str]]:
        voided: list[str] = []
        void_failures: list[str] = []
        for charged in attempt.charged:
            try:
                result = self.gateway.void(charged.credentials, charged.transaction_id)
            except Exception:
                logger.exception("Void raised for transaction %s", charged.transaction_id)
                void_failures.append(charged.transaction_id)
                continue
            if result.success:
                voided.append(charged.transaction_id)
            else:
                logger.error(
                    "Void failed for transaction %s: %s",
                    charged.transaction_id,
                    result.message,
                )
                void_failures.append(charged.transaction_id)

        try:
            self.store.retract_pending(attempt.sale_ids)
        except SQLAlchemyError:
            logger.exception(
                "Could not retract pending sales %s for order %s",
                attempt.sale_ids,
                attempt.order_id,
            )
            self.store.db.rollback()
        return voided, void_failures

    # ── Private helpers: refunds ─────────────────────────────────────

    def _refund(
        self, order_id: int, amount: Optional[Decimal], reason: str
    ) -> RefundResult:
        sales = self.store.completed_sales_for_order(order_id)
        if not sales:
            return RefundResult(success=False, message=NO_PAYMENT_RECORD_MESSAGE)

        paid_total = sum((s.amount for s in sales), Decimal("0.00"))
        if amount is None:
            parts = [s.amount for s in sales]
        else:
            amount = to_money(amount)
            if amount <= 0:
                return RefundResult(
                    success=False, message="Refund amount must be greater than zero."
                )
            if amount > paid_total:
                return RefundResult(
                    success=False, message="Refund amount exceeds the amount paid."
                )
            parts = allocate_refund(amount, [s.amount for s in sales])

        result = RefundResult(success=True)
        for sale, part in zip(sales, parts):
            if part <= 0:
                continue
            cred = self.store.get_credentials(sale.merchant_user_id, sale.merchant_site_id)
            if cred is None or not cred.is_usable:
                result.success = False
                result.message = (
                    "Merchant credentials are no longer available for this refund."
                )
                logger.error(
                    "Refund for order %s stopped: no credentials for merchant %s/%s",
                    order_id,
                    sale.merchant_user_id,
                    sale.merchant_site_id,
                )
                return result

            reply = self.gateway.refund(cred, sale.transaction_id or "", part, reason)
            if not reply.success:
                result.success = False
                result.message = reply.message
                logger.warning(
                    "Refund for order %s stopped after %s refunded: %s",
                    order_id,
                    result.refunded_total,
                    reply.message,
                )
                return result

            self.store.transition_sale(sale, SALE_REFUNDED)
            result.refunded_total += part
            result.refunded_sale_ids.append(sale.id)

        result.message = "Refund processed successfully"
        self._note_refund(order_id, result.refunded_total, reason)
        logger.info("Order %s refunded %s", order_id, result.refunded_total)
        return result

    def _note_refund(self, order_id: int, total: Decimal, reason: str) -> None:
        try:
            note = f"Refunded {total}"
            if reason:
                note += f". Reason: {reason}"
            self.storefront.add_note(order_id, note)
        except Exception:
            logger.exception("Could not add refund note to order %s", order_id)
            self.store.db.rollback()
