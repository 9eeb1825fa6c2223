"""Reconciliation engine: replicate settled sales into merchant ledgers.

Every completed sale has to show up as an order in its owner's own site.
The engine does that replication, flips the sale's ``synced`` flag with a
single conditional update, and retries on every run until it succeeds.
It also folds sale and refund events reported by webhook into the same
sales table.

Nothing raises out of this class.  Each sale is handled on its own so
one failure never stops the rest of a run; failures are recorded on the
sale row and reported to the admin as a count.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError

from splitpay.core.config import Settings
from splitpay.core.exceptions import SplitPayError, SyncFailure
from splitpay.core.logging import get_logger
from splitpay.models.sale import (
    SALE_COMPLETED,
    SALE_REFUNDED,
    Sale,
)
from splitpay.schemas.webhook import RefundWebhookPayload, SaleWebhookPayload
from splitpay.services.ledger.store import LedgerStore
from splitpay.services.notifications import BaseNotifier
from splitpay.services.reconciliation.merchant_ledger import SqlMerchantLedger, TenantScope
from splitpay.services.settlement.allocation import (
    allocate_refund,
    commission_for,
    to_money,
)
from splitpay.services.settlement.orchestrator import SettlementCompleted
from splitpay.services.storefront import Storefront

logger = get_logger(__name__)

SYNCED = "synced"
ALREADY_SYNCED = "already_synced"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class SyncResult:
    sale_id: uuid.UUID
    status: str
    message: str = ""
    merchant_order_id: Optional[uuid.UUID] = None

    @property
    def success(self) -> bool:
        return self.status in (SYNCED, ALREADY_SYNCED)


@dataclass
class SyncSummary:
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[SyncResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    def add(self, result: SyncResult) -> None:
        self.results.append(result)
        if result.status == SYNCED:
            self.synced += 1
        elif result.status == FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "synced": self.synced,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass
class WebhookOutcome:
    action: str
    message: str
    sale_ids: list[uuid.UUID] = field(default_factory=list)


class ReconciliationEngine:
    """Replicates sales and mirrors external sale/refund events."""

    def __init__(
        self,
        store: LedgerStore,
        ledger: SqlMerchantLedger,
        storefront: Storefront,
        notifier: BaseNotifier,
        config: Settings,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.storefront = storefront
        self.notifier = notifier
        self.config = config

    # ── Public API: sync ─────────────────────────────────────────────

    def sync_one(self, sale: Sale) -> SyncResult:
        """Replicate one sale into its merchant's ledger.

        Safe to call repeatedly or concurrently for the same sale: the
        ledger record is keyed on the sale id and only the caller whose
        conditional update flips ``synced`` sends the notification.
        """
        sale_id = sale.id
        if sale.synced:
            return SyncResult(sale_id, ALREADY_SYNCED, "Sale already synced")
        if sale.status != SALE_COMPLETED:
            return SyncResult(sale_id, SKIPPED, f"Sale is {sale.status}")

        try:
            record, claimed = self._replicate(sale)
        except Exception as exc:
            message = exc.message if isinstance(exc, SplitPayError) else str(exc)
            logger.warning("Sync failed for sale %s: %s", sale_id, message)
            self.store.db.rollback()
            self._record_failure(sale_id, message)
            return SyncResult(sale_id, FAILED, message)

        if not claimed:
            return SyncResult(
                sale_id, ALREADY_SYNCED, "Sale synced by another run", record.id
            )

        logger.info(
            "Sale %s synced to merchant %s site %s as %s",
            sale_id,
            record.merchant_user_id,
            record.site_id,
            record.id,
        )
        try:
            self.notifier.notify_merchant_sale(
                record.merchant_user_id,
                record.original_order_id,
                record.total,
                record.commission,
            )
        except Exception:
            logger.exception("Merchant notification failed for sale %s", sale_id)
        return SyncResult(sale_id, SYNCED, "Sale synced", record.id)

    def sync_sale_by_id(self, sale_id: uuid.UUID) -> Optional[SyncResult]:
        sale = self.store.get_sale(sale_id)
        if sale is None:
            return None
        return self.sync_one(sale)

    def sync_all(self, limit: Optional[int] = None) -> SyncSummary:
        """Sync every unsynced completed sale, oldest first."""
        summary = SyncSummary()
        for sale in self.store.unsynced_sales(limit):
            summary.add(self.sync_one(sale))

        if summary.failed:
            try:
                self.notifier.alert_admin_sync_failures(summary.failed)
            except Exception:
                logger.exception("Admin sync-failure alert could not be sent")

        logger.info(
            "Sync run finished: synced=%d failed=%d skipped=%d",
            summary.synced,
            summary.failed,
            summary.skipped,
        )
        return summary

    def on_settlement_completed(self, event: SettlementCompleted) -> SyncSummary:
        """Immediate sync of a freshly settled order plus merchant confirmations."""
        summary = SyncSummary()
        for sale_id in event.sale_ids:
            sale = self.store.get_sale(sale_id)
            if sale is None:
                logger.warning("Settled sale %s not found for sync", sale_id)
                continue
            summary.add(self.sync_one(sale))

        self._send_payment_confirmations(event.order_id)
        return summary

    def cleanup(self, days: Optional[int] = None) -> int:
        return self.store.cleanup_old_sales(days or self.config.sale_retention_days)

    # ── Public API: webhook events ───────────────────────────────────

    def on_external_sale_event(self, payload: SaleWebhookPayload) -> WebhookOutcome:
        """Upsert a remotely reported sale keyed by (order, merchant).

        Replays find the existing row and, once it is synced, change
        nothing and notify nobody.
        """
        if payload.merchant_user_id is None:
            return WebhookOutcome("ignored", "No merchant given; nothing to record")

        sale = self.store.find_sale(payload.order_id, payload.merchant_user_id)
        action = "existing"
        if sale is None:
            if payload.merchant_site_id is None or payload.product_id is None:
                return WebhookOutcome(
                    "ignored", "Sale not found and not enough data to record it"
                )
            sale = self._record_external_sale(payload)
            action = "created"

        if sale.synced:
            return WebhookOutcome(ALREADY_SYNCED, "Sale already synced", [sale.id])
        if sale.status != SALE_COMPLETED:
            return WebhookOutcome(action, f"Sale recorded as {sale.status}", [sale.id])

        result = self.sync_one(sale)
        return WebhookOutcome(
            result.status if action == "existing" else action,
            result.message,
            [sale.id],
        )

    def on_external_refund_event(self, payload: RefundWebhookPayload) -> WebhookOutcome:
        """Mirror a refund the remote system already performed.

        The refund amount is spread over the order's sales in proportion
        to their amounts; each touched sale becomes ``refunded`` with its
        share as the new amount.  No processor call is made.
        """
        targets = [
            s
            for s in self.store.sales_for_order(payload.order_id)
            if s.status in (SALE_COMPLETED, SALE_REFUNDED)
        ]
        if not targets:
            return WebhookOutcome("ignored", "No sales found for this order")

        refund_amount = to_money(payload.refund_amount)
        if all(s.status == SALE_REFUNDED for s in targets) and sum(
            (s.amount for s in targets), Decimal("0.00")
        ) == refund_amount:
            return WebhookOutcome(
                "unchanged", "Refund already recorded", [s.id for s in targets]
            )

        parts = allocate_refund(refund_amount, [s.amount for s in targets])
        changed: list[tuple[Sale, Decimal]] = []
        for sale, part in zip(targets, parts):
            if sale.status == SALE_COMPLETED:
                self.store.transition_sale(sale, SALE_REFUNDED, amount=part)
                changed.append((sale, part))
            elif sale.amount != part:
                self.store.update_refunded_amount(sale, part)
                changed.append((sale, part))

        for sale, part in changed:
            try:
                self.notifier.notify_merchant_refund(
                    sale.merchant_user_id,
                    sale.order_id,
                    part,
                    payload.refund_reason or "",
                )
            except Exception:
                logger.exception("Refund notification failed for sale %s", sale.id)

        logger.info(
            "Webhook refund on order %s: %s across %d sales",
            payload.order_id,
            refund_amount,
            len(changed),
        )
        return WebhookOutcome("refunded", "Refund recorded", [s.id for s, _ in changed])

    # ── Private helpers ──────────────────────────────────────────────

    def _replicate(self, sale: Sale):
        origin = self.storefront.get_order_context(sale.order_id, sale.listing_site_id)
        if origin is None:
            raise SyncFailure(
                f"Original order {sale.order_id} not found on site {sale.listing_site_id}"
            )

        scope = TenantScope(
            site_id=sale.merchant_site_id, merchant_user_id=sale.merchant_user_id
        )
        line_name = self.storefront.product_name(scope.site_id, sale.product_id)
        quantity = next(
            (line.quantity for line in origin.lines if line.product_id == sale.product_id),
            1,
        )
        record, _created = self.ledger.replicate(scope, sale, origin, line_name, quantity)
        claimed = self.store.mark_sale_synced(sale.id)
        return record, claimed

    def _record_failure(self, sale_id: uuid.UUID, message: str) -> None:
        try:
            self.store.record_sync_failure(sale_id, message)
        except Exception:
            logger.exception("Could not record sync failure for sale %s", sale_id)
            self.store.db.rollback()

    def _record_external_sale(self, payload: SaleWebhookPayload) -> Sale:
        listing_site_id = self.config.listing_site_id
        ownership = self.store.get_ownership(payload.product_id, listing_site_id)
        rate = ownership.commission_rate if ownership else Decimal("0")
        try:
            return self.store.record_sale(
                order_id=payload.order_id,
                product_id=payload.product_id,
                merchant_user_id=payload.merchant_user_id,
                merchant_site_id=payload.merchant_site_id,
                listing_site_id=listing_site_id,
                amount=to_money(payload.amount),
                commission=commission_for(payload.amount, rate),
                transaction_id=payload.transaction_id,
                status=payload.status,
            )
        except IntegrityError:
            existing = self.store.find_sale(payload.order_id, payload.merchant_user_id)
            if existing is None:
                raise
            return existing

    def _send_payment_confirmations(self, order_id: int) -> None:
        portions: dict[int, Decimal] = defaultdict(lambda: Decimal("0.00"))
        for sale in self.store.completed_sales_for_order(order_id):
            portions[sale.merchant_user_id] += sale.amount
        for merchant_user_id, amount in portions.items():
            try:
                self.notifier.send_payment_confirmation(merchant_user_id, order_id, amount)
            except Exception:
                logger.exception(
                    "Payment confirmation failed for merchant %s", merchant_user_id
                )
