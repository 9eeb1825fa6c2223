"""Notification sink for merchants and admins.

Only the contract matters to the core: every call is best-effort and the
callers swallow and log anything a notifier raises.  ``LogNotifier`` is
the shipped implementation and simply writes to the application log.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from splitpay.core.logging import get_logger

logger = get_logger(__name__)


class BaseNotifier(ABC):
    """Interface the settlement and reconciliation services call."""

    @abstractmethod
    def notify_merchant_sale(
        self, merchant_user_id: int, order_id: int, amount: Decimal, commission: Decimal
    ) -> None:
        """A sale has landed in the merchant's own ledger."""

    @abstractmethod
    def notify_merchant_refund(
        self, merchant_user_id: int, order_id: int, refund_amount: Decimal, reason: str
    ) -> None:
        """A refund reported by webhook was mirrored onto a merchant's sale."""

    @abstractmethod
    def send_payment_confirmation(
        self, merchant_user_id: int, order_id: int, amount: Decimal
    ) -> None:
        """The merchant's portion of a settled order, one call per merchant."""

    @abstractmethod
    def alert_admin_sync_failures(self, failed_count: int) -> None:
        """A sync run left sales unsynced.  Carries the count only."""


class LogNotifier(BaseNotifier):
    """Writes every notification to the log."""

    def notify_merchant_sale(self, merchant_user_id, order_id, amount, commission):
        logger.info(
            "Notify merchant %s: network sale on order %s amount=%s commission=%s",
            merchant_user_id,
            order_id,
            amount,
            commission,
        )

    def notify_merchant_refund(self, merchant_user_id, order_id, refund_amount, reason):
        logger.info(
            "Notify merchant %s: refund on order %s amount=%s reason=%s",
            merchant_user_id,
            order_id,
            refund_amount,
            reason or "-",
        )

    def send_payment_confirmation(self, merchant_user_id, order_id, amount):
        logger.info(
            "Payment confirmation to merchant %s: order %s amount=%s",
            merchant_user_id,
            order_id,
            amount,
        )

    def alert_admin_sync_failures(self, failed_count):
        logger.warning("Admin alert: %d sales failed to sync", failed_count)
