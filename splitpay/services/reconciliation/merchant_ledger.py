"""Writes synced sales into a merchant's own ledger.

The target tenant is always passed in as a ``TenantScope``; nothing here
switches a global "current site".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from splitpay.core.logging import get_logger
from splitpay.models.merchant_ledger import MerchantOrder
from splitpay.models.sale import Sale
from splitpay.services.storefront import OrderContext

logger = get_logger(__name__)

NETWORK_SYNC_METHOD = "network_sync"
NETWORK_SYNC_TITLE = "Network Sale Sync"


@dataclass(frozen=True)
class TenantScope:
    """The merchant site a write is aimed at."""

    site_id: int
    merchant_user_id: int


class SqlMerchantLedger:
    """Merchant ledger backed by the ``merchant_orders`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_for_sale(self, sale_id) -> Optional[MerchantOrder]:
        return (
            self.db.query(MerchantOrder)
            .filter(MerchantOrder.source_sale_id == sale_id)
            .first()
        )

    def list_for_scope(self, scope: TenantScope) -> list[MerchantOrder]:
        return (
            self.db.query(MerchantOrder)
            .filter(
                MerchantOrder.site_id == scope.site_id,
                MerchantOrder.merchant_user_id == scope.merchant_user_id,
            )
            .order_by(MerchantOrder.created_at)
            .all()
        )

    def replicate(
        self,
        scope: TenantScope,
        sale: Sale,
        origin: OrderContext,
        line_name: Optional[str],
        quantity: int = 1,
    ) -> tuple[MerchantOrder, bool]:
        """Create the merchant-side record for ``sale`` if it is not there yet.

        Returns the record and whether this call created it.  A concurrent
        writer that wins the unique ``source_sale_id`` race makes this call
        fall back to the existing record.
        """
        sale_id = sale.id
        existing = self.find_for_sale(sale_id)
        if existing is not None:
            return existing, False

        record = MerchantOrder(
            site_id=scope.site_id,
            merchant_user_id=scope.merchant_user_id,
            source_sale_id=sale_id,
            original_order_id=sale.order_id,
            original_site_id=origin.site_id,
            transaction_id=sale.transaction_id,
            commission=sale.commission,
            product_id=sale.product_id if line_name else None,
            line_name=line_name or f"Network Sale - Product ID: {sale.product_id}",
            quantity=quantity if line_name else 1,
            total=sale.amount,
            billing=dict(origin.billing),
            shipping=dict(origin.shipping) if origin.shipping else None,
            payment_method=NETWORK_SYNC_METHOD,
            payment_method_title=NETWORK_SYNC_TITLE,
            status="completed",
            note=(
                f"Order synced from network site #{origin.site_id}, "
                f"original order #{sale.order_id}"
            ),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_for_sale(sale_id)
            if existing is None:
                raise
            logger.info("Sale %s was replicated by a concurrent sync", sale_id)
            return existing, False

        self.db.refresh(record)
        return record, True
