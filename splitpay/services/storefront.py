"""Adapter over the hosting shop's orders, catalog and carts.

Settlement reads orders through ``OrderContext`` snapshots and calls the
finalize hooks (mark paid, reduce stock, clear cart) once every line has
settled.  Every read takes an explicit site id instead of relying on an
ambient "current site".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from splitpay.core.database import utcnow
from splitpay.core.logging import get_logger
from splitpay.models.storefront import CartItem, CatalogProduct, Order

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderLineContext:
    position: int
    product_id: int
    name: str
    quantity: int
    amount: Decimal


@dataclass(frozen=True)
class OrderContext:
    """Read-only snapshot of an order taken at the start of an operation."""

    order_id: int
    site_id: int
    total: Decimal
    billing: dict[str, Any]
    shipping: Optional[dict[str, Any]] = None
    customer_ip: Optional[str] = None
    cart_token: Optional[str] = None
    is_paid: bool = False
    lines: list[OrderLineContext] = field(default_factory=list)


class Storefront:
    """SQL-backed implementation of the shop collaborator."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_order_context(
        self, order_id: int, site_id: Optional[int] = None
    ) -> Optional[OrderContext]:
        query = self.db.query(Order).filter(Order.id == order_id)
        if site_id is not None:
            query = query.filter(Order.site_id == site_id)
        order = query.first()
        if order is None:
            return None
        return OrderContext(
            order_id=order.id,
            site_id=order.site_id,
            total=order.total,
            billing=dict(order.billing or {}),
            shipping=dict(order.shipping) if order.shipping else None,
            customer_ip=order.customer_ip,
            cart_token=order.cart_token,
            is_paid=order.is_paid,
            lines=[
                OrderLineContext(
                    position=line.position,
                    product_id=line.product_id,
                    name=line.name,
                    quantity=line.quantity,
                    amount=line.amount,
                )
                for line in order.lines
            ],
        )

    def product_name(self, site_id: int, product_id: int) -> Optional[str]:
        """Name of a product in one site's catalog, or None if it is gone."""
        product = (
            self.db.query(CatalogProduct)
            .filter(
                CatalogProduct.site_id == site_id,
                CatalogProduct.product_id == product_id,
            )
            .first()
        )
        return product.name if product else None

    def update_billing(self, order_id: int, billing: dict[str, Any]) -> bool:
        order = self.db.get(Order, order_id)
        if order is None:
            return False
        order.billing = dict(billing)
        self.db.commit()
        return True

    # ── Finalize hooks ───────────────────────────────────────────────

    def mark_paid(self, order_id: int, transaction_ids: list[str]) -> None:
        order = self.db.get(Order, order_id)
        if order is None:
            return
        order.status = "processing"
        order.paid_at = utcnow()
        self.db.commit()
        logger.info(
            "Order %s marked paid (transactions=%s)", order_id, ",".join(transaction_ids)
        )

    def add_note(self, order_id: int, note: str) -> None:
        order = self.db.get(Order, order_id)
        if order is None:
            return
        # Reassign so the JSON column is flagged dirty
        order.notes = [*(order.notes or []), note]
        self.db.commit()

    def reduce_stock(self, order_id: int) -> None:
        order = self.db.get(Order, order_id)
        if order is None:
            return
        for line in order.lines:
            product = (
                self.db.query(CatalogProduct)
                .filter(
                    CatalogProduct.site_id == order.site_id,
                    CatalogProduct.product_id == line.product_id,
                )
                .first()
            )
            if product is None or product.stock_quantity is None:
                continue
            product.stock_quantity = max(product.stock_quantity - line.quantity, 0)
        self.db.commit()

    def clear_cart(self, cart_token: Optional[str]) -> None:
        if not cart_token:
            return
        self.db.query(CartItem).filter(CartItem.cart_token == cart_token).delete(
            synchronize_session=False
        )
        self.db.commit()
