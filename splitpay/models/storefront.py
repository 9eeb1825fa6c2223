"""Storefront tables owned by the hosting shop.

Checkout reads orders and lines from here and the finalize step writes
back payment status, stock levels and the emptied cart.  Nothing in the
settlement core owns these rows.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitpay.core.database import Base, utcnow


class Order(Base):
    """A customer order placed on a listing site."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(nullable=False, index=True)
    customer_user_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    cart_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending | processing | completed | failed | refunded",
    )
    total: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    billing: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    shipping: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    customer_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    notes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    lines: Mapped[list["OrderLine"]] = relationship(
        back_populates="order",
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
    )

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, site_id={self.site_id}, status={self.status!r})>"


class OrderLine(Base):
    """One purchased product on an order, in placement order."""

    __tablename__ = "order_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    product_id: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False, default=1)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Line total including quantity",
    )

    order: Mapped[Order] = relationship(back_populates="lines")

    __table_args__ = (Index("ix_order_lines_order_position", "order_id", "position"),)


class CatalogProduct(Base):
    """A product as it exists in one site's catalog."""

    __tablename__ = "catalog_products"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    site_id: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    stock_quantity: Mapped[Optional[int]] = mapped_column(
        nullable=True,
        comment="None when stock is not managed",
    )

    __table_args__ = (Index("ix_catalog_site_product", "site_id", "product_id"),)


class CartItem(Base):
    """An item sitting in a customer's cart, keyed by cart token."""

    __tablename__ = "cart_items"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    cart_token: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False, default=1)
