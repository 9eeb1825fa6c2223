"""Merchant-side ledger: order records replicated into each merchant's site."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, Index, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from splitpay.core.database import Base, utcnow


class MerchantOrder(Base):
    """A synced copy of a network sale inside the merchant's own site.

    ``source_sale_id`` is unique, so a sale can land in a merchant ledger
    at most once no matter how many sync attempts overlap.
    """

    __tablename__ = "merchant_orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    site_id: Mapped[int] = mapped_column(
        nullable=False,
        comment="Tenant site that owns this record",
    )
    merchant_user_id: Mapped[int] = mapped_column(nullable=False)
    source_sale_id: Mapped[uuid.UUID] = mapped_column(unique=True, nullable=False)
    original_order_id: Mapped[int] = mapped_column(nullable=False)
    original_site_id: Mapped[int] = mapped_column(nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    commission: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    product_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    line_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False, default=1)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    billing: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    shipping: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    payment_method: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="network_sync",
    )
    payment_method_title: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="Network Sale Sync",
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (Index("ix_merchant_orders_site", "site_id", "merchant_user_id"),)

    def __repr__(self) -> str:
        return (
            f"<MerchantOrder(site_id={self.site_id}, "
            f"original_order_id={self.original_order_id}, total={self.total})>"
        )
