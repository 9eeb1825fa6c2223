"""Sale model: one settled per-line charge and its sync state."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from splitpay.core.database import Base, utcnow

SALE_PENDING = "pending"
SALE_COMPLETED = "completed"
SALE_REFUNDED = "refunded"
SALE_FAILED = "failed"

# Status moves only forward; refunded and failed are terminal
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SALE_PENDING: frozenset({SALE_COMPLETED, SALE_FAILED}),
    SALE_COMPLETED: frozenset({SALE_REFUNDED}),
    SALE_REFUNDED: frozenset(),
    SALE_FAILED: frozenset(),
}


class Sale(Base):
    """A charge against one merchant for one order line.

    ``synced`` flips to true once the sale has been replicated into the
    owning merchant's ledger and never flips back.
    """

    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    order_id: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[int] = mapped_column(nullable=False)
    merchant_user_id: Mapped[int] = mapped_column(nullable=False)
    merchant_site_id: Mapped[int] = mapped_column(nullable=False)
    listing_site_id: Mapped[int] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    commission: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    transaction_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SALE_PENDING,
        comment="pending | completed | refunded | failed",
    )
    synced: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    sync_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    last_sync_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    last_sync_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=utcnow,
    )

    __table_args__ = (
        UniqueConstraint(
            "order_id", "product_id", "listing_site_id", name="uq_sales_order_line"
        ),
        Index("ix_sales_order", "order_id"),
        Index("ix_sales_merchant", "merchant_user_id", "merchant_site_id"),
        Index("ix_sales_status", "status"),
        Index("ix_sales_synced", "synced", "status"),
        CheckConstraint("amount >= 0", name="ck_sales_amount_non_negative"),
        CheckConstraint("commission >= 0", name="ck_sales_commission_non_negative"),
    )

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def __repr__(self) -> str:
        return (
            f"<Sale(order_id={self.order_id}, product_id={self.product_id}, "
            f"amount={self.amount}, status={self.status!r}, synced={self.synced})>"
        )
