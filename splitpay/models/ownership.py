"""Product ownership model: which merchant gets paid for a listed product."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from splitpay.core.database import Base, utcnow


class ProductOwnership(Base):
    """Binds a product on a listing site to its owning merchant.

    A product with no row here cannot be charged on that site.
    """

    __tablename__ = "product_ownership"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    product_id: Mapped[int] = mapped_column(nullable=False)
    listing_site_id: Mapped[int] = mapped_column(nullable=False)
    owner_user_id: Mapped[int] = mapped_column(nullable=False, index=True)
    owner_site_id: Mapped[int] = mapped_column(nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Percentage 0-100",
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
            "product_id", "listing_site_id", name="uq_ownership_product_site"
        ),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_ownership_commission_range",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ProductOwnership(product_id={self.product_id}, "
            f"listing_site_id={self.listing_site_id}, "
            f"owner_user_id={self.owner_user_id}, "
            f"commission_rate={self.commission_rate})>"
        )
