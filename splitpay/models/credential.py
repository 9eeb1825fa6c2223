"""Merchant credential model: one processor account per (user, site)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from splitpay.core.database import Base, utcnow


class MerchantCredential(Base):
    """Processor login for a merchant, scoped to the site they sell from.

    Secrets live only in this table.  They are never echoed through the
    API and never appear in ``repr`` output.
    """

    __tablename__ = "merchant_credentials"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[int] = mapped_column(nullable=False)
    site_id: Mapped[int] = mapped_column(nullable=False)
    processor_username: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    processor_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    processor_api_key: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
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
        UniqueConstraint("user_id", "site_id", name="uq_credentials_user_site"),
        Index("ix_credentials_active_user", "is_active", "user_id"),
    )

    @property
    def is_usable(self) -> bool:
        """Active with both a username and a password on file."""
        return bool(
            self.is_active and self.processor_username and self.processor_password
        )

    def __repr__(self) -> str:
        return (
            f"<MerchantCredential(user_id={self.user_id}, site_id={self.site_id}, "
            f"is_active={self.is_active})>"
        )
