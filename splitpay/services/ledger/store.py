"""Ledger Store: the only place that reads and writes persisted entities.

Credentials, product ownership and sales live here.  The store enforces
constraints (uniqueness, forward-only sale status, monotonic sync flag)
but holds no settlement or reconciliation logic of its own.  Every
mutating method commits its own short transaction so callers never hold
a database transaction open across a processor call.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from splitpay.core.database import utcnow
from splitpay.core.exceptions import InvalidStatusTransition
from splitpay.core.logging import get_logger
from splitpay.models.credential import MerchantCredential
from splitpay.models.ownership import ProductOwnership
from splitpay.models.sale import (
    SALE_COMPLETED,
    SALE_FAILED,
    SALE_PENDING,
    SALE_REFUNDED,
    Sale,
)

logger = get_logger(__name__)

_ZERO = Decimal("0.00")


class LedgerStore:
    """Data access for credentials, ownership and sales."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Credentials ──────────────────────────────────────────────────

    def save_credentials(
        self,
        user_id: int,
        site_id: int,
        username: str,
        password: str,
        api_key: Optional[str] = None,
        is_active: bool = True,
    ) -> MerchantCredential:
        """Create or update the credential row for (user, site)."""
        cred = self.get_credentials(user_id, site_id, active_only=False)
        if cred is None:
            cred = MerchantCredential(user_id=user_id, site_id=site_id)
            self.db.add(cred)
        cred.processor_username = username
        cred.processor_password = password
        cred.processor_api_key = api_key or None
        cred.is_active = is_active
        self.db.commit()
        self.db.refresh(cred)
        logger.info("Credentials saved: user=%s site=%s", user_id, site_id)
        return cred

    def get_credentials(
        self, user_id: int, site_id: int, active_only: bool = True
    ) -> Optional[MerchantCredential]:
        query = self.db.query(MerchantCredential).filter(
            MerchantCredential.user_id == user_id,
            MerchantCredential.site_id == site_id,
        )
        if active_only:
            query = query.filter(MerchantCredential.is_active.is_(True))
        return query.first()

    def has_valid_credentials(self, user_id: int, site_id: int) -> bool:
        cred = self.get_credentials(user_id, site_id)
        return cred is not None and cred.is_usable

    def list_active_credentials(self) -> list[MerchantCredential]:
        return (
            self.db.query(MerchantCredential)
            .filter(MerchantCredential.is_active.is_(True))
            .order_by(MerchantCredential.user_id, MerchantCredential.site_id)
            .all()
        )

    def deactivate_credentials(self, user_id: int, site_id: int) -> bool:
        """Soft-disable a credential.  Returns False if none exists."""
        count = (
            self.db.query(MerchantCredential)
            .filter(
                MerchantCredential.user_id == user_id,
                MerchantCredential.site_id == site_id,
            )
            .update({"is_active": False}, synchronize_session="fetch")
        )
        self.db.commit()
        return count > 0

    def delete_credentials(self, user_id: int, site_id: int) -> bool:
        count = (
            self.db.query(MerchantCredential)
            .filter(
                MerchantCredential.user_id == user_id,
                MerchantCredential.site_id == site_id,
            )
            .delete(synchronize_session="fetch")
        )
        self.db.commit()
        return count > 0

    # ── Ownership ────────────────────────────────────────────────────

    def set_ownership(
        self,
        product_id: int,
        listing_site_id: int,
        owner_user_id: int,
        owner_site_id: int,
        commission_rate: Decimal,
    ) -> ProductOwnership:
        """Create or update the owner of a product on a listing site."""
        ownership = self.get_ownership(product_id, listing_site_id)
        if ownership is None:
            ownership = ProductOwnership(
                product_id=product_id, listing_site_id=listing_site_id
            )
            self.db.add(ownership)
        ownership.owner_user_id = owner_user_id
        ownership.owner_site_id = owner_site_id
        ownership.commission_rate = Decimal(commission_rate)
        self.db.commit()
        self.db.refresh(ownership)
        return ownership

    def get_ownership(
        self, product_id: int, listing_site_id: int
    ) -> Optional[ProductOwnership]:
        return (
            self.db.query(ProductOwnership)
            .filter(
                ProductOwnership.product_id == product_id,
                ProductOwnership.listing_site_id == listing_site_id,
            )
            .first()
        )

    def remove_ownership(self, product_id: int, listing_site_id: int) -> bool:
        count = (
            self.db.query(ProductOwnership)
            .filter(
                ProductOwnership.product_id == product_id,
                ProductOwnership.listing_site_id == listing_site_id,
            )
            .delete(synchronize_session="fetch")
        )
        self.db.commit()
        return count > 0

    def list_ownership(self, owner_user_id: Optional[int] = None) -> list[ProductOwnership]:
        query = self.db.query(ProductOwnership)
        if owner_user_id is not None:
            query = query.filter(ProductOwnership.owner_user_id == owner_user_id)
        return query.order_by(ProductOwnership.product_id).all()

    # ── Sales: writes ────────────────────────────────────────────────

    def record_sale(
        self,
        order_id: int,
        product_id: int,
        merchant_user_id: int,
        merchant_site_id: int,
        listing_site_id: int,
        amount: Decimal,
        commission: Decimal,
        transaction_id: Optional[str],
        status: str = SALE_PENDING,
    ) -> Sale:
        """Insert one sale row in its own transaction.

        Raises ``sqlalchemy.exc.IntegrityError`` (after rolling back) when
        the (order, product, listing site) line already has a sale.
        """
        sale = Sale(
            order_id=order_id,
            product_id=product_id,
            merchant_user_id=merchant_user_id,
            merchant_site_id=merchant_site_id,
            listing_site_id=listing_site_id,
            amount=amount,
            commission=commission,
            transaction_id=transaction_id,
            status=status,
        )
        self.db.add(sale)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(sale)
        return sale

    def promote_pending(self, sale_ids: list[uuid.UUID]) -> int:
        """Move this attempt's pending rows to completed in one transaction."""
        if not sale_ids:
            return 0
        count = (
            self.db.query(Sale)
            .filter(Sale.id.in_(sale_ids), Sale.status == SALE_PENDING)
            .update({"status": SALE_COMPLETED}, synchronize_session="fetch")
        )
        self.db.commit()
        return count

    def retract_pending(self, sale_ids: list[uuid.UUID]) -> int:
        """Delete pending rows written by a settlement that was compensated."""
        if not sale_ids:
            return 0
        count = (
            self.db.query(Sale)
            .filter(Sale.id.in_(sale_ids), Sale.status == SALE_PENDING)
            .delete(synchronize_session="fetch")
        )
        self.db.commit()
        return count

    def transition_sale(
        self, sale: Sale, new_status: str, amount: Optional[Decimal] = None
    ) -> Sale:
        """Apply a forward status change, optionally rewriting the amount."""
        if not sale.can_transition_to(new_status):
            raise InvalidStatusTransition(
                f"Sale cannot move from {sale.status} to {new_status}"
            )
        sale.status = new_status
        if amount is not None:
            sale.amount = amount
        self.db.commit()
        self.db.refresh(sale)
        return sale

    def update_refunded_amount(self, sale: Sale, amount: Decimal) -> Sale:
        """Rewrite the amount of a sale that is already refunded."""
        sale.amount = amount
        self.db.commit()
        self.db.refresh(sale)
        return sale

    def mark_sale_synced(self, sale_id: uuid.UUID) -> bool:
        """Flip ``synced`` false -> true in a single conditional update.

        Returns True only for the caller whose update actually changed
        the row, so two overlapping syncs cannot both claim the sale.
        """
        count = (
            self.db.query(Sale)
            .filter(
                Sale.id == sale_id,
                Sale.synced.is_(False),
                Sale.status == SALE_COMPLETED,
            )
            .update(
                {"synced": True, "last_sync_error": None},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return count == 1

    def record_sync_failure(self, sale_id: uuid.UUID, error: str) -> None:
        self.db.query(Sale).filter(Sale.id == sale_id).update(
            {
                "sync_attempts": Sale.sync_attempts + 1,
                "last_sync_error": error[:1000],
                "last_sync_attempt_at": utcnow(),
            },
            synchronize_session=False,
        )
        self.db.commit()

    def cleanup_old_sales(self, days: int = 90) -> int:
        """Delete refunded and failed sales older than the retention window."""
        cutoff = utcnow() - timedelta(days=days)
        count = (
            self.db.query(Sale)
            .filter(
                Sale.status.in_([SALE_REFUNDED, SALE_FAILED]),
                Sale.created_at < cutoff,
            )
            .delete(synchronize_session="fetch")
        )
        self.db.commit()
        logger.info("Sales cleanup removed %d rows older than %d days", count, days)
        return count

    # ── Sales: reads ─────────────────────────────────────────────────

    def get_sale(self, sale_id: uuid.UUID) -> Optional[Sale]:
        return self.db.query(Sale).filter(Sale.id == sale_id).first()

    def sales_for_order(self, order_id: int) -> list[Sale]:
        return (
            self.db.query(Sale)
            .filter(Sale.order_id == order_id)
            .order_by(Sale.created_at, Sale.product_id)
            .all()
        )

    def completed_sales_for_order(self, order_id: int) -> list[Sale]:
        return [s for s in self.sales_for_order(order_id) if s.status == SALE_COMPLETED]

    def find_sale(self, order_id: int, merchant_user_id: int) -> Optional[Sale]:
        return (
            self.db.query(Sale)
            .filter(
                Sale.order_id == order_id,
                Sale.merchant_user_id == merchant_user_id,
            )
            .order_by(Sale.created_at)
            .first()
        )

    def unsynced_sales(self, limit: Optional[int] = None) -> list[Sale]:
        """Completed sales still waiting for replication, oldest first."""
        query = (
            self.db.query(Sale)
            .filter(Sale.synced.is_(False), Sale.status == SALE_COMPLETED)
            .order_by(Sale.created_at.asc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def recent_sales(
        self, merchant_user_id: Optional[int] = None, limit: int = 10
    ) -> list[Sale]:
        """Newest completed sales, optionally for one merchant."""
        return self.list_sales(
            merchant_user_id=merchant_user_id, status=SALE_COMPLETED, limit=limit
        )

    def list_sales(
        self,
        merchant_user_id: Optional[int] = None,
        status: Optional[str] = None,
        synced: Optional[bool] = None,
        order_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Sale]:
        query = self.db.query(Sale)
        if merchant_user_id is not None:
            query = query.filter(Sale.merchant_user_id == merchant_user_id)
        if status:
            query = query.filter(Sale.status == status)
        if synced is not None:
            query = query.filter(Sale.synced.is_(synced))
        if order_id is not None:
            query = query.filter(Sale.order_id == order_id)
        return query.order_by(Sale.created_at.desc()).offset(skip).limit(limit).all()

    # ── Statistics ───────────────────────────────────────────────────

    def network_overview(self) -> dict:
        total_sales = (
            self.db.query(func.coalesce(func.sum(Sale.amount), 0))
            .filter(Sale.status == SALE_COMPLETED)
            .scalar()
        )
        active_merchants = (
            self.db.query(func.count(distinct(MerchantCredential.user_id)))
            .filter(MerchantCredential.is_active.is_(True))
            .scalar()
        )
        total_products = self.db.query(
            func.count(distinct(ProductOwnership.product_id))
        ).scalar()
        active_sites = self.db.query(
            func.count(distinct(ProductOwnership.listing_site_id))
        ).scalar()
        return {
            "total_sales": _money(total_sales),
            "active_merchants": active_merchants or 0,
            "total_products": total_products or 0,
            "active_sites": active_sites or 0,
        }

    def merchant_sales_stats(self, merchant_user_id: int) -> dict:
        month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        base = self.db.query(func.coalesce(func.sum(Sale.amount), 0)).filter(
            Sale.merchant_user_id == merchant_user_id,
            Sale.status == SALE_COMPLETED,
        )
        total = base.scalar()
        month = base.filter(Sale.created_at >= month_start).scalar()
        product_count = (
            self.db.query(func.count(ProductOwnership.id))
            .filter(ProductOwnership.owner_user_id == merchant_user_id)
            .scalar()
        )
        site_count = (
            self.db.query(func.count(distinct(ProductOwnership.listing_site_id)))
            .filter(ProductOwnership.owner_user_id == merchant_user_id)
            .scalar()
        )
        return {
            "total_sales": _money(total),
            "month_sales": _money(month),
            "product_count": product_count or 0,
            "site_count": site_count or 0,
        }

    def sales_statistics(self, days: int = 30) -> dict:
        since: datetime = utcnow() - timedelta(days=days)
        row = (
            self.db.query(
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.amount), 0),
                func.coalesce(func.sum(Sale.commission), 0),
                func.count(distinct(Sale.merchant_user_id)),
                func.count(distinct(Sale.listing_site_id)),
            )
            .filter(Sale.status == SALE_COMPLETED, Sale.created_at >= since)
            .one()
        )
        synced = (
            self.db.query(func.count(Sale.id))
            .filter(
                Sale.status == SALE_COMPLETED,
                Sale.created_at >= since,
                Sale.synced.is_(True),
            )
            .scalar()
        )
        total_sales = row[0] or 0
        sync_percentage = round(synced / total_sales * 100, 2) if total_sales else 0.0
        return {
            "period_days": days,
            "total_sales": total_sales,
            "total_amount": _money(row[1]),
            "total_commission": _money(row[2]),
            "unique_merchants": row[3] or 0,
            "unique_sites": row[4] or 0,
            "synced_sales": synced or 0,
            "sync_percentage": sync_percentage,
        }


def _money(value) -> Decimal:
    if value is None:
        return _ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))
