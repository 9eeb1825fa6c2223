"""Pydantic schemas for sales, sync runs and statistics."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SaleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: int
    product_id: int
    merchant_user_id: int
    merchant_site_id: int
    listing_site_id: int
    amount: Decimal
    commission: Decimal
    transaction_id: Optional[str] = None
    status: str
    synced: bool
    sync_attempts: int = 0
    last_sync_error: Optional[str] = None
    last_sync_attempt_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class SyncRequest(BaseModel):
    limit: Optional[int] = Field(
        None,
        ge=1,
        description="Maximum number of sales to sync in this run; None = all",
    )


class SyncSummaryResponse(BaseModel):
    processed: int
    synced: int
    failed: int
    skipped: int


class SyncResultResponse(BaseModel):
    sale_id: UUID
    status: str
    message: str
    merchant_order_id: Optional[UUID] = None


class CleanupResponse(BaseModel):
    deleted: int
    retention_days: int


class SalesStatistics(BaseModel):
    period_days: int
    total_sales: int
    total_amount: Decimal
    total_commission: Decimal
    unique_merchants: int
    unique_sites: int
    synced_sales: int
    sync_percentage: float


class NetworkOverview(BaseModel):
    total_sales: Decimal
    active_merchants: int
    total_products: int
    active_sites: int
