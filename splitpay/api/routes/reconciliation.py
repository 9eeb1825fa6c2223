"""Reconciliation endpoints.

Trigger a sync run now or in the background, sync a single sale, and
read the sales ledger and its statistics.
"""

from __future__ import annotations

from typing import Callable, List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from splitpay.api.dependencies import get_reconciliation, get_session_factory, get_store
from splitpay.core.logging import get_logger
from splitpay.models.sale import Sale
from splitpay.schemas.sale import (
    CleanupResponse,
    NetworkOverview,
    SaleResponse,
    SalesStatistics,
    SyncRequest,
    SyncResultResponse,
    SyncSummaryResponse,
)
from splitpay.services.container import ServiceContainer, get_container
from splitpay.services.ledger.store import LedgerStore
from splitpay.services.reconciliation import batch
from splitpay.services.reconciliation.engine import ReconciliationEngine

logger = get_logger(__name__)

router = APIRouter()


@router.post("/sync", response_model=SyncSummaryResponse)
def run_sync(
    body: Optional[SyncRequest] = None,
    engine: ReconciliationEngine = Depends(get_reconciliation),
) -> dict:
    """Sync every unsynced completed sale now, oldest first."""
    limit = body.limit if body else None
    logger.info("Manual sync requested (limit=%s)", limit)
    return engine.sync_all(limit=limit).as_dict()


@router.post("/sales/{sale_id}/sync", response_model=SyncResultResponse)
def sync_sale(
    sale_id: UUID,
    engine: ReconciliationEngine = Depends(get_reconciliation),
) -> SyncResultResponse:
    result = engine.sync_sale_by_id(sale_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Sale not found")
    return SyncResultResponse(
        sale_id=result.sale_id,
        status=result.status,
        message=result.message,
        merchant_order_id=result.merchant_order_id,
    )


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_sales(
    days: Optional[int] = Query(None, ge=1),
    engine: ReconciliationEngine = Depends(get_reconciliation),
) -> CleanupResponse:
    """Delete refunded and failed sales past the retention window."""
    retention = days or engine.config.sale_retention_days
    return CleanupResponse(deleted=engine.cleanup(retention), retention_days=retention)


# ── Read endpoints ───────────────────────────────────────────────────


@router.get("/sales", response_model=List[SaleResponse])
def list_sales(
    merchant_user_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="pending | completed | refunded | failed"),
    synced: Optional[bool] = Query(None),
    order_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    store: LedgerStore = Depends(get_store),
) -> list[Sale]:
    return store.list_sales(
        merchant_user_id=merchant_user_id,
        status=status,
        synced=synced,
        order_id=order_id,
        skip=skip,
        limit=limit,
    )


@router.get("/stats", response_model=SalesStatistics)
def sales_statistics(
    days: int = Query(30, ge=1),
    store: LedgerStore = Depends(get_store),
) -> dict:
    return store.sales_statistics(days)


@router.get("/overview", response_model=NetworkOverview)
def network_overview(store: LedgerStore = Depends(get_store)) -> dict:
    return store.network_overview()


# ── Batch / async sync endpoints ─────────────────────────────────────


@router.post("/sync-async")
def run_sync_async(
    background_tasks: BackgroundTasks,
    body: Optional[SyncRequest] = None,
    container: ServiceContainer = Depends(get_container),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """Submit a sync run as a background job.

    Returns immediately with a job_id that can be polled via GET /jobs/{id}.
    """
    job_id = batch.submit_sync_job(
        db_factory=session_factory,
        container=container,
        background_tasks=background_tasks,
        limit=body.limit if body else None,
    )
    return {"job_id": job_id, "status": "pending", "message": "Sync job submitted"}


@router.get("/jobs")
def list_jobs():
    """List all submitted sync jobs."""
    return {"jobs": batch.list_jobs()}


@router.get("/jobs/{job_id}")
def get_job(job_id: str):
    """Poll a specific job's status by its ID."""
    job = batch.get_job_status(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
