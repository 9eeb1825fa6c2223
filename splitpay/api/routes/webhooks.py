"""Inbound webhooks from remote network sites.

Every endpoint requires the installation's webhook secret, either as a
bearer token or as the legacy ``?key=`` query parameter.  Sale and
refund events are idempotent; replaying a payload changes nothing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from splitpay.api.dependencies import get_reconciliation, get_store, verify_webhook_token
from splitpay.core.logging import get_logger
from splitpay.schemas.webhook import (
    RefundWebhookPayload,
    SaleWebhookPayload,
    WebhookAck,
    WebhookEcho,
    WebhookStatus,
)
from splitpay.services.ledger.store import LedgerStore
from splitpay.services.reconciliation.engine import ReconciliationEngine

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(verify_webhook_token)])

SERVICE_VERSION = "1.0.0"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _handle_sale(engine: ReconciliationEngine, payload: SaleWebhookPayload) -> WebhookAck:
    logger.info(
        "Sale webhook: order=%s merchant=%s", payload.order_id, payload.merchant_user_id
    )
    outcome = engine.on_external_sale_event(payload)
    return WebhookAck(
        message=outcome.message, action=outcome.action, order_id=payload.order_id
    )


def _handle_refund(
    engine: ReconciliationEngine, payload: RefundWebhookPayload
) -> WebhookAck:
    logger.info(
        "Refund webhook: order=%s amount=%s", payload.order_id, payload.refund_amount
    )
    outcome = engine.on_external_refund_event(payload)
    return WebhookAck(
        message=outcome.message, action=outcome.action, order_id=payload.order_id
    )


def _status(store: LedgerStore) -> WebhookStatus:
    overview = store.network_overview()
    return WebhookStatus(
        version=SERVICE_VERSION,
        timestamp=_now(),
        stats={k: str(v) if not isinstance(v, int) else v for k, v in overview.items()},
    )


@router.post("/sale", response_model=WebhookAck)
def sale_webhook(
    payload: SaleWebhookPayload,
    engine: ReconciliationEngine = Depends(get_reconciliation),
) -> WebhookAck:
    """Record and sync a sale reported by a remote site."""
    return _handle_sale(engine, payload)


@router.post("/refund", response_model=WebhookAck)
def refund_webhook(
    payload: RefundWebhookPayload,
    engine: ReconciliationEngine = Depends(get_reconciliation),
) -> WebhookAck:
    """Mirror a refund that the remote site already processed."""
    return _handle_refund(engine, payload)


@router.get("/status", response_model=WebhookStatus)
def status_webhook(store: LedgerStore = Depends(get_store)) -> WebhookStatus:
    """Service status and network totals.  Read only."""
    return _status(store)


@router.post("/test", response_model=WebhookEcho)
def test_webhook(
    payload: Optional[dict[str, Any]] = Body(default=None),
) -> WebhookEcho:
    """Echo the payload back.  Read only."""
    return WebhookEcho(received_data=payload or {}, timestamp=_now())


@router.post("/legacy")
async def legacy_webhook(
    request: Request,
    mmpo_webhook: str = Query(..., description="sale | refund | status"),
    engine: ReconciliationEngine = Depends(get_reconciliation),
    store: LedgerStore = Depends(get_store),
):
    """Form-encoded webhook kept for older network sites."""
    form = await request.form()
    data = {k: v for k, v in form.items() if v != ""}

    try:
        if mmpo_webhook == "sale":
            payload = SaleWebhookPayload.model_validate(data)
            return await run_in_threadpool(_handle_sale, engine, payload)
        if mmpo_webhook == "refund":
            payload = RefundWebhookPayload.model_validate(data)
            return await run_in_threadpool(_handle_refund, engine, payload)
    except PydanticValidationError as exc:
        missing = ", ".join(
            str(err["loc"][0]) for err in exc.errors() if err.get("loc")
        )
        raise HTTPException(status_code=400, detail=f"Invalid or missing fields: {missing}")

    if mmpo_webhook == "status":
        return await run_in_threadpool(_status, store)
    raise HTTPException(status_code=400, detail=f"Unknown webhook type {mmpo_webhook!r}")
