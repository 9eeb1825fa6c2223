"""Checkout endpoints: cart validation, settlement and refunds.

Settlement failures are a normal checkout outcome, so they come back as
HTTP 200 with ``result: "fail"`` and the customer-facing message.
"""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from splitpay.api.dependencies import get_orchestrator, get_session_factory
from splitpay.core.database import get_db
from splitpay.core.logging import get_logger
from splitpay.schemas.checkout import (
    CartValidationRequest,
    CartValidationResponse,
    RefundRequest,
    RefundResponse,
    SettleRequest,
    SettleResponse,
)
from splitpay.services.container import ServiceContainer, get_container
from splitpay.services.processor.card import CardData
from splitpay.services.reconciliation.batch import run_settlement_sync
from splitpay.services.settlement.orchestrator import SettlementOrchestrator
from splitpay.services.storefront import Storefront

logger = get_logger(__name__)

router = APIRouter()


@router.post("/validate", response_model=CartValidationResponse)
def validate_cart(
    body: CartValidationRequest,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> CartValidationResponse:
    """Check every cart item has an owning merchant that can be charged."""
    site_id = body.listing_site_id or container.config.listing_site_id
    resolution = container.resolver(db).resolve(body.items, site_id)
    return CartValidationResponse(
        valid=resolution.valid,
        invalid_items=resolution.invalid_items,
        message=resolution.message,
    )


@router.post("/orders/{order_id}/settle", response_model=SettleResponse)
def settle_order(
    order_id: int,
    body: SettleRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
    container: ServiceContainer = Depends(get_container),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> SettleResponse:
    """Charge each order line against its merchant, all or nothing."""
    logger.info("Settlement requested for order %s", order_id)

    if body.billing is not None:
        if not Storefront(db).update_billing(order_id, body.billing.model_dump()):
            raise HTTPException(status_code=404, detail="Order not found")

    card = CardData(
        number=body.card_number.get_secret_value(),
        expiry=body.card_expiry,
        cvc=body.card_cvc.get_secret_value(),
    )
    result = orchestrator.settle(order_id, card)

    if not result.success:
        return SettleResponse(
            result="fail",
            message=result.message,
            invalid_items=result.invalid_items,
        )

    # Sale rows are committed by now; sync runs after the response is sent
    background_tasks.add_task(
        run_settlement_sync, session_factory, container, result.event
    )
    return SettleResponse(
        result="success",
        message=result.message,
        redirect_url=result.redirect_url,
        transaction_ids=result.transaction_ids,
        total_charged=result.total_charged,
    )


@router.post("/orders/{order_id}/refund", response_model=RefundResponse)
def refund_order(
    order_id: int,
    body: RefundRequest,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> RefundResponse:
    """Refund an order in full, or partially spread across its sales."""
    logger.info(
        "Refund requested for order %s amount=%s", order_id, body.amount or "full"
    )
    result = orchestrator.refund(order_id, body.amount, body.reason)
    if not result.success:
        raise HTTPException(
            status_code=400,
            detail={
                "message": result.message,
                "refunded_total": str(result.refunded_total),
            },
        )
    return RefundResponse(
        success=True,
        message=result.message,
        refunded_total=result.refunded_total,
    )
