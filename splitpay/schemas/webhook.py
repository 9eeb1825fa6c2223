"""Pydantic schemas for inbound sale and refund webhooks."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class SaleWebhookPayload(BaseModel):
    """A sale reported by a remote network site."""

    order_id: int = Field(..., description="Order id on the originating site")
    transaction_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    merchant_user_id: Optional[int] = None
    merchant_site_id: Optional[int] = None
    product_id: Optional[int] = None
    status: Literal["pending", "completed", "refunded", "failed"] = "completed"


class RefundWebhookPayload(BaseModel):
    """A refund already performed by the remote system."""

    order_id: int
    refund_amount: Decimal = Field(..., gt=0)
    refund_reason: Optional[str] = None
    transaction_id: Optional[str] = None


class WebhookAck(BaseModel):
    success: bool = True
    message: str
    action: Optional[str] = None
    order_id: Optional[int] = None


class WebhookStatus(BaseModel):
    success: bool = True
    status: str = "active"
    version: str
    timestamp: str
    stats: dict[str, Any]


class WebhookEcho(BaseModel):
    success: bool = True
    message: str = "Webhook test successful"
    received_data: dict[str, Any]
    timestamp: str
