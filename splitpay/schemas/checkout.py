"""Pydantic schemas for cart validation, settlement and refunds."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, SecretStr


class CartItemIn(BaseModel):
    product_id: int
    name: str = Field(..., min_length=1)


class CartValidationRequest(BaseModel):
    items: list[CartItemIn] = Field(..., min_length=1)
    listing_site_id: Optional[int] = None


class CartValidationResponse(BaseModel):
    valid: bool
    invalid_items: list[str] = Field(default_factory=list)
    message: str = ""


class BillingDetails(BaseModel):
    first_name: str = ""
    last_name: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    state: str = ""
    postcode: str = ""
    country: str = ""
    phone: str = ""
    email: str = ""


class SettleRequest(BaseModel):
    """Card fields travel as secrets so they never render in logs or reprs."""

    card_number: SecretStr
    card_expiry: str = Field(..., description="MM/YY")
    card_cvc: SecretStr
    billing: Optional[BillingDetails] = Field(
        None,
        description="Replaces the order's billing details before charging",
    )


class SettleResponse(BaseModel):
    result: Literal["success", "fail"]
    message: str = ""
    redirect_url: Optional[str] = None
    transaction_ids: list[str] = Field(default_factory=list)
    total_charged: Decimal = Decimal("0.00")
    invalid_items: list[str] = Field(default_factory=list)


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = Field(
        None,
        gt=0,
        description="Omit to refund every sale in full",
    )
    reason: str = ""


class RefundResponse(BaseModel):
    success: bool
    message: str
    refunded_total: Decimal
