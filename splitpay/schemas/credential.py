"""Pydantic schemas for merchant credentials and product ownership.

Secret fields are write-only: they are accepted as ``SecretStr`` and no
response schema carries them back.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class CredentialUpsert(BaseModel):
    """Create or replace the processor login for a (user, site) pair."""

    user_id: int
    site_id: int
    username: str = Field(..., min_length=1, max_length=255)
    password: SecretStr = Field(..., min_length=1)
    api_key: Optional[SecretStr] = None
    is_active: bool = True


class CredentialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: int
    site_id: int
    is_active: bool
    is_usable: bool = Field(
        ...,
        description="Active with a username and password on file",
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CredentialTestRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: SecretStr = Field(..., min_length=1)
    api_key: Optional[SecretStr] = None


class CredentialTestResponse(BaseModel):
    valid: bool
    message: str


class CredentialTestAllResponse(BaseModel):
    tested: int
    valid: int
    invalid: list[dict[str, int]] = Field(
        default_factory=list,
        description="(user_id, site_id) pairs whose credentials failed",
    )


class OwnershipSet(BaseModel):
    product_id: int
    owner_user_id: int
    owner_site_id: int
    commission_rate: Decimal = Field(
        Decimal("0.00"),
        ge=0,
        le=100,
        max_digits=5,
        decimal_places=2,
    )
    listing_site_id: Optional[int] = Field(
        None,
        description="Defaults to this installation's listing site",
    )


class OwnershipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: int
    listing_site_id: int
    owner_user_id: int
    owner_site_id: int
    commission_rate: Decimal
    created_at: Optional[datetime] = None


class MerchantStats(BaseModel):
    total_sales: Decimal
    month_sales: Decimal
    product_count: int
    site_count: int
