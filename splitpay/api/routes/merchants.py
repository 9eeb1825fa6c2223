"""Merchant administration: processor credentials and product ownership."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from splitpay.api.dependencies import get_store
from splitpay.core.logging import get_logger
from splitpay.models.credential import MerchantCredential
from splitpay.models.ownership import ProductOwnership
from splitpay.schemas.credential import (
    CredentialResponse,
    CredentialTestAllResponse,
    CredentialTestRequest,
    CredentialTestResponse,
    CredentialUpsert,
    MerchantStats,
    OwnershipResponse,
    OwnershipSet,
)
from splitpay.services.container import ServiceContainer, get_container
from splitpay.services.ledger.store import LedgerStore

logger = get_logger(__name__)

router = APIRouter()


# ── Credentials ──────────────────────────────────────────────────────


@router.put("/credentials", response_model=CredentialResponse)
def save_credentials(
    body: CredentialUpsert,
    store: LedgerStore = Depends(get_store),
) -> MerchantCredential:
    """Create or replace a merchant's processor credentials."""
    return store.save_credentials(
        user_id=body.user_id,
        site_id=body.site_id,
        username=body.username,
        password=body.password.get_secret_value(),
        api_key=body.api_key.get_secret_value() if body.api_key else None,
        is_active=body.is_active,
    )


@router.get("/credentials", response_model=List[CredentialResponse])
def list_credentials(store: LedgerStore = Depends(get_store)) -> list[MerchantCredential]:
    """List active credentials.  Secrets are never returned."""
    return store.list_active_credentials()


@router.get("/credentials/{user_id}/{site_id}", response_model=CredentialResponse)
def get_credentials(
    user_id: int,
    site_id: int,
    store: LedgerStore = Depends(get_store),
) -> MerchantCredential:
    cred = store.get_credentials(user_id, site_id, active_only=False)
    if cred is None:
        raise HTTPException(status_code=404, detail="Credentials not found")
    return cred


@router.post("/credentials/{user_id}/{site_id}/deactivate")
def deactivate_credentials(
    user_id: int,
    site_id: int,
    store: LedgerStore = Depends(get_store),
):
    if not store.deactivate_credentials(user_id, site_id):
        raise HTTPException(status_code=404, detail="Credentials not found")
    return {"user_id": user_id, "site_id": site_id, "is_active": False}


@router.delete("/credentials/{user_id}/{site_id}", status_code=204)
def delete_credentials(
    user_id: int,
    site_id: int,
    store: LedgerStore = Depends(get_store),
) -> None:
    if not store.delete_credentials(user_id, site_id):
        raise HTTPException(status_code=404, detail="Credentials not found")


@router.post("/credentials/test", response_model=CredentialTestResponse)
def test_credentials(
    body: CredentialTestRequest,
    container: ServiceContainer = Depends(get_container),
) -> CredentialTestResponse:
    """Check credentials with a $1.00 authorization on the test card."""
    valid = container.gateway.test_credentials(
        body.username,
        body.password.get_secret_value(),
        body.api_key.get_secret_value() if body.api_key else None,
    )
    message = (
        "Credentials are valid!"
        if valid
        else "Invalid credentials. Please check your username and password."
    )
    return CredentialTestResponse(valid=valid, message=message)


@router.post("/credentials/test-all", response_model=CredentialTestAllResponse)
def test_all_credentials(
    store: LedgerStore = Depends(get_store),
    container: ServiceContainer = Depends(get_container),
) -> CredentialTestAllResponse:
    """Re-test every active credential against the processor."""
    creds = store.list_active_credentials()
    invalid = []
    for cred in creds:
        ok = container.gateway.test_credentials(
            cred.processor_username, cred.processor_password, cred.processor_api_key
        )
        if not ok:
            invalid.append({"user_id": cred.user_id, "site_id": cred.site_id})
    logger.info("Credential check: %d tested, %d invalid", len(creds), len(invalid))
    return CredentialTestAllResponse(
        tested=len(creds), valid=len(creds) - len(invalid), invalid=invalid
    )


@router.get("/{user_id}/stats", response_model=MerchantStats)
def merchant_stats(user_id: int, store: LedgerStore = Depends(get_store)) -> dict:
    return store.merchant_sales_stats(user_id)


# ── Product ownership ────────────────────────────────────────────────


@router.put("/ownership", response_model=OwnershipResponse)
def set_ownership(
    body: OwnershipSet,
    store: LedgerStore = Depends(get_store),
    container: ServiceContainer = Depends(get_container),
) -> ProductOwnership:
    """Assign a product on a listing site to its owning merchant."""
    return store.set_ownership(
        product_id=body.product_id,
        listing_site_id=body.listing_site_id or container.config.listing_site_id,
        owner_user_id=body.owner_user_id,
        owner_site_id=body.owner_site_id,
        commission_rate=body.commission_rate,
    )


@router.get("/ownership", response_model=List[OwnershipResponse])
def list_ownership(
    owner_user_id: Optional[int] = Query(None),
    store: LedgerStore = Depends(get_store),
) -> list[ProductOwnership]:
    return store.list_ownership(owner_user_id)


@router.get("/ownership/{product_id}", response_model=OwnershipResponse)
def get_ownership(
    product_id: int,
    listing_site_id: Optional[int] = Query(None),
    store: LedgerStore = Depends(get_store),
    container: ServiceContainer = Depends(get_container),
) -> ProductOwnership:
    ownership = store.get_ownership(
        product_id, listing_site_id or container.config.listing_site_id
    )
    if ownership is None:
        raise HTTPException(status_code=404, detail="Ownership not found")
    return ownership


@router.delete("/ownership/{product_id}", status_code=204)
def remove_ownership(
    product_id: int,
    listing_site_id: Optional[int] = Query(None),
    store: LedgerStore = Depends(get_store),
    container: ServiceContainer = Depends(get_container),
) -> None:
    removed = store.remove_ownership(
        product_id, listing_site_id or container.config.listing_site_id
    )
    if not removed:
        raise HTTPException(status_code=404, detail="Ownership not found")
