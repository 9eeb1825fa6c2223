"""Ownership Resolver: decides whether an order can be charged at all."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol

from splitpay.core.logging import get_logger
from splitpay.models.credential import MerchantCredential
from splitpay.models.ownership import ProductOwnership
from splitpay.services.ledger.store import LedgerStore

logger = get_logger(__name__)


class CartLine(Protocol):
    product_id: int
    name: str


@dataclass(frozen=True)
class ResolvedMerchant:
    ownership: ProductOwnership
    credentials: MerchantCredential


@dataclass
class ResolutionResult:
    valid: bool
    per_item: dict[int, ResolvedMerchant] = field(default_factory=dict)
    invalid_items: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.valid:
            return ""
        return (
            "The following products cannot be processed due to missing merchant "
            "configuration: " + ", ".join(self.invalid_items)
        )


class OwnershipResolver:
    """Maps each cart line to an owning merchant with usable credentials."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def resolve(self, items: Iterable[CartLine], listing_site_id: int) -> ResolutionResult:
        """Resolve every line against ownership on ``listing_site_id``.

        A line is invalid when it has no ownership row, or when the owner
        has no active credential with both a username and password.
        """
        result = ResolutionResult(valid=True)
        for item in items:
            ownership = self.store.get_ownership(item.product_id, listing_site_id)
            if ownership is None:
                result.invalid_items.append(item.name)
                continue

            cred = self.store.get_credentials(
                ownership.owner_user_id, ownership.owner_site_id
            )
            if cred is None or not cred.is_usable:
                result.invalid_items.append(item.name)
                continue

            result.per_item[item.product_id] = ResolvedMerchant(ownership, cred)

        result.valid = not result.invalid_items
        if not result.valid:
            logger.warning(
                "Unresolvable items on site %s: %s",
                listing_site_id,
                result.invalid_items,
            )
        return result
