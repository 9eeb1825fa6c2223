"""Composition root: wires the stateless services together.

The gateway and notifier are long-lived and shared.  Everything that
touches the database is built per session from those shared pieces.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from splitpay.core.config import Settings, settings
from splitpay.services.ledger.store import LedgerStore
from splitpay.services.notifications import BaseNotifier, LogNotifier
from splitpay.services.processor.gateway import ProcessorGateway
from splitpay.services.reconciliation.engine import ReconciliationEngine
from splitpay.services.reconciliation.merchant_ledger import SqlMerchantLedger
from splitpay.services.settlement.orchestrator import SettlementOrchestrator
from splitpay.services.settlement.resolver import OwnershipResolver
from splitpay.services.storefront import Storefront


@dataclass
class ServiceContainer:
    config: Settings
    gateway: ProcessorGateway
    notifier: BaseNotifier

    def store(self, db: Session) -> LedgerStore:
        return LedgerStore(db)

    def resolver(self, db: Session) -> OwnershipResolver:
        return OwnershipResolver(self.store(db))

    def orchestrator(self, db: Session) -> SettlementOrchestrator:
        store = self.store(db)
        return SettlementOrchestrator(
            store=store,
            resolver=OwnershipResolver(store),
            gateway=self.gateway,
            storefront=Storefront(db),
            config=self.config,
        )

    def reconciliation(self, db: Session) -> ReconciliationEngine:
        return ReconciliationEngine(
            store=self.store(db),
            ledger=SqlMerchantLedger(db),
            storefront=Storefront(db),
            notifier=self.notifier,
            config=self.config,
        )


_container: Optional[ServiceContainer] = None


def build_container(config: Optional[Settings] = None) -> ServiceContainer:
    config = config or settings
    return ServiceContainer(
        config=config,
        gateway=ProcessorGateway(config),
        notifier=LogNotifier(),
    )


def get_container() -> ServiceContainer:
    """Process-wide container, built on first use."""
    global _container
    if _container is None:
        _container = build_container()
    return _container
