"""Shared FastAPI dependencies: services and webhook authentication."""

from __future__ import annotations

import hmac
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from splitpay.core.database import SessionLocal, get_db
from splitpay.core.logging import get_logger
from splitpay.services.container import ServiceContainer, get_container
from splitpay.services.ledger.store import LedgerStore
from splitpay.services.reconciliation.engine import ReconciliationEngine
from splitpay.services.settlement.orchestrator import SettlementOrchestrator

logger = get_logger(__name__)


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that outlives the request (background tasks)."""
    return SessionLocal


def get_store(db: Session = Depends(get_db)) -> LedgerStore:
    return LedgerStore(db)


def get_orchestrator(
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> SettlementOrchestrator:
    return container.orchestrator(db)


def get_reconciliation(
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> ReconciliationEngine:
    return container.reconciliation(db)


def verify_webhook_token(
    authorization: Optional[str] = Header(None),
    key: Optional[str] = Query(None, description="Legacy query-string secret"),
    container: ServiceContainer = Depends(get_container),
) -> None:
    """Accept ``Authorization: Bearer <secret>`` or the legacy ``?key=``.

    An installation without a configured secret rejects every call.
    """
    expected = container.config.webhook_key
    supplied = None
    if authorization and authorization.startswith("Bearer "):
        supplied = authorization[len("Bearer "):]
    elif key:
        supplied = key

    if not expected or supplied is None:
        logger.warning("Webhook call rejected: missing credentials")
        raise HTTPException(status_code=401, detail="Invalid webhook key")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        logger.warning("Webhook call rejected: bad key")
        raise HTTPException(status_code=401, detail="Invalid webhook key")
