"""SplitPay multi-merchant settlement service - Main Application."""

import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI

from splitpay.api.routes import checkout, merchants, reconciliation, webhooks
from splitpay.core.config import settings
from splitpay.core.database import Base, SessionLocal, engine
from splitpay.core.logging import setup_logging
from splitpay.core.logging_config import LOGGING_CONFIG
from splitpay.services.container import get_container
from splitpay.services.reconciliation.scheduler import SyncScheduler

import splitpay.models  # noqa: F401  (registers every table on Base.metadata)

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = SyncScheduler(SessionLocal, get_container())
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown()


# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Checkout",
        "description": (
            "Validate a cart against product ownership, settle an order across "
            "every owning merchant's processor account, and refund orders."
        ),
    },
    {
        "name": "Merchants",
        "description": (
            "Manage merchant processor credentials (write-only secrets), test "
            "them against the processor, and assign product ownership."
        ),
    },
    {
        "name": "Reconciliation",
        "description": (
            "Replicate settled sales into merchant ledgers, run or schedule sync "
            "jobs, and read sales statistics."
        ),
    },
    {
        "name": "Webhooks",
        "description": (
            "Token-authenticated sale, refund, status and test hooks for remote "
            "network sites, plus the legacy form-encoded endpoint."
        ),
    },
]


app = FastAPI(
    title="SplitPay Settlement Service",
    description=(
        "## Multi-Merchant Split Payments\n\n"
        "One customer checkout is split per line item across the processor "
        "accounts of the merchants who own the products. Either every line "
        "settles or every captured charge is voided.\n\n"
        "Settled sales are then replicated into each merchant's own ledger "
        "by an idempotent, retrying sync.\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Register a merchant and assign a product\n"
        'curl -X PUT /api/v1/merchants/credentials -d \'{"user_id":7,"site_id":3,'
        '"username":"...","password":"..."}\'\n'
        'curl -X PUT /api/v1/merchants/ownership -d \'{"product_id":101,'
        '"owner_user_id":7,"owner_site_id":3,"commission_rate":"10"}\'\n\n'
        "# 2. Settle an order\n"
        "curl -X POST /api/v1/checkout/orders/1001/settle -d '{...card fields...}'\n\n"
        "# 3. Sync to merchant ledgers\n"
        "curl -X POST /api/v1/reconciliation/sync\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(checkout.router, prefix="/api/v1/checkout", tags=["Checkout"])
app.include_router(merchants.router, prefix="/api/v1/merchants", tags=["Merchants"])
app.include_router(
    reconciliation.router, prefix="/api/v1/reconciliation", tags=["Reconciliation"]
)
app.include_router(webhooks.router, prefix="/webhook", tags=["Webhooks"])

logger.info("SplitPay API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    Useful for load balancers and monitoring systems.
    """
    return {"status": "healthy", "service": "splitpay"}
