"""Subscriber Reconciliation Engine - Main Application."""

import logging.config

from fastapi import FastAPI

from app.api.routes import action_items, sync
from app.core.config import settings
from app.core.database import Base, engine
from app.core.logging import setup_logging
from app.core.logging_config import LOGGING_CONFIG

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Sync",
        "description": (
            "Run a reconciliation between the source subscriber tables and the "
            "vendor contract report, inline or as a background job, and "
            "retrieve the resulting sync reports."
        ),
    },
    {
        "name": "Action Items",
        "description": (
            "Query the action items produced by sync runs (create, remove, "
            "suspend, unsuspend, cancel, cancel_contract, update_reference), "
            "get summary statistics and update their status."
        ),
    },
]


app = FastAPI(
    title="Subscriber Reconciliation Engine",
    description=(
        "## Source / Vendor Subscriber Sync API\n\n"
        "This service pulls the vendor's contract report page by page over "
        "several concurrent workers, compares it with the subscribers recorded "
        "in the source database, and records the actions needed to bring the "
        "vendor back in line.\n\n"
        "### Actions Produced\n"
        "- `create` - Billed through the vendor but unknown to it\n"
        "- `remove` - Known to the vendor but gone from the source\n"
        "- `cancel_contract` - Payment method changed, vendor contract still active\n"
        "- `update_reference` - Vendor customer lacks its identifier\n"
        "- `suspend` / `cancel` - Collections at or above the threshold\n"
        "- `unsuspend` - No collections and no unpaid invoices\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Run a sync\n"
        'curl -X POST /api/v1/sync/run -H "Content-Type: application/json" '
        "-d '{\"worker_count\": 3}'\n\n"
        "# 2. Inspect the latest report\n"
        "curl /api/v1/sync/reports/latest\n\n"
        "# 3. List pending suspensions\n"
        "curl '/api/v1/action-items?action=suspend&status=pending'\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    license_info={
        "name": "MIT",
    },
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(sync.router, prefix="/api/v1/sync", tags=["Sync"])
app.include_router(action_items.router, prefix="/api/v1", tags=["Action Items"])

logger.info("Subscriber Reconciler API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    """
    return {"status": "healthy", "service": "subscriber-reconciler"}
