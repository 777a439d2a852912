"""
WhatsApp Quote Bot Backend.

ARCHITECTURE:
- WhatsApp Cloud API webhook: customer messages in, replies out
- Flow controller: step state machine with entity reconciliation and step bypass
- SQL database: conversations, delivery ledger, catalog, quotes
- Pricing API: tier pricing for a complete order

DELIVERY MODEL:
- Webhook always acknowledges with 200; work happens in background tasks
- Delivery ledger guarantees one processing pass and one reply per message id
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.agent.maintenance import start_maintenance, stop_maintenance
from app.api.deps import close_services, get_services
from app.api.routes import webhook
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.db.init_db import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Configure logging and check credentials (fatal in production)
    2. Initialize database tables
    3. Build the service graph and start the maintenance loop

    Shutdown:
    1. Stop the maintenance loop
    2. Close HTTP clients
    """
    configure_logging()
    settings.validate()
    try:
        print("[*] Initializing database...")
        init_db()
        print("[OK] Database initialized")

        services = get_services()
        print("[*] Starting maintenance loop...")
        start_maintenance(services.store, services.ledger)
        print("[OK] Quote bot ready")
    except Exception as e:
        print(f"[ERROR] Startup error: {e}")
        import traceback
        traceback.print_exc()

    yield

    try:
        stop_maintenance()
        await close_services()
    except Exception as e:
        print(f"[ERROR] Shutdown error: {e}")


app = FastAPI(
    title="WhatsApp Quote Bot API",
    description="Conversational quoting over WhatsApp: catalog, step flow, pricing, PDF quotes.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(webhook.router, prefix="/webhook", tags=["webhook"])


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
