"""FastAPI application — main entry point."""

import structlog
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.infrastructure.database import engine, Base
from app.core.logging import configure_logging
from app.core.middleware import setup_middleware
from app.core.exceptions import AppError, global_exception_handler
from app.application.services.provider_dispatcher import SUPPORTED_PROVIDERS, canonical_tag

# Import all models so SQLAlchemy knows about them
from app.domain.models.user import User
from app.domain.models.product import Product
from app.domain.models.credit_grant import CreditGrant
from app.domain.models.usage_event import UsageEvent
from app.domain.models.fax_record import FaxRecord
from app.domain.models.webhook_event import WebhookEvent
from app.domain.models.transfer_record import TransferRecord

# Import routers
from app.interfaces.api.faxes import router as faxes_router
from app.interfaces.api.credits import router as credits_router
from app.interfaces.webhooks.carriers import router as carrier_webhooks_router
from app.interfaces.webhooks.billing import router as billing_webhooks_router

settings = get_settings()

# Configure logging immediately
configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown events."""
    logger.info("Starting SendFax backend", env=settings.ENVIRONMENT, provider=settings.FAX_PROVIDER)

    # Create DB tables (dev only, use migrations in production)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    if settings.SCHEDULER_ENABLED:
        from app.scheduler.jobs import start_scheduler
        start_scheduler()

    yield

    if settings.SCHEDULER_ENABLED:
        from app.scheduler.jobs import stop_scheduler
        stop_scheduler()
    logger.info("SendFax backend stopped")


app = FastAPI(
    title="SendFax — Fax dispatch and credits",
    description="API Backend — fax sending across carriers, page credits and webhook reconciliation",
    version="2.0.0",
    lifespan=lifespan,
)

# Setup Middleware (Correlation ID, Logging)
setup_middleware(app)

# Global Exception Handling
app.add_exception_handler(AppError, global_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(faxes_router)
app.include_router(credits_router)
app.include_router(carrier_webhooks_router)
app.include_router(billing_webhooks_router)


@app.get("/")
def root():
    return {
        "name": "SendFax backend",
        "version": "2.0.0",
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "currentApiProvider": canonical_tag(settings.FAX_PROVIDER) or settings.FAX_PROVIDER,
        "supportedApiProviders": SUPPORTED_PROVIDERS,
    }
