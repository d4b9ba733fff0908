"""
FastAPI application for the Pet Holiday Portrait API.

Run with: python main.py --reload
"""

import os
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import ApiKeyMiddleware
from src.api.rate_limit import limiter
from src.api.routes import billing, config, generate, health, tasks, upload, webhooks
from src.core.config import AppConfig
from src.core.kie_client import KieClient
from src.core.logging_config import (
    configure_logging,
    flush_cloudwatch_logging,
    setup_cloudwatch_logging,
)
from src.core.storage import R2Storage
from src.db.engine import init_db, close_db
from src.services.result_materializer import ResultMaterializer

configure_logging()
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]
DEFAULT_ALLOWED_HOSTS = ["localhost", "127.0.0.1"]


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Application starting up...")

    # CloudWatch logging (sends pipeline logs only, opt-in via CLOUDWATCH_ENABLED=true)
    setup_cloudwatch_logging()

    app_config = AppConfig()
    app.state.config = app_config

    if app_config.kie.validate():
        logger.info("Kie.AI API key configured")
    else:
        logger.warning("No Kie.AI API key found - generation disabled")
    if not app_config.kie.callback_url:
        logger.warning("PUBLIC_BASE_URL not set - relying on status polling only")

    if app_config.stripe.validate():
        logger.info("Stripe configured")
    else:
        logger.warning("Stripe not configured - checkout disabled")

    http_client = httpx.AsyncClient(timeout=app_config.kie.timeout)
    app.state.kie_client = KieClient(app_config.kie, client=http_client)

    if app_config.storage.validate():
        app.state.storage = R2Storage.from_config(app_config.storage)
        logger.info("Cloudflare R2 storage configured")
    else:
        app.state.storage = None
        logger.warning("R2 storage not configured - uploads and results will fail")
    app.state.materializer = ResultMaterializer(app.state.storage, http_client)

    await init_db()

    yield

    # Shutdown: cleanup
    await http_client.aclose()
    await close_db()
    logger.info("Application shutting down...")
    flush_cloudwatch_logging()


app = FastAPI(
    title="Pet Holiday Portrait API",
    description="""
Turn a pet photo into a holiday portrait.

## Workflow
1. **POST** `/api/v1/upload` - Upload a pet photo, get its public URL
2. **POST** `/api/v1/generate` - Spend credits and start a generation task
3. **GET** `/api/v1/tasks/{taskId}/status` - Poll until `success` or `failed`
4. **GET** `/api/v1/creations` - Browse finished portraits

## Credits
- **GET** `/api/v1/billing` - Balance, payments and ledger
- **POST** `/api/v1/checkout` - Buy a credit pack via Stripe Checkout
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Shared-secret check for traffic coming through the gateway
app.add_middleware(ApiKeyMiddleware, api_key=AppConfig().api_secret_key)

# Reject requests with unexpected Host headers
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_env_list("ALLOWED_HOSTS", DEFAULT_ALLOWED_HOSTS),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-User-Id", "X-User-Email", "X-Api-Key"],
)

# Include routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(config.router, prefix="/api/v1")
app.include_router(upload.router, prefix="/api/v1")
app.include_router(generate.router, prefix="/api/v1")
app.include_router(tasks.router, prefix="/api/v1")
app.include_router(billing.router, prefix="/api/v1")
app.include_router(webhooks.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root():
    """Service banner with documentation links."""
    return {
        "message": "Pet Holiday Portrait API",
        "docs": "/docs",
        "redoc": "/redoc",
    }
