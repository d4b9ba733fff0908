"""
Health check endpoint.
"""

from fastapi import APIRouter, Depends

from src.api.deps import get_app_config
from src.api.schemas import HealthResponse
from src.core.config import AppConfig
from src.db.engine import get_session_factory

API_VERSION = "1.0.0"

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(config: AppConfig = Depends(get_app_config)) -> HealthResponse:
    """
    Check API health and configuration status.
    """
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        kie_configured=config.kie.validate(),
        stripe_configured=config.stripe.validate(),
        storage_configured=config.storage.validate(),
        database_configured=get_session_factory() is not None,
    )
