"""
Configuration endpoints.

Public endpoint that exposes non-sensitive application configuration.
"""

from fastapi import APIRouter, Depends

from src.api.deps import get_app_config
from src.api.schemas import PublicConfigResponse
from src.core.config import AppConfig

router = APIRouter(tags=["Configuration"])


@router.get("/config", response_model=PublicConfigResponse)
async def get_public_config(
    config: AppConfig = Depends(get_app_config),
) -> PublicConfigResponse:
    """
    Values the frontend needs before checkout: the Stripe publishable key,
    the credit pack price id and the cost of one generation.
    """
    return PublicConfigResponse(
        stripe_publishable_key=config.stripe.publishable_key,
        price_id=config.billing.price_id,
        credits_per_generation=config.billing.credits_per_generation,
    )
