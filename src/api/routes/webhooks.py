"""
Inbound notifications: Stripe webhooks and Kie.AI job callbacks.

Both senders retry on non-2xx, and duplicate deliveries are no-ops in the
services, so every handled delivery is acknowledged with 200.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.requests import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_app_config, get_db, get_kie_client, get_materializer
from src.api.schemas import ErrorResponse, ReceivedResponse
from src.core.config import AppConfig
from src.core.kie_client import KieAPIError, KieClient
from src.services.payment_service import (
    CheckoutService,
    StripeConfigurationError,
    WebhookSignatureError,
)
from src.services.reconciliation import TaskReconciler
from src.services.result_materializer import ResultMaterializer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post(
    "/webhook",
    response_model=ReceivedResponse,
    responses={400: {"model": ErrorResponse}},
)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    config: AppConfig = Depends(get_app_config),
) -> ReceivedResponse:
    """Stripe event receiver. The raw body is needed for signature checks."""
    raw_body = await request.body()
    service = CheckoutService(db, config.stripe, config.billing)
    try:
        await service.handle_webhook(raw_body, request.headers.get("stripe-signature"))
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except StripeConfigurationError:
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not set")
        raise HTTPException(status_code=400, detail="Webhook not configured")
    except Exception as e:
        logger.error(f"Stripe webhook processing failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return ReceivedResponse()


@router.post(
    "/callback",
    response_model=ReceivedResponse,
    responses={400: {"model": ErrorResponse}},
)
async def kie_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    kie_client: KieClient = Depends(get_kie_client),
    materializer: ResultMaterializer = Depends(get_materializer),
) -> ReceivedResponse:
    """Kie.AI job completion callback."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        await TaskReconciler(db, kie_client, materializer).handle_callback(payload)
    except KieAPIError as e:
        logger.warning(f"Rejected Kie.AI callback: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Kie.AI callback processing failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Callback processing failed")

    return ReceivedResponse()
