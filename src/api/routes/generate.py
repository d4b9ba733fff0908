"""
Portrait generation endpoints.
"""

import uuid
import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.requests import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_app_config, get_current_user_id, get_db, get_kie_client
from src.api.rate_limit import GENERATE_LIMIT, limiter
from src.api.schemas import (
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    InsufficientCreditsResponse,
)
from src.core.config import AppConfig
from src.core.kie_client import KieClient
from src.services.credit_service import CreditService
from src.services.generation_service import GenerationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Generation"])


@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses={
        400: {"model": ErrorResponse},
        402: {"model": InsufficientCreditsResponse},
        502: {"model": ErrorResponse},
    },
)
@limiter.limit(GENERATE_LIMIT)
async def generate_portrait(
    request: Request,
    body: GenerateRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    config: AppConfig = Depends(get_app_config),
    kie_client: KieClient = Depends(get_kie_client),
) -> GenerateResponse:
    """
    Debit credits and start a portrait generation job.

    Returns a task ID to track progress. Use `/tasks/{taskId}/status` to poll
    until the task reaches `success` or `failed`.
    """
    missing = [
        name
        for name, value in (("imageUrl", body.image_url), ("prompt", body.prompt), ("style", body.style))
        if not value or not value.strip()
    ]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

    if not kie_client.config.validate():
        raise HTTPException(status_code=500, detail="Image generation is not configured")

    cost = config.billing.credits_per_generation
    task_id = uuid.uuid4()
    credit_service = CreditService(db)

    try:
        debited = await credit_service.use_credits(
            user_id, cost, f"Portrait generation: {body.style}", reference_id=str(task_id),
        )
        if not debited:
            current = await credit_service.get_balance(user_id)
            raise HTTPException(
                status_code=402,
                detail={"error": "Insufficient credits", "required": cost, "current": current},
            )

        try:
            created = await GenerationService(db, kie_client).create_task(
                user_id=user_id,
                image_url=body.image_url,
                prompt=body.prompt,
                style=body.style,
                credits_used=cost,
                task_id=task_id,
            )
        except Exception as e:
            logger.error(f"[{task_id}] Failed to start generation for user {user_id}: {e}", exc_info=True)
            await db.rollback()
            await credit_service.refund_credits(
                user_id, cost, "Refund: generation could not be started", reference_id=str(task_id),
            )
            raise HTTPException(
                status_code=502, detail="Failed to start generation. Your credits were refunded.",
            )

        return GenerateResponse(
            task_id=str(created.task_id),
            remote_task_id=created.kie_task_id,
            credits_used=cost,
            message="Generation started. Use /tasks/{taskId}/status to track progress.",
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[{task_id}] Generation request failed for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Generation request failed. Please try again.")
