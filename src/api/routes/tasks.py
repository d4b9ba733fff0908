"""
Task status and gallery endpoints.
"""

import uuid
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_current_user_id, get_db, get_kie_client, get_materializer
from src.api.schemas import CreationItem, CreationsResponse, ErrorResponse, TaskStatusResponse
from src.core.kie_client import KieClient
from src.db.models import GenerationTask
from src.services.generation_service import GenerationService
from src.services.reconciliation import TaskReconciler
from src.services.result_materializer import ResultMaterializer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tasks"])


def _iso(value):
    return value.isoformat() if value else None


@router.get(
    "/tasks/{task_id}/status",
    response_model=TaskStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_task_status(
    task_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    kie_client: KieClient = Depends(get_kie_client),
    materializer: ResultMaterializer = Depends(get_materializer),
) -> TaskStatusResponse:
    """
    Get the status of a generation task.

    Non-terminal tasks are reconciled against the provider on every call,
    so clients simply poll this endpoint every few seconds.
    """
    try:
        task: GenerationTask | None = await GenerationService(db, kie_client).get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        if task.user_id != user_id:
            raise HTTPException(status_code=403, detail="Access denied")

        task = await TaskReconciler(db, kie_client, materializer).poll(task)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[{task_id}] Status check failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get task status")

    return TaskStatusResponse(
        task_id=str(task.id),
        status=task.status,
        result_image_url=task.result_image_url,
        error_message=task.error_message,
        style=task.style,
        original_image_url=task.original_image_url,
        created_at=task.created_at.isoformat(),
        completed_at=_iso(task.completed_at),
    )


@router.get("/creations", response_model=CreationsResponse)
async def list_creations(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(50, ge=1, le=100),
) -> CreationsResponse:
    """List the authenticated user's portraits, newest first."""
    try:
        tasks = await GenerationService(db).list_user_creations(user_id, limit=limit)
    except Exception as e:
        logger.error(f"Failed to list creations for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list creations")
    return CreationsResponse(
        creations=[
            CreationItem(
                id=str(t.id),
                status=t.status,
                style=t.style,
                original_image_url=t.original_image_url,
                result_image_url=t.result_image_url,
                created_at=t.created_at.isoformat(),
                completed_at=_iso(t.completed_at),
            )
            for t in tasks
        ]
    )
