"""
Repository layer: async CRUD operations for generation tasks and payments.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import GenerationTask, Payment, NON_TERMINAL_TASK_STATUSES


# ========================
# GENERATION TASKS
# ========================


async def create_generation_task(
    session: AsyncSession,
    *,
    task_id: uuid.UUID,
    user_id: uuid.UUID,
    kie_task_id: str,
    style: str,
    prompt: str,
    original_image_url: str,
    credits_used: int,
) -> GenerationTask:
    task = GenerationTask(
        id=task_id,
        user_id=user_id,
        kie_task_id=kie_task_id,
        status="pending",
        style=style,
        prompt=prompt,
        original_image_url=original_image_url,
        credits_used=credits_used,
    )
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def get_generation_task(
    session: AsyncSession, task_id: uuid.UUID
) -> Optional[GenerationTask]:
    result = await session.execute(
        select(GenerationTask).where(GenerationTask.id == task_id)
    )
    return result.scalar_one_or_none()


async def get_generation_task_by_kie_id(
    session: AsyncSession, kie_task_id: str
) -> Optional[GenerationTask]:
    result = await session.execute(
        select(GenerationTask).where(GenerationTask.kie_task_id == kie_task_id)
    )
    return result.scalar_one_or_none()


async def list_generation_tasks_for_user(
    session: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
) -> list[GenerationTask]:
    result = await session.execute(
        select(GenerationTask)
        .where(GenerationTask.user_id == user_id)
        .order_by(GenerationTask.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_task_processing(
    session: AsyncSession, task_id: uuid.UUID
) -> bool:
    """Move a task from pending to processing. Returns False if it was not pending."""
    result = await session.execute(
        update(GenerationTask)
        .where(GenerationTask.id == task_id, GenerationTask.status == "pending")
        .values(status="processing")
        .returning(GenerationTask.id)
    )
    changed = result.scalar_one_or_none() is not None
    await session.commit()
    return changed


async def finalize_task(
    session: AsyncSession,
    task_id: uuid.UUID,
    *,
    status: str,
    result_image_url: Optional[str] = None,
    kie_result_url: Optional[str] = None,
    error_message: Optional[str] = None,
) -> bool:
    """
    Move a task into a terminal state.

    The status precondition makes this a compare-and-set: only the first
    caller to reach a non-terminal row wins. Returns True for the winner.
    """
    if status not in ("success", "failed"):
        raise ValueError(f"Not a terminal status: {status}")

    result = await session.execute(
        update(GenerationTask)
        .where(
            GenerationTask.id == task_id,
            GenerationTask.status.in_(NON_TERMINAL_TASK_STATUSES),
        )
        .values(
            status=status,
            result_image_url=result_image_url,
            kie_result_url=kie_result_url,
            error_message=error_message,
            completed_at=datetime.now(timezone.utc),
        )
        .returning(GenerationTask.id)
    )
    won = result.scalar_one_or_none() is not None
    await session.commit()
    return won


# ========================
# PAYMENTS
# ========================


async def create_payment(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    stripe_session_id: str,
    amount: int,
    credits_granted: int,
    currency: str = "usd",
    description: Optional[str] = None,
) -> Payment:
    payment = Payment(
        user_id=user_id,
        stripe_session_id=stripe_session_id,
        amount=amount,
        currency=currency,
        status="pending",
        credits_granted=credits_granted,
        description=description,
    )
    session.add(payment)
    await session.commit()
    await session.refresh(payment)
    return payment


async def get_payment_by_session_id(
    session: AsyncSession, stripe_session_id: str
) -> Optional[Payment]:
    result = await session.execute(
        select(Payment).where(Payment.stripe_session_id == stripe_session_id)
    )
    return result.scalar_one_or_none()


async def list_payments_for_user(
    session: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
) -> list[Payment]:
    result = await session.execute(
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
