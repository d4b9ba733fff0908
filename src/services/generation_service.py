"""
Generation job store: submits jobs to Kie.AI and records them locally.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.kie_client import KieClient
from src.db import repository as repo
from src.db.models import GenerationTask

logger = logging.getLogger(__name__)


@dataclass
class CreatedTask:
    task_id: uuid.UUID
    kie_task_id: str


class GenerationService:

    def __init__(self, session: AsyncSession, kie_client: Optional[KieClient] = None):
        self._session = session
        self._kie = kie_client

    async def create_task(
        self,
        user_id: uuid.UUID,
        image_url: str,
        prompt: str,
        style: str,
        credits_used: int,
        task_id: Optional[uuid.UUID] = None,
    ) -> CreatedTask:
        """
        Submit the job remotely, then persist it as ``pending``.

        A failed submission raises before anything is written, so there is
        never a local row pointing at a job the provider does not know.
        Callers may pass ``task_id`` to reference the task before it exists.
        """
        if self._kie is None:
            raise RuntimeError("GenerationService needs a KieClient to submit jobs")
        kie_task_id = await self._kie.create_task(prompt=prompt, image_url=image_url)

        task_id = task_id or uuid.uuid4()
        await repo.create_generation_task(
            self._session,
            task_id=task_id,
            user_id=user_id,
            kie_task_id=kie_task_id,
            style=style,
            prompt=prompt,
            original_image_url=image_url,
            credits_used=credits_used,
        )
        logger.info(f"[{task_id}] Generation task created: kie_task_id={kie_task_id}, style={style}")
        return CreatedTask(task_id=task_id, kie_task_id=kie_task_id)

    async def get_task(self, task_id: uuid.UUID) -> Optional[GenerationTask]:
        return await repo.get_generation_task(self._session, task_id)

    async def get_task_by_remote_id(self, kie_task_id: str) -> Optional[GenerationTask]:
        return await repo.get_generation_task_by_kie_id(self._session, kie_task_id)

    async def list_user_creations(
        self, user_id: uuid.UUID, limit: int = 50
    ) -> list[GenerationTask]:
        return await repo.list_generation_tasks_for_user(self._session, user_id, limit=limit)
