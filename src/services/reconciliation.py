"""
Task reconciliation: advances generation tasks from observed remote state.

Two drivers call into this module: the client's status poll and the
provider's completion callback. Either may run any number of times, in any
order, concurrently. Terminal writes go through ``repo.finalize_task``,
whose status precondition lets exactly one caller win; everyone else
re-reads the row and reports the winner's outcome.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.kie_client import (
    KieAPIError,
    KieClient,
    RemoteTaskStatus,
    parse_envelope,
    parse_task_record,
    to_remote_status,
)
from src.db import repository as repo
from src.db.models import GenerationTask
from src.services.result_materializer import MaterializationError, ResultMaterializer

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Generation failed"
SAVE_FAILED_MESSAGE = "Failed to save result image"


class TaskReconciler:

    def __init__(
        self,
        session: AsyncSession,
        kie_client: KieClient,
        materializer: ResultMaterializer,
    ):
        self._session = session
        self._kie = kie_client
        self._materializer = materializer

    async def poll(self, task: GenerationTask) -> GenerationTask:
        """
        Bring a task up to date with the provider and return it.

        Terminal tasks are returned as stored without contacting the
        provider. Provider errors leave the task untouched.
        """
        if task.is_terminal or not task.kie_task_id:
            return task

        try:
            remote = await self._kie.get_task_status(task.kie_task_id)
        except KieAPIError as e:
            logger.warning(f"[{task.id}] Failed to query Kie.AI status: {e}")
            return task

        return await self._apply(task, remote)

    async def handle_callback(self, payload: Any) -> Optional[GenerationTask]:
        """
        Apply a provider completion notification.

        Raises KieAPIError for payloads that are not a valid job record.
        Returns None when no local task matches the remote id.
        """
        remote = to_remote_status(parse_task_record(parse_envelope(payload)))

        task = await repo.get_generation_task_by_kie_id(self._session, remote.kie_task_id)
        if task is None:
            logger.warning(f"Callback for unknown Kie.AI task {remote.kie_task_id}, ignoring")
            return None

        if task.is_terminal:
            logger.info(f"[{task.id}] Duplicate callback, task already {task.status}")
            return task

        if remote.state == "waiting":
            logger.info(f"[{task.id}] Callback without a final result, ignoring")
            return task

        return await self._apply(task, remote)

    async def _apply(self, task: GenerationTask, remote: RemoteTaskStatus) -> GenerationTask:
        if remote.state == "waiting":
            if task.status == "pending":
                if await repo.mark_task_processing(self._session, task.id):
                    logger.info(f"[{task.id}] Task is processing")
                await self._session.refresh(task)
            return task

        if remote.state == "fail":
            await self._finalize(
                task,
                status="failed",
                error_message=remote.error_message or DEFAULT_FAILURE_MESSAGE,
            )
            return task

        # Another request may have finished the task while we were asking
        # the provider; skip the download in that case.
        await self._session.refresh(task)
        if task.is_terminal:
            return task

        try:
            durable_url = await self._materializer.save_result_image(remote.result_url)
        except MaterializationError as e:
            logger.error(f"[{task.id}] {SAVE_FAILED_MESSAGE}: {e}")
            await self._finalize(
                task,
                status="failed",
                kie_result_url=remote.result_url,
                error_message=SAVE_FAILED_MESSAGE,
            )
            return task

        won = await self._finalize(
            task,
            status="success",
            result_image_url=durable_url,
            kie_result_url=remote.result_url,
        )
        if not won:
            await self._materializer.discard(durable_url)
        return task

    async def _finalize(self, task: GenerationTask, **values) -> bool:
        won = await repo.finalize_task(self._session, task.id, **values)
        if won:
            logger.info(f"[{task.id}] Task finished: {values['status']}")
        else:
            logger.info(f"[{task.id}] Task already finished by another request")
        await self._session.refresh(task)
        return won
