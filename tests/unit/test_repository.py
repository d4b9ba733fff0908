"""Tests for src/db/repository.py: task and payment persistence."""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.db import repository as repo
from src.db.models import GenerationTask, Payment


def _returning(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _sql(mock_session) -> str:
    stmt = mock_session.execute.await_args.args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestCreateGenerationTask:
    async def test_adds_pending_task(self, mock_session, user_id):
        task_id = uuid.uuid4()
        task = await repo.create_generation_task(
            mock_session,
            task_id=task_id,
            user_id=user_id,
            kie_task_id="kie_1",
            style="reindeer",
            prompt="prompt",
            original_image_url="https://cdn.example.com/uploads/x.png",
            credits_used=20,
        )
        assert isinstance(task, GenerationTask)
        assert task.id == task_id
        assert task.status == "pending"
        assert task.completed_at is None
        mock_session.add.assert_called_once_with(task)
        mock_session.commit.assert_awaited_once()


class TestMarkTaskProcessing:
    async def test_only_moves_pending_rows(self, mock_session):
        mock_session.execute.return_value = _returning(uuid.uuid4())
        assert await repo.mark_task_processing(mock_session, uuid.uuid4()) is True
        sql = _sql(mock_session)
        assert "generation_tasks.status = " in sql
        assert "RETURNING generation_tasks.id" in sql

    async def test_returns_false_when_not_pending(self, mock_session):
        mock_session.execute.return_value = _returning(None)
        assert await repo.mark_task_processing(mock_session, uuid.uuid4()) is False


class TestFinalizeTask:
    async def test_winner_gets_true(self, mock_session):
        mock_session.execute.return_value = _returning(uuid.uuid4())
        won = await repo.finalize_task(
            mock_session, uuid.uuid4(), status="success",
            result_image_url="https://cdn.example.com/generated/a.png",
            kie_result_url="https://tempfile.kie.ai/a.png",
        )
        assert won is True
        sql = _sql(mock_session)
        assert "completed_at=" in sql
        assert "generation_tasks.status IN" in sql
        mock_session.commit.assert_awaited_once()

    async def test_loser_gets_false(self, mock_session):
        mock_session.execute.return_value = _returning(None)
        won = await repo.finalize_task(mock_session, uuid.uuid4(), status="failed", error_message="x")
        assert won is False

    @pytest.mark.parametrize("status", ["pending", "processing", "done"])
    async def test_rejects_non_terminal_status(self, mock_session, status):
        with pytest.raises(ValueError):
            await repo.finalize_task(mock_session, uuid.uuid4(), status=status)
        mock_session.execute.assert_not_awaited()


class TestPayments:
    async def test_create_payment_is_pending(self, mock_session, user_id):
        payment = await repo.create_payment(
            mock_session,
            user_id=user_id,
            stripe_session_id="cs_test_1",
            amount=2000,
            credits_granted=200,
            description="Purchase 200 credits",
        )
        assert isinstance(payment, Payment)
        assert payment.status == "pending"
        assert payment.currency == "usd"
        mock_session.commit.assert_awaited_once()

    async def test_get_payment_by_session_id(self, mock_session, make_payment):
        payment = make_payment()
        mock_session.execute.return_value = _returning(payment)
        assert await repo.get_payment_by_session_id(mock_session, "cs_test_123") is payment


class TestModels:
    def test_is_terminal(self, make_task):
        assert make_task(status="pending").is_terminal is False
        assert make_task(status="processing").is_terminal is False
        assert make_task(status="success").is_terminal is True
        assert make_task(status="failed").is_terminal is True
