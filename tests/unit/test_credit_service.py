"""Tests for CreditService: atomic balance updates plus ledger entries."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.db.models import CreditBalance, CreditTransaction
from src.services.credit_service import CreditService


def _result(scalar=None, scalar_or_none=None, rows=None):
    result = MagicMock()
    result.scalar_one.return_value = scalar
    result.scalar_one_or_none.return_value = scalar_or_none
    result.scalars.return_value.all.return_value = rows or []
    return result


@pytest.fixture
def service(mock_session):
    return CreditService(mock_session)


def _added_transactions(mock_session) -> list[CreditTransaction]:
    return [
        c.args[0] for c in mock_session.add.call_args_list
        if isinstance(c.args[0], CreditTransaction)
    ]


class TestGetBalance:
    @pytest.mark.asyncio
    async def test_creates_row_lazily_and_returns_balance(self, service, mock_session, user_id):
        row = CreditBalance(user_id=user_id, balance=40, total_earned=60, total_spent=20)
        mock_session.execute.side_effect = [_result(), _result(scalar=row)]

        balance = await service.get_balance(user_id)

        assert balance == 40
        # insert-if-missing, then select
        assert mock_session.execute.await_count == 2
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_user_gets_zero(self, service, mock_session, user_id):
        row = CreditBalance(user_id=user_id, balance=0, total_earned=0, total_spent=0)
        mock_session.execute.side_effect = [_result(), _result(scalar=row)]
        assert await service.get_balance(user_id) == 0

    @pytest.mark.asyncio
    async def test_get_balance_details_returns_row(self, service, mock_session, user_id):
        row = CreditBalance(user_id=user_id, balance=5, total_earned=25, total_spent=20)
        mock_session.execute.side_effect = [_result(), _result(scalar=row)]
        details = await service.get_balance_details(user_id)
        assert details.total_earned - details.total_spent == details.balance


class TestAddCredits:
    @pytest.mark.asyncio
    async def test_grants_and_records_transaction(self, service, mock_session, user_id):
        mock_session.execute.side_effect = [_result(), _result(scalar=200)]

        new_balance = await service.add_credits(
            user_id, 200, "Purchased 200 credits", reference_id="cs_test_1",
        )

        assert new_balance == 200
        [txn] = _added_transactions(mock_session)
        assert txn.type == "purchase"
        assert txn.amount == 200
        assert txn.balance_after == 200
        assert txn.reference_id == "cs_test_1"
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_false_leaves_transaction_open(self, service, mock_session, user_id):
        mock_session.execute.side_effect = [_result(), _result(scalar=200)]
        await service.add_credits(user_id, 200, "Purchased", commit=False)
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bonus_type(self, service, mock_session, user_id):
        mock_session.execute.side_effect = [_result(), _result(scalar=10)]
        await service.add_credits(user_id, 10, "Welcome bonus", transaction_type="bonus")
        [txn] = _added_transactions(mock_session)
        assert txn.type == "bonus"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_rejects_non_positive_amount(self, service, mock_session, user_id, amount):
        with pytest.raises(ValueError):
            await service.add_credits(user_id, amount, "nope")
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_usage_as_grant_type(self, service, mock_session, user_id):
        with pytest.raises(ValueError):
            await service.add_credits(user_id, 5, "nope", transaction_type="usage")


class TestUseCredits:
    @pytest.mark.asyncio
    async def test_debits_when_balance_covers_amount(self, service, mock_session, user_id):
        mock_session.execute.side_effect = [_result(), _result(scalar_or_none=20)]

        ok = await service.use_credits(user_id, 20, "Portrait generation", reference_id="task-1")

        assert ok is True
        [txn] = _added_transactions(mock_session)
        assert txn.type == "usage"
        assert txn.amount == -20
        assert txn.balance_after == 20
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_insufficient_balance_has_no_side_effects(self, service, mock_session, user_id):
        mock_session.execute.side_effect = [_result(), _result(scalar_or_none=None)]

        ok = await service.use_credits(user_id, 20, "Portrait generation")

        assert ok is False
        assert _added_transactions(mock_session) == []
        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_debit_is_a_single_conditional_update(self, service, mock_session, user_id):
        mock_session.execute.side_effect = [_result(), _result(scalar_or_none=0)]
        await service.use_credits(user_id, 20, "Portrait generation")

        update_stmt = mock_session.execute.await_args_list[1].args[0]
        sql = str(update_stmt.compile(dialect=postgresql.dialect()))
        assert sql.startswith("UPDATE credit_balances")
        assert "credit_balances.balance >=" in sql
        assert "RETURNING credit_balances.balance" in sql

    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self, service, user_id):
        with pytest.raises(ValueError):
            await service.use_credits(user_id, 0, "nope")


class TestRefundCredits:
    @pytest.mark.asyncio
    async def test_records_refund_transaction(self, service, mock_session, user_id):
        mock_session.execute.side_effect = [_result(), _result(scalar=40)]

        balance = await service.refund_credits(user_id, 20, "Refund", reference_id="task-1")

        assert balance == 40
        [txn] = _added_transactions(mock_session)
        assert txn.type == "refund"
        assert txn.amount == 20
        assert txn.reference_id == "task-1"


class TestHistory:
    @pytest.mark.asyncio
    async def test_get_transactions(self, service, mock_session, user_id):
        rows = [MagicMock(), MagicMock()]
        mock_session.execute.return_value = _result(rows=rows)
        assert await service.get_transactions(user_id, limit=10) == rows

    @pytest.mark.asyncio
    async def test_transactions_ordered_by_insertion_sequence(self, service, mock_session, user_id):
        mock_session.execute.return_value = _result(rows=[])
        await service.get_transactions(user_id)

        stmt = mock_session.execute.await_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ORDER BY credit_transactions.seq DESC" in sql

    @pytest.mark.asyncio
    async def test_get_payments(self, service, mock_session, user_id):
        rows = [MagicMock()]
        mock_session.execute.return_value = _result(rows=rows)
        assert await service.get_payments(user_id) == rows
