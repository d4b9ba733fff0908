"""
Credit ledger service.

Balances live in one row per user; every change is a single conditional
UPDATE ... RETURNING on that row plus an appended CreditTransaction, inside
one database transaction. PostgreSQL's row lock on the UPDATE serializes
concurrent changes for the same user, and the ``balance >= amount``
predicate is re-evaluated after the lock is acquired, so two debits can
never both succeed against one sufficient balance.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.db import repository as repo
from src.db.models import CreditBalance, CreditTransaction, Payment

logger = logging.getLogger(__name__)

GRANT_TYPES = frozenset({"purchase", "bonus", "refund"})


class CreditService:

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _ensure_balance_row(self, user_id: uuid.UUID) -> None:
        await self._session.execute(
            pg_insert(CreditBalance)
            .values(
                id=uuid.uuid4(),
                user_id=user_id,
                balance=0,
                total_earned=0,
                total_spent=0,
            )
            .on_conflict_do_nothing(index_elements=[CreditBalance.user_id])
        )

    async def get_balance_details(self, user_id: uuid.UUID) -> CreditBalance:
        """Return the balance row, creating a zeroed one on first access."""
        await self._ensure_balance_row(user_id)
        result = await self._session.execute(
            select(CreditBalance).where(CreditBalance.user_id == user_id)
        )
        record = result.scalar_one()
        await self._session.commit()
        return record

    async def get_balance(self, user_id: uuid.UUID) -> int:
        record = await self.get_balance_details(user_id)
        return record.balance

    async def add_credits(
        self,
        user_id: uuid.UUID,
        amount: int,
        description: str,
        reference_id: Optional[str] = None,
        *,
        transaction_type: str = "purchase",
        commit: bool = True,
    ) -> int:
        """
        Grant credits and append the matching ledger entry.

        Returns the new balance. With ``commit=False`` the caller owns the
        surrounding transaction.
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")
        if transaction_type not in GRANT_TYPES:
            raise ValueError(f"Not a grant transaction type: {transaction_type}")

        await self._ensure_balance_row(user_id)
        result = await self._session.execute(
            update(CreditBalance)
            .where(CreditBalance.user_id == user_id)
            .values(
                balance=CreditBalance.balance + amount,
                total_earned=CreditBalance.total_earned + amount,
            )
            .returning(CreditBalance.balance)
        )
        new_balance = result.scalar_one()

        self._session.add(CreditTransaction(
            user_id=user_id,
            type=transaction_type,
            amount=amount,
            balance_after=new_balance,
            description=description,
            reference_id=reference_id,
        ))
        if commit:
            await self._session.commit()

        logger.info(
            f"Added {amount} credits ({transaction_type}) for user {user_id}, "
            f"balance={new_balance}, ref={reference_id}"
        )
        return new_balance

    async def use_credits(
        self,
        user_id: uuid.UUID,
        amount: int,
        description: str,
        reference_id: Optional[str] = None,
    ) -> bool:
        """
        Debit credits if the balance covers them.

        Returns False, with nothing written, when the balance is insufficient.
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        await self._ensure_balance_row(user_id)
        result = await self._session.execute(
            update(CreditBalance)
            .where(
                CreditBalance.user_id == user_id,
                CreditBalance.balance >= amount,
            )
            .values(
                balance=CreditBalance.balance - amount,
                total_spent=CreditBalance.total_spent + amount,
            )
            .returning(CreditBalance.balance)
        )
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            await self._session.rollback()
            logger.info(f"Insufficient credits for user {user_id}: need {amount}")
            return False

        self._session.add(CreditTransaction(
            user_id=user_id,
            type="usage",
            amount=-amount,
            balance_after=new_balance,
            description=description,
            reference_id=reference_id,
        ))
        await self._session.commit()

        logger.info(f"Used {amount} credits for user {user_id}, balance={new_balance}")
        return True

    async def refund_credits(
        self,
        user_id: uuid.UUID,
        amount: int,
        description: str,
        reference_id: Optional[str] = None,
    ) -> int:
        """Give back credits for work that never ran."""
        return await self.add_credits(
            user_id, amount, description, reference_id, transaction_type="refund",
        )

    async def get_transactions(
        self, user_id: uuid.UUID, limit: int = 50
    ) -> list[CreditTransaction]:
        """Ledger entries for a user, most recent first."""
        result = await self._session.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.seq.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_payments(self, user_id: uuid.UUID, limit: int = 50) -> list[Payment]:
        return await repo.list_payments_for_user(self._session, user_id, limit=limit)
