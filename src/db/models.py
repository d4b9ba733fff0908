"""
SQLAlchemy async ORM models: credit ledger, payments and generation tasks.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Identity,
    String,
    Integer,
    Text,
    DateTime,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


TASK_STATUSES = ("pending", "processing", "success", "failed")
NON_TERMINAL_TASK_STATUSES = ("pending", "processing")
TERMINAL_TASK_STATUSES = ("success", "failed")

PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
TRANSACTION_TYPES = ("purchase", "usage", "refund", "bonus")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class CreditBalance(Base):
    """One row per user. Mutated only through CreditService."""
    __tablename__ = "credit_balances"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, unique=True
    )
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_credit_balances_balance_non_negative"),
        CheckConstraint("total_earned >= 0", name="ck_credit_balances_earned_non_negative"),
        CheckConstraint("total_spent >= 0", name="ck_credit_balances_spent_non_negative"),
        CheckConstraint(
            "balance = total_earned - total_spent",
            name="ck_credit_balances_conservation",
        ),
    )


class CreditTransaction(Base):
    """Append-only ledger entry. Positive amounts grant, negative consume."""
    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    # Insertion order. Writes for one user are serialized by the balance row
    # lock, so this also orders balance_after.
    seq: Mapped[int] = mapped_column(
        BigInteger, Identity(always=True), nullable=False, unique=True
    )
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('purchase', 'usage', 'refund', 'bonus')",
            name="ck_credit_transactions_type",
        ),
        CheckConstraint("balance_after >= 0", name="ck_credit_transactions_balance_after"),
        Index("idx_credit_transactions_user_id_seq", "user_id", "seq"),
        Index(
            "idx_credit_transactions_reference_id",
            "reference_id",
            postgresql_where=text("reference_id IS NOT NULL"),
        ),
    )


class Payment(Base):
    """One row per Stripe checkout session."""
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    stripe_session_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="usd")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    credits_granted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'refunded')",
            name="ck_payments_status",
        ),
        Index("idx_payments_user_id_created_at", "user_id", "created_at"),
        Index(
            "idx_payments_stripe_payment_intent_id",
            "stripe_payment_intent_id",
            postgresql_where=text("stripe_payment_intent_id IS NOT NULL"),
        ),
    )


class GenerationTask(Base):
    """One row per portrait generation request."""
    __tablename__ = "generation_tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    kie_task_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    style: Mapped[str] = mapped_column(Text, nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    original_image_url: Mapped[str] = mapped_column(Text, nullable=False)

    result_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    kie_result_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed')",
            name="ck_generation_tasks_status",
        ),
        CheckConstraint(
            "(completed_at IS NOT NULL) = (status IN ('success', 'failed'))",
            name="ck_generation_tasks_completed_at",
        ),
        Index("idx_generation_tasks_user_id_created_at", "user_id", "created_at"),
        Index(
            "idx_generation_tasks_kie_task_id",
            "kie_task_id",
            unique=True,
            postgresql_where=text("kie_task_id IS NOT NULL"),
        ),
    )
