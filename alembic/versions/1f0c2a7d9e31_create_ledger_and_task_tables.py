"""create ledger, payment and generation task tables

Revision ID: 1f0c2a7d9e31
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = "1f0c2a7d9e31"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # credit_balances
    op.create_table(
        "credit_balances",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("balance", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_earned", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_spent", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("balance >= 0", name="ck_credit_balances_balance_non_negative"),
        sa.CheckConstraint("total_earned >= 0", name="ck_credit_balances_earned_non_negative"),
        sa.CheckConstraint("total_spent >= 0", name="ck_credit_balances_spent_non_negative"),
        sa.CheckConstraint("balance = total_earned - total_spent", name="ck_credit_balances_conservation"),
    )

    # credit_transactions (append-only)
    op.create_table(
        "credit_transactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("seq", sa.BigInteger, sa.Identity(always=True), nullable=False, unique=True),
        sa.Column("balance_after", sa.Integer, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("reference_id", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("type IN ('purchase', 'usage', 'refund', 'bonus')", name="ck_credit_transactions_type"),
        sa.CheckConstraint("balance_after >= 0", name="ck_credit_transactions_balance_after"),
    )
    op.create_index("idx_credit_transactions_user_id_seq", "credit_transactions", ["user_id", "seq"])
    op.create_index(
        "idx_credit_transactions_reference_id", "credit_transactions", ["reference_id"],
        postgresql_where=sa.text("reference_id IS NOT NULL"),
    )

    # payments
    op.create_table(
        "payments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("stripe_session_id", sa.Text, nullable=False, unique=True),
        sa.Column("stripe_payment_intent_id", sa.Text, nullable=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default="usd"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("credits_granted", sa.Integer, nullable=False, server_default="0"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('pending', 'completed', 'failed', 'refunded')", name="ck_payments_status"),
    )
    op.create_index("idx_payments_user_id_created_at", "payments", ["user_id", "created_at"])
    op.create_index(
        "idx_payments_stripe_payment_intent_id", "payments", ["stripe_payment_intent_id"],
        postgresql_where=sa.text("stripe_payment_intent_id IS NOT NULL"),
    )

    # generation_tasks
    op.create_table(
        "generation_tasks",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("kie_task_id", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("style", sa.Text, nullable=False),
        sa.Column("prompt", sa.Text, nullable=False),
        sa.Column("original_image_url", sa.Text, nullable=False),
        sa.Column("result_image_url", sa.Text, nullable=True),
        sa.Column("kie_result_url", sa.Text, nullable=True),
        sa.Column("credits_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed')",
            name="ck_generation_tasks_status",
        ),
        sa.CheckConstraint(
            "(completed_at IS NOT NULL) = (status IN ('success', 'failed'))",
            name="ck_generation_tasks_completed_at",
        ),
    )
    op.create_index("idx_generation_tasks_user_id_created_at", "generation_tasks", ["user_id", "created_at"])
    op.create_index(
        "idx_generation_tasks_kie_task_id", "generation_tasks", ["kie_task_id"],
        unique=True, postgresql_where=sa.text("kie_task_id IS NOT NULL"),
    )

    # Trigger for auto-updating updated_at
    op.execute("""
        CREATE OR REPLACE FUNCTION public.update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER update_credit_balances_updated_at
            BEFORE UPDATE ON credit_balances
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
    """)
    op.execute("""
        CREATE TRIGGER update_payments_updated_at
            BEFORE UPDATE ON payments
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS update_payments_updated_at ON payments;")
    op.execute("DROP TRIGGER IF EXISTS update_credit_balances_updated_at ON credit_balances;")
    op.execute("DROP FUNCTION IF EXISTS public.update_updated_at_column();")
    op.drop_table("generation_tasks")
    op.drop_table("payments")
    op.drop_table("credit_transactions")
    op.drop_table("credit_balances")
