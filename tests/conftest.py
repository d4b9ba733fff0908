"""Root-level test fixtures."""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.config import BillingConfig, KieConfig, StorageConfig, StripeConfig
from src.db.models import GenerationTask, Payment


# Ensure no real provider keys leak into tests
@pytest.fixture(autouse=True)
def _clear_env_keys(monkeypatch):
    for name in (
        "KIE_AI_API_KEY",
        "PUBLIC_BASE_URL",
        "DATABASE_URL",
        "API_SECRET_KEY",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "STRIPE_PUBLISHABLE_KEY",
        "PRICE_ID",
        "CREDITS_PER_GENERATION",
        "R2_ACCOUNT_ID",
        "R2_ACCESS_KEY_ID",
        "R2_SECRET_ACCESS_KEY",
        "R2_BUCKET_NAME",
        "R2_PUBLIC_BASE_URL",
        "CLOUDWATCH_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mock_session():
    """AsyncSession stand-in: awaitables are AsyncMock, ``add`` is sync."""
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def kie_config():
    return KieConfig(api_key="kie-test-key", public_base_url="https://portraits.example.com")


@pytest.fixture
def stripe_config():
    return StripeConfig(
        secret_key="sk_test_123",
        webhook_secret="whsec_test_123",
        publishable_key="pk_test_123",
        public_base_url="https://portraits.example.com",
    )


@pytest.fixture
def billing_config():
    return BillingConfig(price_id="price_holiday_pack", credits_per_generation=20)


@pytest.fixture
def storage_config():
    return StorageConfig(
        account_id="acct123",
        access_key_id="AKIA_TEST",
        secret_access_key="secret",
        bucket_name="portraits",
        public_base_url="https://cdn.example.com",
    )


@pytest.fixture
def make_task(user_id):
    """Build an in-memory GenerationTask with sensible defaults."""

    def _make(**overrides) -> GenerationTask:
        values = dict(
            id=uuid.uuid4(),
            user_id=user_id,
            kie_task_id="kie_task_abc",
            status="pending",
            style="christmas-sweater",
            prompt="A cozy portrait of this pet in a christmas sweater",
            original_image_url="https://cdn.example.com/uploads/cat.jpg",
            result_image_url=None,
            kie_result_url=None,
            credits_used=20,
            error_message=None,
            created_at=datetime(2026, 12, 1, 12, 0, tzinfo=timezone.utc),
            completed_at=None,
        )
        values.update(overrides)
        return GenerationTask(**values)

    return _make


@pytest.fixture
def make_payment(user_id):
    def _make(**overrides) -> Payment:
        values = dict(
            id=uuid.uuid4(),
            user_id=user_id,
            stripe_session_id="cs_test_123",
            stripe_payment_intent_id=None,
            amount=2000,
            currency="usd",
            status="pending",
            credits_granted=200,
            description="Purchase 200 credits",
            created_at=datetime(2026, 12, 1, 12, 0, tzinfo=timezone.utc),
            updated_at=datetime(2026, 12, 1, 12, 0, tzinfo=timezone.utc),
        )
        values.update(overrides)
        return Payment(**values)

    return _make
