"""
Stripe checkout and webhook handling.

Checkout creates a hosted Stripe session plus a local ``pending`` payment.
The webhook grants credits when Stripe confirms the session. Stripe
redelivers events, so the grant is guarded by a row lock on the payment
and a status check, and committed together with the status change.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import stripe
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import BillingConfig, StripeConfig
from src.db import repository as repo
from src.db.models import Payment
from src.services.credit_service import CreditService

logger = logging.getLogger(__name__)


class InvalidPriceError(Exception):
    """Raised for a price id other than the configured credit pack."""


class StripeConfigurationError(Exception):
    """Raised when Stripe keys are missing."""


class CheckoutError(Exception):
    """Raised when Stripe refuses to create a checkout session."""


class WebhookSignatureError(Exception):
    """Raised when a webhook body cannot be authenticated."""


# Stripe event payloads, validated after the signature check


class StripeCheckoutSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    metadata: Optional[dict[str, str]] = None
    payment_intent: Optional[Any] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None


class StripeCharge(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    payment_intent: Optional[str] = None


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: dict[str, Any]


class StripeEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    data: StripeEventData


@dataclass
class CheckoutSessionResult:
    session_id: str
    url: str


def _payment_intent_id(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return None


class CheckoutService:

    def __init__(
        self,
        session: AsyncSession,
        stripe_config: StripeConfig,
        billing_config: BillingConfig,
    ):
        self._session = session
        self.stripe_config = stripe_config
        self.billing = billing_config

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def create_checkout_session(
        self,
        user_id: uuid.UUID,
        price_id: Optional[str],
        origin: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> CheckoutSessionResult:
        if not self.billing.is_valid_price(price_id):
            raise InvalidPriceError(f"Invalid price ID: {price_id}")
        if not self.stripe_config.validate():
            raise StripeConfigurationError("Stripe is not configured")

        base_url = (origin or self.stripe_config.public_base_url).rstrip("/")
        params: dict[str, Any] = {
            "api_key": self.stripe_config.secret_key,
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{base_url}/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base_url}/pricing?canceled=true",
            "metadata": {
                "userId": str(user_id),
                "credits": str(self.billing.pack_credits),
            },
            "allow_promotion_codes": True,
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            checkout = await asyncio.to_thread(stripe.checkout.Session.create, **params)
        except stripe.StripeError as e:
            raise CheckoutError(f"Stripe session creation failed: {e}") from e

        await repo.create_payment(
            self._session,
            user_id=user_id,
            stripe_session_id=checkout.id,
            amount=self.billing.pack_amount,
            currency=self.billing.currency,
            credits_granted=self.billing.pack_credits,
            description=self.billing.pack_description,
        )
        logger.info(f"Checkout session {checkout.id} created for user {user_id}")
        return CheckoutSessionResult(session_id=checkout.id, url=checkout.url)

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def verify_event(self, raw_body: bytes, signature_header: Optional[str]) -> StripeEvent:
        """Authenticate a webhook body. Raises WebhookSignatureError."""
        if not signature_header:
            raise WebhookSignatureError("No signature")
        if not self.stripe_config.webhook_configured():
            raise StripeConfigurationError("Stripe webhook not configured")

        try:
            stripe.Webhook.construct_event(
                payload=raw_body,
                sig_header=signature_header,
                secret=self.stripe_config.webhook_secret,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid signature") from e
        except ValueError as e:
            raise WebhookSignatureError("Invalid payload") from e

        try:
            return StripeEvent.model_validate_json(raw_body)
        except ValidationError as e:
            raise WebhookSignatureError("Invalid payload") from e

    async def handle_webhook(self, raw_body: bytes, signature_header: Optional[str]) -> None:
        event = self.verify_event(raw_body, signature_header)
        logger.info(f"Received webhook event: {event.type} ({event.id})")

        if event.type == "checkout.session.completed":
            await self._handle_checkout_completed(
                StripeCheckoutSession.model_validate(event.data.object)
            )
        elif event.type in ("checkout.session.expired", "checkout.session.async_payment_failed"):
            await self._handle_checkout_failed(
                StripeCheckoutSession.model_validate(event.data.object)
            )
        elif event.type == "charge.refunded":
            await self._handle_charge_refunded(
                StripeCharge.model_validate(event.data.object)
            )
        else:
            logger.info(f"Unhandled event type: {event.type}")

    async def _lock_payment(self, stripe_session_id: str) -> Optional[Payment]:
        result = await self._session.execute(
            select(Payment)
            .where(Payment.stripe_session_id == stripe_session_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _handle_checkout_completed(self, checkout: StripeCheckoutSession) -> bool:
        """Grant the session's credits once. Returns True if credits were granted."""
        metadata = checkout.metadata or {}
        try:
            user_id = uuid.UUID(metadata.get("userId", ""))
            credits = int(metadata.get("credits", "0"))
        except ValueError:
            logger.error(f"Checkout {checkout.id} has unusable metadata: {metadata}")
            return False
        if credits <= 0:
            logger.error(f"Checkout {checkout.id} carries no credits")
            return False

        payment = await self._lock_payment(checkout.id)
        if payment is None:
            logger.warning(f"No local payment for checkout {checkout.id}, backfilling")
            await self._session.execute(
                pg_insert(Payment)
                .values(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    stripe_session_id=checkout.id,
                    amount=checkout.amount_total if checkout.amount_total is not None else self.billing.pack_amount,
                    currency=checkout.currency or self.billing.currency,
                    status="pending",
                    credits_granted=credits,
                    description="Stripe checkout (backfilled)",
                )
                .on_conflict_do_nothing(index_elements=[Payment.stripe_session_id])
            )
            payment = await self._lock_payment(checkout.id)

        if payment.status in ("completed", "refunded"):
            logger.info(f"Payment {checkout.id} already processed ({payment.status})")
            await self._session.rollback()
            return False

        if payment.user_id != user_id:
            logger.warning(
                f"Checkout {checkout.id} metadata user {user_id} "
                f"differs from payment owner {payment.user_id}; crediting the owner"
            )

        payment.status = "completed"
        payment.credits_granted = credits
        payment.stripe_payment_intent_id = _payment_intent_id(checkout.payment_intent)

        await CreditService(self._session).add_credits(
            payment.user_id,
            credits,
            f"Purchased {credits} credits",
            reference_id=checkout.id,
            transaction_type="purchase",
            commit=False,
        )
        await self._session.commit()
        logger.info(f"Successfully added {credits} credits to user {payment.user_id}")
        return True

    async def _handle_checkout_failed(self, checkout: StripeCheckoutSession) -> None:
        payment = await self._lock_payment(checkout.id)
        if payment is None or payment.status != "pending":
            await self._session.rollback()
            return
        payment.status = "failed"
        await self._session.commit()
        logger.info(f"Payment {checkout.id} marked failed")

    async def _handle_charge_refunded(self, charge: StripeCharge) -> None:
        if not charge.payment_intent:
            return
        result = await self._session.execute(
            select(Payment)
            .where(Payment.stripe_payment_intent_id == charge.payment_intent)
            .with_for_update()
        )
        payment = result.scalar_one_or_none()
        if payment is None or payment.status != "completed":
            await self._session.rollback()
            return
        payment.status = "refunded"
        await self._session.commit()
        # Granted credits stay on the ledger; clawing them back is a manual decision.
        logger.warning(
            f"Payment {payment.stripe_session_id} refunded; "
            f"{payment.credits_granted} credits remain with user {payment.user_id}"
        )
