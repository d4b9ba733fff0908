"""
Billing endpoints: credit summary and Stripe checkout.
"""

import uuid
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from starlette.requests import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_app_config, get_current_user_email, get_current_user_id, get_db
from src.api.rate_limit import CHECKOUT_LIMIT, limiter
from src.api.schemas import (
    BillingResponse,
    CheckoutRequest,
    CheckoutResponse,
    CreditsSummary,
    ErrorResponse,
    PaymentItem,
    TransactionItem,
)
from src.core.config import AppConfig
from src.services.credit_service import CreditService
from src.services.payment_service import (
    CheckoutError,
    CheckoutService,
    InvalidPriceError,
    StripeConfigurationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])


@router.get("/billing", response_model=BillingResponse)
async def get_billing(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> BillingResponse:
    """Credit balance, recent payments and recent ledger entries."""
    service = CreditService(db)
    try:
        balance = await service.get_balance_details(user_id)
        payments = await service.get_payments(user_id)
        transactions = await service.get_transactions(user_id)
    except Exception as e:
        logger.error(f"Failed to load billing for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load billing information")

    return BillingResponse(
        credits=CreditsSummary(
            balance=balance.balance,
            total_earned=balance.total_earned,
            total_spent=balance.total_spent,
        ),
        payments=[
            PaymentItem(
                id=str(p.id),
                amount=p.amount,
                currency=p.currency,
                status=p.status,
                credits_granted=p.credits_granted,
                description=p.description,
                created_at=p.created_at.isoformat(),
            )
            for p in payments
        ],
        transactions=[
            TransactionItem(
                id=str(t.id),
                type=t.type,
                amount=t.amount,
                balance_after=t.balance_after,
                description=t.description,
                reference_id=t.reference_id,
                created_at=t.created_at.isoformat(),
            )
            for t in transactions
        ],
    )


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
@limiter.limit(CHECKOUT_LIMIT)
async def create_checkout(
    request: Request,
    body: CheckoutRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    email: Optional[str] = Depends(get_current_user_email),
    db: AsyncSession = Depends(get_db),
    config: AppConfig = Depends(get_app_config),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for the credit pack."""
    service = CheckoutService(db, config.stripe, config.billing)
    try:
        result = await service.create_checkout_session(
            user_id,
            body.price_id,
            origin=request.headers.get("origin"),
            customer_email=email,
        )
    except InvalidPriceError:
        raise HTTPException(status_code=400, detail="Invalid price ID")
    except StripeConfigurationError:
        raise HTTPException(status_code=500, detail="Stripe not configured")
    except CheckoutError as e:
        logger.error(f"Checkout failed for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Failed to create checkout session")
    except Exception as e:
        logger.error(f"Unexpected checkout error for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create checkout session")

    return CheckoutResponse(session_id=result.session_id, url=result.url)
