"""
Pydantic schemas for API request/response models.

Public payloads use camelCase on the wire; fields are declared in
snake_case and aliased by ``CamelModel``.
"""

from typing import Literal, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


TaskStatus = Literal["pending", "processing", "success", "failed"]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class GenerateRequest(CamelModel):
    """Request schema for portrait generation.

    Fields are optional at the schema level so missing values produce a 400
    with the list of missing names rather than a validation error.
    """

    image_url: Optional[str] = Field(None, max_length=2048, description="Public URL of the uploaded pet photo")
    prompt: Optional[str] = Field(None, max_length=4000, description="Full prompt built from the chosen template")
    style: Optional[str] = Field(None, max_length=100, description="Template/style identifier")


class GenerateResponse(CamelModel):
    task_id: str
    remote_task_id: str
    credits_used: int
    message: str


class TaskStatusResponse(CamelModel):
    task_id: str
    status: TaskStatus
    result_image_url: Optional[str] = None
    error_message: Optional[str] = None
    style: str
    original_image_url: str
    created_at: str
    completed_at: Optional[str] = None


class CreationItem(CamelModel):
    id: str
    status: TaskStatus
    style: str
    original_image_url: str
    result_image_url: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None


class CreationsResponse(CamelModel):
    creations: List[CreationItem]


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


class CreditsSummary(CamelModel):
    balance: int
    total_earned: int
    total_spent: int


class PaymentItem(CamelModel):
    id: str
    amount: int
    currency: str
    status: str
    credits_granted: int
    description: Optional[str] = None
    created_at: str


class TransactionItem(CamelModel):
    id: str
    type: str
    amount: int
    balance_after: int
    description: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: str


class BillingResponse(CamelModel):
    credits: CreditsSummary
    payments: List[PaymentItem]
    transactions: List[TransactionItem]


class CheckoutRequest(CamelModel):
    price_id: Optional[str] = Field(None, max_length=255)


class CheckoutResponse(CamelModel):
    session_id: str
    url: str


class InsufficientCreditsDetail(BaseModel):
    error: str = "Insufficient credits"
    required: int
    current: int


class InsufficientCreditsResponse(BaseModel):
    detail: InsufficientCreditsDetail


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class ReceivedResponse(BaseModel):
    received: bool = True


class UploadResponse(CamelModel):
    url: str
    pathname: str
    content_type: str


class PublicConfigResponse(CamelModel):
    stripe_publishable_key: str
    price_id: str
    credits_per_generation: int


class HealthResponse(BaseModel):
    """Response schema for health check."""

    status: str
    version: str
    kie_configured: bool
    stripe_configured: bool
    storage_configured: bool
    database_configured: bool


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str
