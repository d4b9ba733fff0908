"""
Configuration settings for the Pet Holiday Portrait API.
"""

from dataclasses import dataclass, field
from typing import Optional
import os

from dotenv import load_dotenv

load_dotenv()

# Default remote model and output settings
DEFAULT_KIE_MODEL = "nano-banana-pro"
DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_RESOLUTION = "1K"

# Credits consumed by a single portrait generation
DEFAULT_CREDITS_PER_GENERATION = 20


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass
class KieConfig:
    """Configuration for the Kie.AI job runner."""

    api_key: str = field(default_factory=lambda: os.getenv("KIE_AI_API_KEY", ""))
    base_url: str = "https://api.kie.ai/api/v1"
    model: str = DEFAULT_KIE_MODEL
    timeout: float = 30.0

    # Public URL of this service, used to build the provider callback URL
    public_base_url: str = field(default_factory=lambda: os.getenv("PUBLIC_BASE_URL", ""))

    def validate(self) -> bool:
        """Check if API key is configured."""
        return bool(self.api_key)

    @property
    def callback_url(self) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/api/v1/callback"


@dataclass
class StripeConfig:
    """Configuration for Stripe checkout and webhooks."""

    secret_key: str = field(default_factory=lambda: os.getenv("STRIPE_SECRET_KEY", "").strip())
    webhook_secret: str = field(default_factory=lambda: os.getenv("STRIPE_WEBHOOK_SECRET", "").strip())
    publishable_key: str = field(default_factory=lambda: os.getenv("STRIPE_PUBLISHABLE_KEY", "").strip())

    # Fallback for success/cancel URLs when the request carries no Origin
    public_base_url: str = field(default_factory=lambda: os.getenv("PUBLIC_BASE_URL", ""))

    def validate(self) -> bool:
        """Check if the secret key is configured (checkout)."""
        return bool(self.secret_key)

    def webhook_configured(self) -> bool:
        return bool(self.webhook_secret)


@dataclass
class BillingConfig:
    """The single credit pack on sale, plus the per-generation cost."""

    price_id: str = field(default_factory=lambda: os.getenv("PRICE_ID", ""))
    pack_amount: int = 2000  # $20.00 in cents
    pack_credits: int = 200
    currency: str = "usd"
    pack_name: str = "Holiday Pack"
    credits_per_generation: int = field(
        default_factory=lambda: _int_env("CREDITS_PER_GENERATION", DEFAULT_CREDITS_PER_GENERATION)
    )

    def is_valid_price(self, price_id: Optional[str]) -> bool:
        return bool(self.price_id) and price_id == self.price_id

    @property
    def pack_description(self) -> str:
        return f"Purchase {self.pack_credits} credits"


@dataclass
class StorageConfig:
    """Configuration for Cloudflare R2 (S3-compatible) blob storage."""

    account_id: str = field(default_factory=lambda: os.getenv("R2_ACCOUNT_ID", ""))
    access_key_id: str = field(default_factory=lambda: os.getenv("R2_ACCESS_KEY_ID", ""))
    secret_access_key: str = field(default_factory=lambda: os.getenv("R2_SECRET_ACCESS_KEY", ""))
    bucket_name: str = field(default_factory=lambda: os.getenv("R2_BUCKET_NAME", ""))
    public_base_url: str = field(default_factory=lambda: os.getenv("R2_PUBLIC_BASE_URL", ""))

    # Upload limits for user photos
    max_upload_bytes: int = 10 * 1024 * 1024

    def validate(self) -> bool:
        """Check whether all R2 settings are present (no I/O)."""
        return all([
            self.account_id,
            self.access_key_id,
            self.secret_access_key,
            self.bucket_name,
            self.public_base_url,
        ])


@dataclass
class AppConfig:
    """Main configuration combining all settings."""

    kie: KieConfig = field(default_factory=KieConfig)
    stripe: StripeConfig = field(default_factory=StripeConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    api_secret_key: Optional[str] = field(default_factory=lambda: os.getenv("API_SECRET_KEY") or None)
