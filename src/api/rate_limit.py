"""Rate limiter configuration for the paid and upload endpoints."""

from slowapi import Limiter
from slowapi.util import get_remote_address

GENERATE_LIMIT = "10/minute"
CHECKOUT_LIMIT = "10/minute"
UPLOAD_LIMIT = "20/minute"


def _get_rate_limit_key(request):
    """Key by X-User-Id header when present, otherwise by IP."""
    return request.headers.get("X-User-Id") or get_remote_address(request)


limiter = Limiter(key_func=_get_rate_limit_key)
