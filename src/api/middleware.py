"""
Custom middleware for API security.
"""

import hmac
import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

# Reachable without the shared key: provider callbacks, Stripe and public config
DEFAULT_EXEMPT_PATHS = frozenset({
    "/",
    "/api/v1/health",
    "/api/v1/config",
    "/api/v1/webhook",
    "/api/v1/callback",
})


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """
    Validates X-Api-Key header against a shared secret set on the gateway.

    When api_key is None the middleware is disabled and all requests pass
    through, so local development works without the secret.
    """

    def __init__(self, app, api_key: Optional[str] = None, exempt_paths: Optional[set[str]] = None):
        super().__init__(app)
        self._api_key = api_key
        self._exempt_paths = DEFAULT_EXEMPT_PATHS if exempt_paths is None else frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if not self._api_key:
            return await call_next(request)

        # CORS preflight never carries the key
        if request.method == "OPTIONS":
            return await call_next(request)

        if request.url.path in self._exempt_paths:
            return await call_next(request)

        provided_key = request.headers.get("X-Api-Key") or ""
        if not hmac.compare_digest(provided_key, self._api_key):
            logger.warning(f"Rejected request to {request.url.path}: invalid API key")
            return JSONResponse(
                status_code=403,
                content={"detail": "Invalid or missing API key"},
            )

        return await call_next(request)
