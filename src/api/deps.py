"""
FastAPI dependencies: database sessions, user identity and shared clients.
"""

import logging
from uuid import UUID
from typing import Optional

from fastapi import Depends, HTTPException, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import AppConfig
from src.core.kie_client import KieClient
from src.core.storage import R2Storage
from src.db.engine import get_async_session
from src.services.result_materializer import ResultMaterializer

logger = logging.getLogger(__name__)


async def get_db(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncSession:
    """Alias dependency for database session."""
    return session


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> UUID:
    """
    Extract the authenticated user's ID from the X-User-Id header.

    The upstream auth layer validates the session and forwards the user ID
    in the X-User-Id header.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide X-User-Id header.",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid X-User-Id header")


async def get_current_user_email(
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
) -> Optional[str]:
    """Email forwarded by the auth layer, used to prefill Stripe checkout."""
    return x_user_email or None


def get_app_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        config = AppConfig()
        request.app.state.config = config
    return config


def get_kie_client(request: Request) -> KieClient:
    client = getattr(request.app.state, "kie_client", None)
    if client is None:
        raise HTTPException(status_code=500, detail="Image generation is not configured")
    return client


def get_storage(request: Request) -> Optional[R2Storage]:
    return getattr(request.app.state, "storage", None)


def get_materializer(request: Request) -> ResultMaterializer:
    materializer = getattr(request.app.state, "materializer", None)
    if materializer is None:
        raise HTTPException(status_code=500, detail="Result storage is not configured")
    return materializer
