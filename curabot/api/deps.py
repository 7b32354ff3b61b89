"""FastAPI dependencies: settings, database session, authenticated owner."""

import hmac
import logging
from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from curabot.config import Settings
from curabot.errors import AuthenticationFailed
from curabot.storage.db import get_session
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request; commits if the handler returns normally."""
    async with get_session() as session:
        yield session


def _extract_token(request: Request, cookie_name: str) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(cookie_name)


def verify_session_token(token: str, settings: Settings) -> str:
    """Return the owner id (``sub``) of a valid session token."""
    auth = settings.auth
    if not auth.jwt_key:
        logger.error("AUTH_JWT_KEY is not configured; rejecting all sessions")
        raise AuthenticationFailed()
    try:
        payload = jwt.decode(
            token,
            auth.jwt_key,
            algorithms=auth.jwt_algorithms,
            issuer=auth.jwt_issuer,
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.debug("Rejected session token: %s", e)
        raise AuthenticationFailed() from e

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationFailed()
    return subject


async def get_current_user(request: Request, settings: Settings = Depends(get_app_settings)) -> str:
    """Owner id of the signed-in user, or 401."""
    token = _extract_token(request, settings.auth.session_cookie)
    if not token:
        raise AuthenticationFailed()
    return verify_session_token(token, settings)


async def get_scope(
    owner_id: str = Depends(get_current_user), session: AsyncSession = Depends(get_db)
) -> OwnerScope:
    return OwnerScope(session, owner_id)


async def get_ingest_caller(request: Request, settings: Settings = Depends(get_app_settings)) -> Optional[str]:
    """Authenticate a result ingest call.

    The automation service presents ``x-api-key``; it acts for every owner
    and yields None. Otherwise a signed-in user may call for their own
    projects, and their owner id is returned.
    """
    expected = settings.automation.ingest_api_key
    provided = request.headers.get("x-api-key")
    if provided is not None:
        if expected and hmac.compare_digest(provided, expected):
            return None
        logger.warning("Rejected ingest call with a bad api key")
        raise AuthenticationFailed()
    return await get_current_user(request, settings)


def get_automation_client(request: Request):
    return request.app.state.automation_client


def get_voice_client(request: Request):
    return request.app.state.voice_client


def get_payments(request: Request):
    return request.app.state.payments
