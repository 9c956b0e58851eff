"""
Authentication dependencies.

Production: `Authorization: Bearer <Firebase ID token>`.
Mock mode (USE_MOCK_DB=true): an `X-User-ID` header is accepted instead so the
API can be exercised locally without Firebase Authentication.
"""

import asyncio
import logging
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException, WebSocket, status
from firebase_admin import auth

from ecowatch.config.firebase import initialize_firebase_app
from ecowatch.core.settings import settings
from ecowatch.models.user import User
from ecowatch.services.status_workflow import ReportLifecycleEngine
from ecowatch.services.user_service import UserService, get_user_service

logger = logging.getLogger(__name__)


def verify_id_token(id_token: str) -> Dict:
    """
    Verify a Firebase ID token and return its decoded claims.

    Raises:
        HTTPException 401: token expired, revoked, malformed or of a disabled user
        HTTPException 503: signing certificates could not be fetched
    """
    initialize_firebase_app()
    try:
        return auth.verify_id_token(id_token)
    except auth.CertificateFetchError as e:
        logger.warning(f"⚠️ Could not fetch Firebase token certificates: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable, try again later",
        )
    except (
        auth.InvalidIdTokenError,
        auth.ExpiredIdTokenError,
        auth.RevokedIdTokenError,
        auth.UserDisabledError,
        ValueError,
    ) as e:
        logger.warning(f"Rejected ID token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def resolve_user(
    authorization: Optional[str],
    x_user_id: Optional[str],
    user_service: UserService
) -> Optional[User]:
    """
    Resolve the caller from request credentials, or None if none were sent.

    Raises:
        HTTPException 401: a bearer token was sent but is invalid
    """
    token = _bearer_token(authorization)

    if token:
        loop = asyncio.get_running_loop()
        claims = await loop.run_in_executor(None, verify_id_token, token)
        return await loop.run_in_executor(None, user_service.get_user, claims["uid"], claims.get("email"))

    if settings.USE_MOCK_DB and x_user_id:
        return user_service.get_user(x_user_id)

    return None


async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """FastAPI dependency resolving the caller and their roles."""
    user = await resolve_user(authorization, x_user_id, user_service)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def authenticate_websocket(websocket: WebSocket, user_service: UserService) -> Optional[User]:
    """
    Resolve the caller of a WebSocket handshake.

    Browsers cannot set headers on WebSocket connections, so a `token` (or, in
    mock mode, `user_id`) query parameter is accepted as well.
    """
    authorization = websocket.headers.get("authorization")
    token = websocket.query_params.get("token")
    if not authorization and token:
        authorization = f"Bearer {token}"

    x_user_id = websocket.headers.get("x-user-id") or websocket.query_params.get("user_id")

    try:
        return await resolve_user(authorization, x_user_id, user_service)
    except HTTPException:
        return None


async def require_council(user: User = Depends(get_current_user)) -> User:
    """Dependency for council-only endpoints; raises PermissionDenied (403)."""
    ReportLifecycleEngine.authorize(user)
    return user
