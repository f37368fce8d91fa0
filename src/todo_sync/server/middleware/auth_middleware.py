"""Bearer-token authentication dependencies for FastAPI."""

from typing import Optional
import logging

from fastapi import Depends, Request, HTTPException, status

from ..auth import AuthService, get_auth_service
from ..models import User


logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer`` header, if any."""
    auth_header = request.headers.get("authorization")
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def require_auth(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Require authentication for a route.

    Args:
        request: FastAPI request
        auth_service: Auth service dependency

    Returns:
        Authenticated User instance

    Raises:
        HTTPException: If not authenticated
    """
    token = extract_bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = auth_service.get_current_user(token)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    request.state.user = user
    return user
