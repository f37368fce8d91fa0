"""Authentication API routes."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ..apple import AppleAuthError
from ..auth import AuthService, AuthenticationError, get_auth_service
from ..middleware import require_auth
from ..models import User
from ..schemas import (
    AppleCallbackRequest,
    AppleLoginUrlResponse,
    Envelope,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    UserResponse,
    success,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def login_response(auth_service: AuthService, user: User) -> dict:
    tokens = auth_service.create_tokens(user)
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": tokens.token_type,
        "expires_in": tokens.access_expires_in,
        "user": user.to_dict(),
    }


@router.get("/apple/login", response_model=Envelope[AppleLoginUrlResponse])
async def apple_login(auth_service: AuthService = Depends(get_auth_service)):
    """Start Sign in with Apple.

    Returns:
        Authorization URL and the CSRF state the callback must echo
    """
    data = auth_service.apple_login_url()
    logger.info("Generated Apple login URL")
    return success("Apple login URL generated", data)


async def _complete_apple_login(auth_service: AuthService, code: str, state: str,
                                user_data: Optional[Any]) -> dict:
    if not auth_service.consume_state(state):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired state parameter",
        )

    try:
        info = await auth_service.apple.validate_code(code)
    except AppleAuthError as e:
        logger.error(f"Failed to validate Apple token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Failed to validate Apple authorization: {e}",
        )

    try:
        user = auth_service.process_apple_login(info, user_data)
    except ValueError as e:
        logger.error(f"Failed to process Apple login: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to complete Apple login: {e}",
        )

    return success("Apple login successful", login_response(auth_service, user))


@router.post("/apple/callback", response_model=Envelope[LoginResponse])
async def apple_callback(body: AppleCallbackRequest,
                         auth_service: AuthService = Depends(get_auth_service)):
    """Finish Sign in with Apple from a JSON body."""
    return await _complete_apple_login(auth_service, body.code, body.state, body.user)


@router.get("/apple/callback", response_model=Envelope[LoginResponse])
async def apple_callback_redirect(code: str, state: str, user: Optional[str] = None,
                                  auth_service: AuthService = Depends(get_auth_service)):
    """Finish Sign in with Apple from redirect query parameters."""
    return await _complete_apple_login(auth_service, code, state, user)


@router.post("/token/refresh", response_model=Envelope[LoginResponse])
async def refresh_token(body: RefreshRequest,
                        auth_service: AuthService = Depends(get_auth_service)):
    """Exchange a refresh token for a new token pair."""
    try:
        user = auth_service.authenticate_refresh_token(body.refresh_token)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Failed to refresh token: {e}",
        )

    return success("Token refreshed successfully", login_response(auth_service, user))


@router.get("/user/profile", response_model=Envelope[UserResponse])
async def user_profile(current_user: User = Depends(require_auth)):
    return success("User profile retrieved", current_user.to_dict())


@router.post("/register", response_model=Envelope[LoginResponse],
             status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest,
                   auth_service: AuthService = Depends(get_auth_service)):
    """Register an email account and sign it in.

    Raises:
        HTTPException: 409 if the email is taken, 400 for invalid input
    """
    try:
        user = auth_service.register_user(body.email, body.password, body.name)
    except ValueError as e:
        if "already exists" in str(e):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return success("User registered successfully", login_response(auth_service, user))


@router.post("/login", response_model=Envelope[LoginResponse])
async def login(body: LoginRequest,
                auth_service: AuthService = Depends(get_auth_service)):
    try:
        user = auth_service.authenticate_user(body.email, body.password)
    except AuthenticationError as e:
        logger.info(f"Login failed for {body.email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Login failed: {e}",
        )

    return success("Login successful", login_response(auth_service, user))
