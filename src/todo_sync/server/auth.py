"""Authentication service for the REST backend."""

import json
import secrets
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

import bcrypt
import jwt

from .apple import AppleSignIn, AppleUserInfo
from .database import TodoDatabase, get_db
from .models import User, TokenPair, AUTH_PROVIDER_APPLE, AUTH_PROVIDER_EMAIL
from .settings import Settings, get_settings
from ..utils.datetime import now_utc


logger = logging.getLogger(__name__)


JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 15
REFRESH_TOKEN_EXPIRE_DAYS = 7
STATE_EXPIRE_MINUTES = 5

# Password Configuration
BCRYPT_ROUNDS = 12


class AuthenticationError(Exception):
    """Authentication failed."""
    pass


class AuthService:
    """Authentication and authorization service."""

    def __init__(self, db: Optional[TodoDatabase] = None, settings: Optional[Settings] = None,
                 apple: Optional[AppleSignIn] = None):
        """Initialize auth service.

        Args:
            db: Database instance (uses global if None)
            settings: Server settings (uses global if None)
            apple: Apple sign-in client, built from settings if None
        """
        self.db = db or get_db()
        self.settings = settings or get_settings()
        self.apple = apple or AppleSignIn(self.settings)
        self._states: Dict[str, datetime] = {}
        self.logger = logging.getLogger(__name__)

    # Password Management

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Password verification failed: {e}")
            return False

    # Email accounts

    def register_user(self, email: str, password: str, name: str) -> User:
        """Register a new email/password user.

        Raises:
            ValueError: If the email already exists or input is invalid
        """
        if len(password) < 8:
            raise ValueError("Password must be at least 8 characters")
        if self.db.get_user_by_email(email):
            raise ValueError("User already exists")

        user = self.db.create_user(
            email=email,
            name=name,
            password_hash=self.hash_password(password),
            auth_provider=AUTH_PROVIDER_EMAIL,
        )
        self.logger.info(f"Registered new user: {email}")
        return user

    def authenticate_user(self, email: str, password: str) -> User:
        """Authenticate an email/password user.

        Raises:
            AuthenticationError: If authentication fails
        """
        user = self.db.get_user_by_email(email)
        if not user:
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise AuthenticationError("User account is deactivated")
        if user.auth_provider == AUTH_PROVIDER_APPLE:
            raise AuthenticationError("Please use your Apple ID to login")
        if not user.password_hash or not self.verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")

        self.logger.info(f"User authenticated: {email}")
        return user

    # Sign in with Apple

    def create_state(self) -> str:
        """Issue a one-time CSRF state for the Apple redirect."""
        self.cleanup_expired_states()
        state = secrets.token_hex(16)
        self._states[state] = now_utc() + timedelta(minutes=STATE_EXPIRE_MINUTES)
        return state

    def consume_state(self, state: str) -> bool:
        """Validate and forget a CSRF state.

        Returns:
            True if the state was issued here and has not expired
        """
        expires_at = self._states.pop(state, None)
        return expires_at is not None and now_utc() <= expires_at

    def cleanup_expired_states(self) -> int:
        now = now_utc()
        expired = [state for state, expires_at in self._states.items() if now > expires_at]
        for state in expired:
            del self._states[state]
        return len(expired)

    def apple_login_url(self) -> Dict[str, str]:
        state = self.create_state()
        return {"login_url": self.apple.login_url(state), "state": state}

    def process_apple_login(self, info: AppleUserInfo,
                            user_data: Optional[Union[str, Dict[str, Any]]] = None) -> User:
        """Find or create the user behind an Apple identity.

        Args:
            info: Claims from Apple's ID token
            user_data: The ``user`` payload Apple posts on first sign-in,
                either as a JSON string or already decoded

        Returns:
            The existing or newly created user
        """
        existing = self.db.get_user_by_apple_id(info.sub)
        if existing:
            self.logger.info(f"Existing Apple user logged in: {existing.id}")
            return existing

        if info.email:
            by_email = self.db.get_user_by_email(info.email)
            if by_email:
                self.db.link_apple_id(by_email.id, info.sub)
                self.logger.info(f"Linked Apple id to existing user {by_email.id}")
                return self.db.get_user_by_id(by_email.id)

        user = self.db.create_user(
            email=info.email or f"{info.sub}@privaterelay.appleid.com",
            name=self._apple_display_name(info, user_data),
            apple_id=info.sub,
            is_private_email=info.is_private_email,
            auth_provider=AUTH_PROVIDER_APPLE,
        )
        self.logger.info(f"Created new Apple user {user.id}")
        return user

    @staticmethod
    def _apple_display_name(info: AppleUserInfo,
                            user_data: Optional[Union[str, Dict[str, Any]]]) -> str:
        if isinstance(user_data, str) and user_data:
            try:
                user_data = json.loads(user_data)
            except ValueError:
                user_data = None
        if isinstance(user_data, dict):
            name = user_data.get("name") or {}
            if isinstance(name, dict):
                full = " ".join(
                    part for part in (name.get("firstName"), name.get("lastName")) if part
                )
                if full:
                    return full
        if info.email:
            return info.email.split("@", 1)[0]
        return "Apple User"

    # Token Management

    def _encode(self, user: User, token_type: str, lifetime: timedelta) -> str:
        now = now_utc()
        claims = {
            "user_id": user.id,
            "email": user.email,
            "token_type": token_type,
            "iat": now,
            "exp": now + lifetime,
            "jti": str(uuid.uuid4()),
        }
        if user.apple_id:
            claims["apple_id"] = user.apple_id
        return jwt.encode(claims, self.settings.jwt_secret, algorithm=JWT_ALGORITHM)

    def create_tokens(self, user: User) -> TokenPair:
        """Create access and refresh tokens for a user."""
        access = self._encode(user, "access", timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
        refresh = self._encode(user, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))
        self.logger.debug(f"Created tokens for user {user.id}")
        return TokenPair(
            access_token=access,
            refresh_token=refresh,
            access_expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            refresh_expires_in=REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        )

    def verify_token(self, token: str, token_type: str = "access") -> Optional[dict]:
        """Verify and decode a JWT token.

        Args:
            token: JWT token string
            token_type: Expected token type ('access' or 'refresh')

        Returns:
            Decoded token payload or None if invalid
        """
        try:
            payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            self.logger.debug("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            self.logger.warning(f"Invalid token: {e}")
            return None

        if payload.get("token_type") != token_type:
            self.logger.warning(
                f"Token type mismatch: expected {token_type}, got {payload.get('token_type')}"
            )
            return None
        return payload

    def authenticate_refresh_token(self, refresh_token: str) -> User:
        """Resolve the user behind a refresh token.

        Raises:
            AuthenticationError: If the refresh token or its user is invalid
        """
        payload = self.verify_token(refresh_token, token_type="refresh")
        if not payload:
            raise AuthenticationError("Invalid refresh token")

        user = self.db.get_user_by_id(payload.get("user_id", ""))
        if not user or not user.is_active:
            raise AuthenticationError("User not found or inactive")
        return user

    def get_current_user(self, token: str) -> Optional[User]:
        payload = self.verify_token(token, token_type="access")
        if not payload:
            return None
        return self.db.get_user_by_id(payload.get("user_id", ""))


# Global auth service instance
_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get global auth service instance."""
    global _auth_service

    if _auth_service is None:
        _auth_service = AuthService()

    return _auth_service


def reset_auth_service():
    """Reset global auth service (for testing)."""
    global _auth_service
    _auth_service = None
