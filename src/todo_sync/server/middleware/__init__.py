"""Request authentication helpers."""

from .auth_middleware import require_auth, extract_bearer_token

__all__ = ["require_auth", "extract_bearer_token"]
