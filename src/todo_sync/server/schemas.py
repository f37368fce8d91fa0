"""Request and response models for the REST API."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, EmailStr, Field


T = TypeVar("T")


class PriorityValue(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Envelopes

class Envelope(BaseModel, Generic[T]):
    """Standard success envelope."""
    success: bool = True
    message: str
    data: Optional[T] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedEnvelope(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: List[T]
    pagination: Pagination


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None


# Todos

class TodoCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    priority: PriorityValue = PriorityValue.MEDIUM
    due_date: Optional[datetime] = None


class TodoUpdateRequest(BaseModel):
    """Partial update; omitted fields stay unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    priority: Optional[PriorityValue] = None
    is_completed: Optional[bool] = None
    due_date: Optional[datetime] = None


class TodoResponse(BaseModel):
    id: str
    title: str
    is_completed: bool
    priority: str
    due_date: Optional[str] = None
    created_at: str
    updated_at: str


# Auth

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str


class AppleCallbackRequest(BaseModel):
    code: str
    state: str
    user: Optional[Any] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    is_active: bool
    is_private_email: bool
    auth_provider: str
    created_at: str
    updated_at: str


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserResponse


class AppleLoginUrlResponse(BaseModel):
    login_url: str
    state: str


def success(message: str, data: Any = None) -> Dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def failure(message: str, error: Optional[str] = None) -> Dict[str, Any]:
    return ErrorResponse(message=message, error=error).model_dump()
