"""
app/schemas/user.py

Purpose: User and auth request schemas

- Registration and credential login
- Google OAuth bridge payload
- Profile updates (self or admin)
"""

from typing import Optional

from pydantic import Field, field_validator

from app.schemas.base import DocumentModel, UTCDateTime
from app.models.user import AccountType, UserRole
from utils.validation_utils import is_valid_email, normalize_email

class _EmailMixin(DocumentModel):
    email: str = Field(..., max_length=254)

    @field_validator("email")
    @classmethod
    def normalize(cls, v: str) -> str:
        if not is_valid_email(v):
            raise ValueError("Invalid email address")
        return normalize_email(v)

class RegisterRequest(_EmailMixin):
    name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8, max_length=128)
    account_type: AccountType = AccountType.COMMON

class LoginRequest(_EmailMixin):
    password: str = Field(..., min_length=1)

class GoogleAuthRequest(_EmailMixin):
    """
    Payload sent by the frontend after a Google sign-in.
    `id_token` is required and checked against Google (audience GOOGLE_CLIENT_ID).
    """
    name: Optional[str] = None
    image: Optional[str] = None
    google_id: Optional[str] = None
    id_token: Optional[str] = None

class UserUpdate(DocumentModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    image: Optional[str] = None
    account_type: Optional[AccountType] = None
    # Admin-only fields
    role: Optional[UserRole] = None
    is_verified: Optional[bool] = None
    verification_in_progress: Optional[bool] = None
    email_verified: Optional[UTCDateTime] = None
