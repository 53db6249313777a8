"""
app/models/user.py

Purpose: User document model

- Email identity (unique, lower-cased)
- Optional password hash and linked Google account
- Role and account type
- Verification flags and last login
"""

from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AccountType(str, Enum):
    COMMON = "common"
    AGENCY = "agency"


class AuthProvider(str, Enum):
    CREDENTIALS = "credentials"
    GOOGLE = "google"


# Fields a user may change on their own account; admins may also change the rest
SELF_EDITABLE_FIELDS = {"name", "image", "account_type"}
ADMIN_EDITABLE_FIELDS = SELF_EDITABLE_FIELDS | {
    "role",
    "is_verified",
    "verification_in_progress",
    "email_verified",
}
