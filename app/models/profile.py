"""
app/models/profile.py

Purpose: Profile and ProfileVerification document models

- Profile: listing owned by a user, with plan assignment, upgrades and visibility flags
- ProfileVerification: verification steps, status and progress
"""

from enum import Enum
from typing import Dict, Any


class VerificationStatus(str, Enum):
    PENDING = "pending"
    CHECK = "check"


# Stored steps; account_age and contact_consistency are computed at read time
VERIFICATION_STEPS = (
    "front_photo_verification",
    "selfie_verification",
    "media_verification",
    "video_call_requested",
    "social_media",
    "last_login",
)


def default_verification_steps() -> Dict[str, Any]:
    steps: Dict[str, Any] = {name: {"is_verified": False} for name in VERIFICATION_STEPS}
    steps["phone_change_detected"] = False
    return steps


# Fields an owner may not set directly on their profile
PROFILE_PROTECTED_FIELDS = {
    "_id",
    "id",
    "user_id",
    "verification_id",
    "plan_assignment",
    "upgrades",
    "upgrade_history",
    "is_deleted",
    "deleted_at",
    "created_at",
    "updated_at",
}
