"""
app/schemas/profile.py

Purpose: Profile and profile verification request schemas
"""

from typing import Dict, List, Literal, Optional

from pydantic import Field

from app.schemas.base import DocumentModel
from app.models.profile import VerificationStatus


class LabeledValue(DocumentModel):
    value: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)


class Location(DocumentModel):
    country: LabeledValue
    department: LabeledValue
    city: LabeledValue


class Contact(DocumentModel):
    number: str = Field(..., min_length=1)
    whatsapp: Optional[str] = None
    telegram: Optional[str] = None


class Story(DocumentModel):
    link: str
    type: Literal["image", "video"]


class Media(DocumentModel):
    gallery: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    audios: List[str] = Field(default_factory=list)
    stories: List[Story] = Field(default_factory=list)


class Feature(DocumentModel):
    group_id: str
    value: List[str] = Field(default_factory=list)


class Slot(DocumentModel):
    start: str
    end: str
    timezone: str


class Availability(DocumentModel):
    day_of_week: str
    slots: List[Slot] = Field(default_factory=list)


class Rate(DocumentModel):
    hour: str
    price: float = Field(..., ge=0)
    delivery: bool = False


class ProfileCreate(DocumentModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    is_active: bool = False
    location: Location
    age: str
    height: str
    contact: Contact
    basic_services: List[str] = Field(default_factory=list)
    additional_services: List[str] = Field(default_factory=list)
    social_media: Dict[str, str] = Field(default_factory=dict)
    media: Media = Field(default_factory=Media)
    features: List[Feature] = Field(default_factory=list)
    availability: List[Availability] = Field(default_factory=list)
    rates: List[Rate] = Field(default_factory=list)


class ProfileUpdate(DocumentModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    is_active: Optional[bool] = None
    location: Optional[Location] = None
    age: Optional[str] = None
    height: Optional[str] = None
    contact: Optional[Contact] = None
    basic_services: Optional[List[str]] = None
    additional_services: Optional[List[str]] = None
    social_media: Optional[Dict[str, str]] = None
    media: Optional[Media] = None
    features: Optional[List[Feature]] = None
    availability: Optional[List[Availability]] = None
    rates: Optional[List[Rate]] = None


class SubscribeRequest(DocumentModel):
    plan_code: str
    variant_days: int = Field(..., gt=0)
    coupon_code: Optional[str] = None


class UpgradePurchaseRequest(DocumentModel):
    upgrade_code: str


class StepState(DocumentModel):
    is_verified: bool = False
    photo: Optional[str] = None
    video: Optional[str] = None
    notes: Optional[str] = None


class VerificationStepsUpdate(DocumentModel):
    """
    Partial step update; provided steps are merged into the stored ones.
    """
    front_photo_verification: Optional[StepState] = None
    selfie_verification: Optional[StepState] = None
    media_verification: Optional[StepState] = None
    video_call_requested: Optional[StepState] = None
    social_media: Optional[StepState] = None
    last_login: Optional[StepState] = None
    requires_independent_verification: Optional[bool] = None


class VerificationStatusUpdate(DocumentModel):
    verification_status: VerificationStatus
    reason: Optional[str] = Field(None, max_length=500)
