"""
Request and response bodies.

The SPA speaks camelCase; models accept either camelCase or snake_case on
input and always answer in camelCase.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from pipapal.db.models import CollectionStatus, MaterialStatus, UserRole, WasteType


class APIModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ----------------------- Auth / users -----------------------
class RegisterBody(APIModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    role: UserRole = UserRole.HOUSEHOLD
    address: Optional[str] = None
    phone: Optional[str] = None


class LoginBody(APIModel):
    username: str
    password: str


class FirebaseLoginBody(APIModel):
    id_token: str
    role: UserRole = UserRole.HOUSEHOLD
    username: Optional[str] = None


class UserOut(APIModel):
    id: int
    username: str
    email: str
    full_name: str
    role: str
    address: Optional[str] = None
    phone: Optional[str] = None
    phone_verified: bool = False
    email_verified: bool = False
    sustainability_score: int = 0
    onboarding_completed: bool = False
    organization_type: Optional[str] = None
    organization_name: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_person_position: Optional[str] = None
    contact_person_phone: Optional[str] = None
    contact_person_email: Optional[str] = None
    is_certified: Optional[bool] = None
    certification_details: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthOut(APIModel):
    token: str
    user: UserOut


class UserUpdate(APIModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    organization_type: Optional[str] = None
    organization_name: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_person_position: Optional[str] = None
    contact_person_phone: Optional[str] = None
    contact_person_email: Optional[str] = None
    is_certified: Optional[bool] = None
    certification_details: Optional[str] = None
    onboarding_completed: Optional[bool] = None


class OnboardingBody(APIModel):
    organization_type: Optional[str] = None
    organization_name: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_person_position: Optional[str] = None
    contact_person_phone: Optional[str] = None
    contact_person_email: Optional[str] = None
    is_certified: Optional[bool] = None
    certification_details: Optional[str] = None


class PasswordChange(APIModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class PhoneSendBody(APIModel):
    phone: str = Field(..., min_length=7)


class PhoneVerifyBody(APIModel):
    phone: str
    code: str = Field(..., min_length=6, max_length=6)


class EmailSendBody(APIModel):
    email: Optional[EmailStr] = None


class EmailVerifyBody(APIModel):
    email: Optional[EmailStr] = None
    code: str = Field(..., min_length=6, max_length=6)


# ----------------------- Collections -----------------------
class Location(APIModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class CollectionCreate(APIModel):
    waste_type: WasteType
    waste_description: Optional[str] = None
    scheduled_date: datetime
    waste_amount: Optional[float] = Field(None, ge=0)
    address: str = Field(..., min_length=1)
    location: Optional[Location] = None
    notes: Optional[str] = None
    status: Literal["pending", "scheduled"] = "scheduled"

    @field_validator("scheduled_date")
    @classmethod
    def _scheduled_utc(cls, value):
        return _as_utc(value)


class CollectionUpdate(APIModel):
    waste_type: Optional[WasteType] = None
    waste_description: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    waste_amount: Optional[float] = Field(None, ge=0)
    address: Optional[str] = Field(None, min_length=1)
    location: Optional[Location] = None
    notes: Optional[str] = None
    status: Optional[CollectionStatus] = None

    @field_validator("scheduled_date")
    @classmethod
    def _scheduled_utc(cls, value):
        return _as_utc(value)


class CollectionOut(APIModel):
    id: int
    user_id: int
    collector_id: Optional[int] = None
    waste_type: str
    waste_description: Optional[str] = None
    status: str
    scheduled_date: datetime
    completed_date: Optional[datetime] = None
    waste_amount: Optional[float] = None
    address: str
    location: Optional[dict] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class RatingBody(APIModel):
    score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class RatingOut(APIModel):
    id: int
    collection_id: int
    rater_id: int
    collector_id: int
    score: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class RatingSummary(APIModel):
    collector_id: int
    count: int
    average: Optional[float] = None
    ratings: List[RatingOut]


# ----------------------- Dashboard -----------------------
class ImpactOut(APIModel):
    water_saved: float
    co2_reduced: float
    trees_equivalent: float
    energy_conserved: float
    waste_amount: float


class BadgeOut(APIModel):
    id: int
    user_id: int
    badge_type: str
    awarded_at: Optional[datetime] = None


class ActivityOut(APIModel):
    id: int
    user_id: int
    activity_type: str
    description: str
    points: Optional[int] = None
    created_at: Optional[datetime] = None


class EcoTipOut(APIModel):
    id: int
    category: str
    title: str
    content: str
    icon: Optional[str] = None


# ----------------------- Marketplace -----------------------
class InterestCreate(APIModel):
    collection_id: int
    message: Optional[str] = None
    offered_price: Optional[float] = Field(None, ge=0)


class InterestUpdate(APIModel):
    status: Literal["accepted", "declined"]


class InterestOut(APIModel):
    id: int
    recycler_id: int
    collection_id: int
    message: Optional[str] = None
    offered_price: Optional[float] = None
    status: str
    created_at: Optional[datetime] = None


class ListingCreate(APIModel):
    collection_id: int
    material_type: Optional[WasteType] = None
    quantity: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)


class ListingUpdate(APIModel):
    status: MaterialStatus


class ListingOut(APIModel):
    id: int
    collector_id: int
    collection_id: int
    material_type: str
    quantity: float
    description: Optional[str] = None
    location: str
    status: str
    price: Optional[float] = None
    created_at: Optional[datetime] = None


class BidCreate(APIModel):
    amount: float = Field(..., gt=0)
    message: Optional[str] = None


class BidUpdate(APIModel):
    status: Literal["accepted", "declined"]


class BidOut(APIModel):
    id: int
    material_id: int
    recycler_id: int
    amount: float
    message: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


# ----------------------- Recycling centers -----------------------
class RecyclingCenterOut(APIModel):
    id: int
    name: str
    operator: Optional[str] = None
    location: Optional[str] = None
    facility_type: Optional[str] = None
    waste_types: Optional[List[str]] = None
    address: str
    city: str
    county: Optional[str] = None
    po_box: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


# ----------------------- Messages / feedback -----------------------
class MessageCreate(APIModel):
    recipient_id: int
    content: str = Field(..., min_length=1, max_length=2000)
    collection_id: Optional[int] = None


class MessageOut(APIModel):
    id: int
    sender_id: int
    recipient_id: int
    collection_id: Optional[int] = None
    content: str
    is_read: bool
    created_at: Optional[datetime] = None


class FeedbackCreate(APIModel):
    category: Literal["bug", "feature", "service", "general"] = "general"
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)


class FeedbackOut(APIModel):
    id: int
    user_id: int
    category: str
    subject: str
    message: str
    status: str
    created_at: Optional[datetime] = None


# ----------------------- Payments -----------------------
class PaymentCreate(APIModel):
    amount: int = Field(..., gt=0)
    phone: str = Field(..., min_length=7)
    collection_id: Optional[int] = None


class PaymentOut(APIModel):
    id: int
    user_id: int
    collection_id: Optional[int] = None
    amount: int
    currency: str
    phone: str
    status: str
    checkout_request_id: Optional[str] = None
    mpesa_receipt: Optional[str] = None
    result_desc: Optional[str] = None
    created_at: Optional[datetime] = None
