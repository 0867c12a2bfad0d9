"""
Request schemas for the BashaChai API.

Documents are stored in MongoDB with camelCase keys (the wire format the
web client uses); models accept those keys through aliases. Collections:
"user", "properties", "reviews", "audit_logs".
"""

import math
import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError

ListingType = Literal["rent", "sale"]
Role = Literal["admin", "user"]

DEFAULT_CATEGORY = "Flat to Rent"
DEFAULT_TYPE = "rent"
CATEGORIES = (
    "Flat to Rent",
    "Single Room to Rent",
    "Sublet Room to Rent",
    "Office Space to Rent",
    "Girls Hostel to Rent",
)

# Fields a property update may touch. _id, createdAt and ownership are never copied.
PROPERTY_UPDATABLE_FIELDS = ("title", "location", "price", "beds", "baths", "description", "category", "type", "size")

_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")
MAX_ROOM_COUNT = 1000

_EMAIL = TypeAdapter(EmailStr)


def coerce_count(value: Any) -> int:
    """Parse a room count the lenient way: leading integer or 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


def _required_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Valid {name} is required")
    return value.strip()


def _room_count(value: Any, name: str) -> int:
    count = coerce_count(value)
    if count < 0 or count > MAX_ROOM_COUNT:
        raise ValueError(f"{name} must be between 0 and {MAX_ROOM_COUNT}")
    return count


def parse_email(value: Any, message: str = "Valid email is required") -> str:
    """Validate a query or form e-mail the way body models do; raises a 400."""
    try:
        return _EMAIL.validate_python(value.strip() if isinstance(value, str) else value)
    except PydanticValidationError:
        raise ValidationError(message)


class PropertyCreate(BaseModel):
    title: str
    location: str
    price: str
    beds: int = 0
    baths: int = 0
    description: str = ""
    category: str = DEFAULT_CATEGORY
    type: ListingType = DEFAULT_TYPE
    size: str = ""

    @field_validator("title", "location", mode="before")
    @classmethod
    def check_text(cls, v, info):
        return _required_text(v, info.field_name)

    @field_validator("price", mode="before")
    @classmethod
    def check_price(cls, v):
        if v is None or isinstance(v, bool) or str(v).strip() == "":
            raise ValueError("Price is required")
        return str(v).strip()

    @field_validator("beds", "baths", mode="before")
    @classmethod
    def check_counts(cls, v, info):
        return _room_count(v, info.field_name)

    @field_validator("description", "size", mode="before")
    @classmethod
    def check_optional_text(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("category", mode="before")
    @classmethod
    def check_category(cls, v):
        return v or DEFAULT_CATEGORY

    @field_validator("type", mode="before")
    @classmethod
    def check_type(cls, v):
        return v or DEFAULT_TYPE


class PropertyUpdate(BaseModel):
    title: Optional[str] = None
    location: Optional[str] = None
    price: Optional[str] = None
    beds: Optional[int] = None
    baths: Optional[int] = None
    description: Optional[str] = None
    category: Optional[str] = None
    type: Optional[ListingType] = None
    size: Optional[str] = None

    @field_validator("title", "location", "description", mode="before")
    @classmethod
    def check_text(cls, v, info):
        if v is None:
            return None
        return _required_text(v, info.field_name)

    @field_validator("price", "size", "category", mode="before")
    @classmethod
    def check_as_str(cls, v):
        if v is None:
            return None
        return str(v).strip()

    @field_validator("beds", "baths", mode="before")
    @classmethod
    def check_counts(cls, v, info):
        return None if v is None else _room_count(v, info.field_name)

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        return {k: v for k, v in data.items() if k in PROPERTY_UPDATABLE_FIELDS and v is not None}


class UserRequest(BaseModel):
    """Body of POST /api/user: registration, or a profile update when action == "update"."""
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    action: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    profile_picture: Optional[str] = Field(None, alias="profilePicture")
    firebase_uid: Optional[str] = Field(None, alias="firebaseUid")

    @field_validator("email", mode="before")
    @classmethod
    def check_email_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("phone", mode="before")
    @classmethod
    def check_phone_is_text(cls, v):
        if v is not None and not isinstance(v, str):
            raise ValueError("Valid phone is required")
        return v


class ReviewCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    property_id: str = Field(..., alias="propertyId")
    rating: int
    comment: str
    user_name: str = Field(..., alias="userName")
    user_email: EmailStr = Field(..., alias="userEmail")

    @field_validator("user_email", mode="before")
    @classmethod
    def check_email_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("property_id", "comment", "user_name", mode="before")
    @classmethod
    def check_present(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Missing required fields")
        return v.strip()

    @field_validator("rating", mode="before")
    @classmethod
    def check_rating(cls, v):
        if v is None or v == "":
            raise ValueError("Missing required fields")
        rating = coerce_count(v)
        if rating < 1 or rating > 5:
            raise ValueError("Rating must be between 1 and 5")
        return rating


class InquiryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(..., alias="fullName")
    mobile: str
    email: Optional[EmailStr] = None
    type: Optional[str] = None
    location: Optional[str] = None
    message: str

    @field_validator("full_name", "mobile", "message", mode="before")
    @classmethod
    def check_present(cls, v, info):
        return _required_text(v, info.field_name)

    @field_validator("email", mode="before")
    @classmethod
    def check_optional_email(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v or None

    def as_mail(self) -> dict:
        return {
            "fullName": self.full_name,
            "mobile": self.mobile,
            "email": self.email,
            "type": self.type,
            "location": self.location,
            "message": self.message,
        }
