"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and carry the field-level rules the
controllers rely on. Clients send camelCase keys (`startingPrice`,
`itemId`...); snake_case names are accepted too.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator
from pydantic.alias_generators import to_camel

from .models import ItemCategory, ItemCondition, as_utc, utcnow

NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
MAX_AUCTION_DAYS = 30


def _letters_only(v: str) -> str:
    if not NAME_RE.match(v):
        raise ValueError("Name can only contain letters and spaces")
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class SignupIn(CamelModel):
    """Payload for account creation."""
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def name_letters_only(cls, v: str) -> str:
        return _letters_only(v)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        if not (re.search(r"[a-z]", v) and re.search(r"[A-Z]", v) and re.search(r"\d", v)):
            raise ValueError("Password must contain at least one uppercase letter, one lowercase letter, and one number")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class SigninIn(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class VerifyEmailIn(CamelModel):
    email: EmailStr
    code: str = Field(pattern=r"^\d{6}$")

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class ResendVerificationIn(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class ProfileUpdateIn(CamelModel):
    """Editable profile fields; omitted fields are left unchanged."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=r"^\+?[0-9 ()-]{7,20}$")
    address: Optional[str] = Field(default=None, max_length=200)
    bio: Optional[str] = Field(default=None, max_length=200)
    profile_image: Optional[HttpUrl] = None

    @field_validator("name")
    @classmethod
    def name_letters_only(cls, v: Optional[str]) -> Optional[str]:
        return _letters_only(v) if v is not None else v


def _check_end_date(v: datetime) -> datetime:
    v = as_utc(v)
    now = utcnow()
    if v <= now:
        raise ValueError("Auction end date must be in the future")
    if v > now + timedelta(days=MAX_AUCTION_DAYS):
        raise ValueError(f"Auction cannot run for more than {MAX_AUCTION_DAYS} days")
    return v


class ItemCreateIn(CamelModel):
    """Request format for listing a new item."""
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    starting_price: float = Field(ge=0.01, le=100000)
    category: ItemCategory
    auction_end_date: datetime
    photo: Optional[HttpUrl] = None
    condition: ItemCondition = ItemCondition.good
    location: Optional[str] = Field(default=None, max_length=100)
    min_bid_increment: float = Field(default=1.0, ge=0.01, le=10000)

    @field_validator("auction_end_date")
    @classmethod
    def end_date_window(cls, v: datetime) -> datetime:
        return _check_end_date(v)


class ItemUpdateIn(CamelModel):
    """Partial update of an item that has not received bids yet."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=500)
    starting_price: Optional[float] = Field(default=None, ge=0.01, le=100000)
    category: Optional[ItemCategory] = None
    auction_end_date: Optional[datetime] = None
    photo: Optional[HttpUrl] = None
    condition: Optional[ItemCondition] = None
    location: Optional[str] = Field(default=None, max_length=100)
    min_bid_increment: Optional[float] = Field(default=None, ge=0.01, le=10000)

    @field_validator("auction_end_date")
    @classmethod
    def end_date_window(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _check_end_date(v) if v is not None else v


class BidIn(CamelModel):
    """Request model for placing a bid; the bidder is the authenticated user."""
    item_id: int = Field(ge=1)
    amount: float = Field(ge=0.01, le=1000000)

    @field_validator("amount")
    @classmethod
    def cents(cls, v: float) -> float:
        return round(v, 2)
