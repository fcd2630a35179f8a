"""SQLModel data models.

This module defines the marketplace tables: users, the items they put up
for auction and the bids placed on those items. All timestamps are
timezone-aware UTC; `as_utc` normalises values coming from clients or
from database drivers that drop the offset on read.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Index
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ItemCategory(str, Enum):
    electronics = "Electronics"
    fashion = "Fashion"
    home = "Home"
    sports = "Sports"
    books = "Books"
    art = "Art"
    collectibles = "Collectibles"


class ItemCondition(str, Enum):
    new = "new"
    like_new = "like-new"
    good = "good"
    fair = "fair"
    poor = "poor"


class ItemStatus(str, Enum):
    active = "active"
    ended = "ended"
    cancelled = "cancelled"
    sold = "sold"


class BidStatus(str, Enum):
    active = "active"
    outbid = "outbid"
    winning = "winning"
    won = "won"
    lost = "lost"


DEFAULT_PROFILE_IMAGE = "https://via.placeholder.com/100x100?text=User"
DEFAULT_ITEM_PHOTO = "https://via.placeholder.com/300x300?text=No+Image"


class User(SQLModel, table=True):
    """A registered marketplace user.

    Fields:
    - `email`: unique, always stored lowercased
    - `password_hash`: hashed password string (never store plaintext)
    - `email_verification_code` / `email_verification_expires`: pending
      6-digit code, cleared once the address is verified
    - `total_spent`, `items_sold`, `successful_bids`: rolling counters that
      are only changed inside the transactions that write bids and close
      auctions
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=50)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    profile_image: str = DEFAULT_PROFILE_IMAGE
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=200)
    is_email_verified: bool = False
    email_verification_code: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    total_spent: float = 0.0
    items_sold: int = 0
    successful_bids: int = 0
    rating: float = 5.0
    member_since: datetime = Field(default_factory=utcnow)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Item(SQLModel, table=True):
    """An item listed for auction.

    `current_bid` and `bid_count` are denormalised aggregates of the item's
    bids; `current_bid` starts at `starting_price`.
    """
    __table_args__ = (
        Index("ix_item_status_end", "status", "auction_end_date"),
        Index("ix_item_category_status", "category", "status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    description: str = Field(max_length=500)
    category: str = Field(default=ItemCategory.home.value)
    condition: str = Field(default=ItemCondition.good.value)
    location: str = "Not specified"
    starting_price: float
    current_bid: float
    bid_count: int = 0
    min_bid_increment: float = 1.0
    photo: str = DEFAULT_ITEM_PHOTO
    seller_id: int = Field(foreign_key="user.id", index=True)
    auction_start_date: datetime = Field(default_factory=utcnow)
    auction_end_date: datetime
    status: str = Field(default=ItemStatus.active.value)
    winner_id: Optional[int] = Field(default=None, foreign_key="user.id")
    winning_bid: Optional[float] = None
    views: int = 0
    is_featured: bool = False
    ending_soon_notified: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_open(self, now: Optional[datetime] = None) -> bool:
        """True while the item is active and its end date has not passed."""
        now = now or utcnow()
        return self.status == ItemStatus.active.value and as_utc(self.auction_end_date) > now

    @property
    def minimum_next_bid(self) -> float:
        return round(self.current_bid + self.min_bid_increment, 2)


class Bid(SQLModel, table=True):
    """A bid placed by `bidder_id` on `item_id`."""
    __table_args__ = (
        Index("ix_bid_item_amount", "item_id", "amount"),
        Index("ix_bid_bidder_created", "bidder_id", "created_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    item_id: int = Field(foreign_key="item.id", index=True)
    bidder_id: int = Field(foreign_key="user.id")
    amount: float
    status: str = Field(default=BidStatus.active.value)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
