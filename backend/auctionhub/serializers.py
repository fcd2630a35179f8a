"""Turn SQLModel rows into the camelCase JSON shapes returned by the API.

Password hashes and verification codes never leave this module.
"""

from datetime import datetime
from typing import Optional

from . import models
from .utils.helpers import isoformat, time_left


def user_summary(user: Optional[models.User]) -> Optional[dict]:
    """The public fields embedded next to items and bids."""
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "profileImage": user.profile_image,
        "rating": user.rating,
        "memberSince": isoformat(user.member_since),
    }


def user_profile(user: models.User) -> dict:
    """Everything a user may see about themselves."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "profileImage": user.profile_image,
        "phone": user.phone,
        "address": user.address,
        "bio": user.bio,
        "isEmailVerified": user.is_email_verified,
        "totalSpent": user.total_spent,
        "itemsSold": user.items_sold,
        "successfulBids": user.successful_bids,
        "rating": user.rating,
        "memberSince": isoformat(user.member_since),
        "isActive": user.is_active,
    }


def item_out(
    item: models.Item,
    *,
    seller: Optional[models.User] = None,
    winner: Optional[models.User] = None,
    now: Optional[datetime] = None,
) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "condition": item.condition,
        "location": item.location,
        "startingPrice": item.starting_price,
        "currentBid": item.current_bid,
        "bidCount": item.bid_count,
        "minBidIncrement": item.min_bid_increment,
        "minimumNextBid": item.minimum_next_bid,
        "photo": item.photo,
        "seller": user_summary(seller) if seller is not None else {"id": item.seller_id},
        "winner": user_summary(winner) if winner is not None else (
            {"id": item.winner_id} if item.winner_id else None
        ),
        "winningBid": item.winning_bid,
        "auctionStartDate": isoformat(item.auction_start_date),
        "auctionEndDate": isoformat(item.auction_end_date),
        "status": item.status,
        "isActive": item.is_open(now),
        "views": item.views,
        "isFeatured": item.is_featured,
        "timeLeft": time_left(item.auction_end_date, now),
        "createdAt": isoformat(item.created_at),
        "updatedAt": isoformat(item.updated_at),
    }


def item_brief(item: models.Item, now: Optional[datetime] = None) -> dict:
    """The subset of item fields embedded in bid listings."""
    return {
        "id": item.id,
        "name": item.name,
        "photo": item.photo,
        "currentBid": item.current_bid,
        "auctionEndDate": isoformat(item.auction_end_date),
        "status": item.status,
        "timeLeft": time_left(item.auction_end_date, now),
    }


def bid_out(
    bid: models.Bid,
    *,
    bidder: Optional[models.User] = None,
    item: Optional[dict] = None,
) -> dict:
    out = {
        "id": bid.id,
        "itemId": bid.item_id,
        "bidder": user_summary(bidder) if bidder is not None else {"id": bid.bidder_id},
        "amount": bid.amount,
        "status": bid.status,
        "createdAt": isoformat(bid.created_at),
    }
    if item is not None:
        out["item"] = item
    return out
