"""Small pure helpers shared by services and serializers."""

from __future__ import annotations

import secrets
from datetime import datetime
from typing import Iterable, Optional

from ..models import Bid, Item, as_utc, utcnow


def generate_verification_code(length: int = 6) -> str:
    """Return a zero-padded numeric code of `length` digits."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).isoformat()


def time_left(end: datetime, now: Optional[datetime] = None) -> dict:
    """Break the remaining auction time into days/hours/minutes.

    >>> time_left(datetime(2030, 1, 2, 3, 4), now=datetime(2030, 1, 1))
    {'days': 1, 'hours': 3, 'minutes': 4, 'expired': False, 'text': '1d 3h left'}
    """
    now = now or utcnow()
    remaining = int((as_utc(end) - as_utc(now)).total_seconds())
    if remaining <= 0:
        return {"days": 0, "hours": 0, "minutes": 0, "expired": True, "text": "Auction ended"}
    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days > 0:
        text = f"{days}d {hours}h left"
    elif hours > 0:
        text = f"{hours}h {minutes}m left"
    else:
        text = f"{minutes}m left"
    return {"days": days, "hours": hours, "minutes": minutes, "expired": False, "text": text}


def auction_stats(bids: Iterable[Bid]) -> dict:
    """Aggregate figures over a set of bids."""
    bids = list(bids)
    if not bids:
        return {
            "totalBids": 0,
            "uniqueBidders": 0,
            "averageBid": 0.0,
            "highestBid": 0.0,
            "lowestBid": 0.0,
            "bidSpread": 0.0,
        }
    amounts = [b.amount for b in bids]
    highest, lowest = max(amounts), min(amounts)
    return {
        "totalBids": len(bids),
        "uniqueBidders": len({b.bidder_id for b in bids}),
        "averageBid": round(sum(amounts) / len(amounts), 2),
        "highestBid": highest,
        "lowestBid": lowest,
        "bidSpread": round(highest - lowest, 2),
    }


def auction_performance(item: Item, stats: dict) -> dict:
    total_bids = stats["totalBids"]
    unique = stats["uniqueBidders"]
    return {
        "viewsToBidsRatio": f"{(total_bids / item.views * 100):.2f}%" if item.views > 0 else "0%",
        "priceIncrease": f"{((item.current_bid - item.starting_price) / item.starting_price * 100):.2f}%",
        "averageBidPerBidder": round(total_bids / unique, 1) if unique else 0,
        "popularityScore": round(item.views * 0.3 + total_bids * 0.7, 1),
    }
