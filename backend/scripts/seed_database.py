"""CLI script to fill the backend DB with demo users, items and bids.
Usage: python scripts/seed_database.py [--keep] [--items N]
"""
import sys
import argparse
import pathlib
from datetime import timedelta
# Ensure `backend/` is on sys.path so `auctionhub` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from auctionhub import models
from auctionhub.repositories import UserRepository
from auctionhub.database import create_db_and_tables, drop_db_and_tables, engine
from auctionhub.schemas import BidIn
from auctionhub.services import PWD_CTX, BidService

DEMO_PASSWORD = "Password123"

USERS = [
    ("John Doe", "john@example.com", "Computer science student who loves gadgets."),
    ("Jane Smith", "jane@example.com", "Art student selling prints and sketchbooks."),
    ("Mike Johnson", "mike@example.com", "Always looking for cheap textbooks."),
    ("Sarah Wilson", "sarah@example.com", None),
]

ITEMS = [
    ("MacBook Pro 13-inch", "Lightly used 2021 MacBook Pro, 16GB RAM, charger included.",
     "Electronics", "like-new", 650.0, 10.0, 5, True),
    ("Calculus Textbook", "Stewart Calculus 8th edition with a few highlighted pages.",
     "Books", "good", 25.0, 1.0, 3, False),
    ("Vintage Denim Jacket", "Classic 90s denim jacket, size M, barely worn.",
     "Fashion", "good", 30.0, 2.0, 7, True),
    ("Desk Lamp", "Adjustable LED desk lamp with three brightness levels.",
     "Home", "new", 15.0, 1.0, 1, False),
    ("Tennis Racket", "Wilson tennis racket with cover, strings replaced last month.",
     "Sports", "fair", 40.0, 2.5, 10, False),
    ("Watercolour Print", "Original A3 watercolour of the campus library.",
     "Art", "new", 50.0, 5.0, 14, True),
    ("Pokemon Card Set", "Base set binder with 40 cards, no holos.",
     "Collectibles", "good", 60.0, 5.0, 2, False),
]


def main(keep: bool = False, max_items: int = len(ITEMS)):
    """Reset the tables (unless `keep`) and insert the demo data.

    Bids go through `BidService.place` so counters and statuses end up
    exactly as they would through the API.
    """
    if not keep:
        drop_db_and_tables()
    create_db_and_tables()
    with Session(engine) as session:
        users = []
        created = 0
        user_repo = UserRepository(session)
        for name, email, bio in USERS:
            existing = user_repo.get_by_email(email)
            if existing:
                users.append(existing)
                continue
            user = models.User(
                name=name,
                email=email,
                password_hash=PWD_CTX.hash(DEMO_PASSWORD),
                bio=bio,
                is_email_verified=True,
            )
            session.add(user)
            users.append(user)
            created += 1
        session.commit()
        for user in users:
            session.refresh(user)
        print(f'Created {created} users, reused {len(users) - created} (password: {DEMO_PASSWORD})')

        now = models.utcnow()
        items = []
        for idx, (name, desc, category, condition, price, step, days, featured) in enumerate(ITEMS[:max_items]):
            item = models.Item(
                name=name,
                description=desc,
                category=category,
                condition=condition,
                starting_price=price,
                current_bid=price,
                min_bid_increment=step,
                seller_id=users[idx % 2].id,
                auction_end_date=now + timedelta(days=days),
                is_featured=featured,
                location="Campus",
            )
            session.add(item)
            items.append(item)
        session.commit()
        for item in items:
            session.refresh(item)
        print(f'Created {len(items)} items')

        svc = BidService(session)
        placed = 0
        for item in items[:3]:
            bidders = [u for u in users if u.id != item.seller_id][:2]
            amount = item.current_bid
            for bidder in bidders:
                amount = round(amount + item.min_bid_increment, 2)
                svc.place(bidder, BidIn(item_id=item.id, amount=amount))
                placed += 1
        print(f'Placed {placed} bids')


if __name__ == '__main__':
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument('--keep', action='store_true', help='keep existing rows instead of dropping tables first')
    p.add_argument('--items', type=int, default=len(ITEMS), help='number of demo items to create')
    args = p.parse_args()
    main(keep=args.keep, max_items=args.items)
