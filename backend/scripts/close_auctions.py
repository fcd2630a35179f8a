"""CLI script to close every auction whose end date has passed.
Usage: python scripts/close_auctions.py [--no-email] [--ending-within HOURS]

Meant to be run periodically (cron or a scheduler). When a mail provider
is configured, winners are emailed and bidders on auctions ending within
`--ending-within` hours get a one-off reminder.
"""
import sys
import argparse
import logging
import pathlib
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from auctionhub import repositories
from auctionhub.config import settings
from auctionhub.database import create_db_and_tables, engine
from auctionhub.services import ItemService
from auctionhub.utils.email import EmailService
from auctionhub.utils.helpers import time_left


def notify_ending_soon(session: Session, mailer: EmailService, hours: int) -> int:
    """Email every bidder of an auction ending within `hours`; returns the number of emails sent."""
    sent = 0
    for entry in ItemService(session).claim_ending_soon(hours=hours):
        item = entry["item"]
        remaining = time_left(item.auction_end_date)["text"]
        for bidder in entry["bidders"]:
            if mailer.send_ending_soon(bidder.email, bidder.name, item.name, remaining):
                sent += 1
    return sent


def main(notify: bool = True, ending_within: int = 24) -> list:
    create_db_and_tables()
    mailer = EmailService()
    reminders = 0
    with Session(engine) as session:
        results = ItemService(session).close_expired()
        if notify and mailer.enabled:
            users = repositories.UserRepository(session)
            items = repositories.ItemRepository(session)
            for summary in results:
                if summary["winner_id"] is None:
                    continue
                winner = users.get(summary["winner_id"])
                item = items.get(summary["item_id"])
                if winner and item:
                    mailer.send_auction_won(winner.email, winner.name, item.name, summary["winning_bid"])
            if ending_within > 0:
                reminders = notify_ending_soon(session, mailer, ending_within)
    for summary in results:
        print(f'item {summary["item_id"]}: {summary["status"]} '
              f'(winner={summary["winner_id"]}, bid={summary["winning_bid"]})')
    print(f'Closed {len(results)} auctions, sent {reminders} ending-soon reminders')
    return results


if __name__ == '__main__':
    logging.basicConfig(level=settings.LOG_LEVEL)
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument('--no-email', action='store_true', help='do not email winners or bidders')
    p.add_argument('--ending-within', type=int, default=24,
                   help='remind bidders of auctions ending within this many hours (0 disables)')
    args = p.parse_args()
    main(notify=not args.no_email, ending_within=args.ending_within)
