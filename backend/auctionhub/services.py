"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and auxiliary logic. Services perform validation, execute domain logic
and persist aggregates via repositories; failures are raised as
`errors.AuctionError` subclasses and mapped to responses centrally.

Bid placement, bid cancellation and auction closing each write several
rows. Those writes are staged on the session and committed once, and
the item row is only changed through a compare-and-swap on
`current_bid` (or `status`), so concurrent requests cannot leave two
active bids or a stale high bid behind.
"""

import logging
import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import BadRequest, BidConflict, Forbidden, NotFound, Unauthorized
from .schemas import BidIn, ItemCreateIn, ItemUpdateIn, ProfileUpdateIn, SignupIn
from .utils.email import EmailService
from .utils.helpers import auction_performance, auction_stats, generate_verification_code

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger("auctionhub.services")


def create_access_token(user_id: int) -> str:
    """Sign a bearer token carrying `user_id`, valid for `JWT_EXPIRE_DAYS`."""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.JWT_EXPIRE_DAYS)
    payload = {"user_id": user_id, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class AuthService:
    """Account operations: signup, signin, email verification and profile edits."""
    def __init__(self, session: Session, mailer: Optional[EmailService] = None):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.mailer = mailer or EmailService()

    def _issue_code(self, user: models.User) -> str:
        code = generate_verification_code()
        user.email_verification_code = code
        user.email_verification_expires = models.utcnow() + timedelta(minutes=settings.VERIFICATION_CODE_TTL_MINUTES)
        return code

    def _deliver_code(self, user: models.User, code: str) -> Optional[str]:
        if not self.mailer.enabled:
            return code
        if not self.mailer.send_verification(user.email, user.name, code, settings.VERIFICATION_CODE_TTL_MINUTES):
            logger.warning("verification_email_failed user_id=%s", user.id)
        return None

    def signup(self, payload: SignupIn) -> dict:
        """Create an unverified account and send its verification code.

        Returns `{user, token, verification_code}` where the code is only
        set when no email provider is configured (dev delivery). A provider
        failure never exposes the code.
        """
        if self.user_repo.get_by_email(payload.email):
            raise BadRequest("User already exists with this email")
        user = models.User(
            name=payload.name,
            email=payload.email.lower(),
            password_hash=PWD_CTX.hash(payload.password),
        )
        code = self._issue_code(user)
        user = self.user_repo.create(user)
        logger.info("user_signed_up user_id=%s", user.id)
        return {
            "user": user,
            "token": create_access_token(user.id),
            "verification_code": self._deliver_code(user, code),
        }

    def signin(self, email: str, password: str) -> dict:
        user = self.user_repo.get_by_email(email)
        if not user or not PWD_CTX.verify(password, user.password_hash):
            logger.info("signin_failed email=%s", email)
            raise Unauthorized("Invalid email or password")
        if not user.is_active:
            raise Unauthorized("Your account has been deactivated")
        return {"user": user, "token": create_access_token(user.id)}

    def verify_email(self, email: str, code: str) -> models.User:
        user = self.user_repo.get_by_email(email)
        now = models.utcnow()
        if (
            not user
            or not user.email_verification_code
            or not secrets.compare_digest(user.email_verification_code, code)
            or user.email_verification_expires is None
            or models.as_utc(user.email_verification_expires) <= now
        ):
            raise BadRequest("Invalid or expired verification code")
        user.is_email_verified = True
        user.email_verification_code = None
        user.email_verification_expires = None
        return self.user_repo.save(user)

    def resend_verification(self, email: str) -> Optional[str]:
        """Issue a fresh code. Returns it only when no email provider is configured."""
        user = self.user_repo.get_by_email(email)
        if not user:
            raise NotFound("User not found")
        if user.is_email_verified:
            raise BadRequest("Email is already verified")
        code = self._issue_code(user)
        user = self.user_repo.save(user)
        return self._deliver_code(user, code)

    def update_profile(self, user_id: int, payload: ProfileUpdateIn) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None:
                continue
            setattr(user, field, str(value) if field == "profile_image" else value)
        return self.user_repo.save(user)


class ItemService:
    """Listing, editing and closing auctions."""
    def __init__(self, session: Session):
        self.session = session
        self.item_repo = repositories.ItemRepository(session)
        self.bid_repo = repositories.BidRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def _get_or_404(self, item_id: int) -> models.Item:
        item = self.item_repo.get(item_id)
        if not item:
            raise NotFound("Item not found")
        return item

    def _get_owned(self, user: models.User, item_id: int, action: str) -> models.Item:
        item = self._get_or_404(item_id)
        if item.seller_id != user.id:
            raise Forbidden(f"Not authorized to {action} this item")
        return item

    def search(self, **filters) -> tuple[List[models.Item], int]:
        return self.item_repo.search(models.utcnow(), **filters)

    def featured(self, limit: int = 10) -> List[models.Item]:
        return self.item_repo.list_featured(models.utcnow(), limit=limit)

    def ending_soon(self, hours: int = 24, limit: int = 10) -> List[models.Item]:
        now = models.utcnow()
        return self.item_repo.list_ending_before(now, now + timedelta(hours=hours), limit=limit)

    def view(self, item_id: int) -> models.Item:
        """Fetch an item for display and count the view."""
        item = self._get_or_404(item_id)
        self.item_repo.increment_views(item.id)
        return self.item_repo.get(item_id)

    def create(self, seller: models.User, payload: ItemCreateIn) -> models.Item:
        item = models.Item(
            name=payload.name,
            description=payload.description,
            category=payload.category.value,
            condition=payload.condition.value,
            location=payload.location or "Not specified",
            starting_price=round(payload.starting_price, 2),
            current_bid=round(payload.starting_price, 2),
            min_bid_increment=round(payload.min_bid_increment, 2),
            photo=str(payload.photo) if payload.photo else models.DEFAULT_ITEM_PHOTO,
            seller_id=seller.id,
            auction_end_date=models.as_utc(payload.auction_end_date),
        )
        item = self.item_repo.create(item)
        logger.info("item_listed item_id=%s seller_id=%s", item.id, seller.id)
        return item

    def update(self, user: models.User, item_id: int, payload: ItemUpdateIn) -> models.Item:
        item = self._get_owned(user, item_id, "update")
        if item.bid_count > 0:
            raise BadRequest("Cannot edit item that has bids")
        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None:
                continue
            if field == "starting_price":
                item.starting_price = round(value, 2)
                item.current_bid = round(value, 2)
            elif field == "auction_end_date":
                item.auction_end_date = models.as_utc(value)
            elif field in ("category", "condition"):
                setattr(item, field, value.value if hasattr(value, "value") else value)
            elif field == "photo":
                item.photo = str(value)
            else:
                setattr(item, field, value)
        return self.item_repo.save(item)

    def delete(self, user: models.User, item_id: int) -> None:
        item = self._get_owned(user, item_id, "delete")
        if item.bid_count > 0:
            raise BadRequest("Cannot delete item that has bids")
        self.item_repo.delete(item)
        logger.info("item_deleted item_id=%s", item_id)

    def set_photo(self, user: models.User, item_id: int, photo_path: str) -> models.Item:
        item = self._get_owned(user, item_id, "update")
        item.photo = photo_path
        return self.item_repo.save(item)

    def check_photo_owner(self, user: models.User, item_id: int) -> models.Item:
        return self._get_owned(user, item_id, "update")

    def report(self, item_id: int) -> dict:
        item = self._get_or_404(item_id)
        stats = auction_stats(self.bid_repo.all_for_item(item.id))
        return {"item": item, "statistics": stats, "performance": auction_performance(item, stats)}

    def end_auction(self, item: models.Item, now: Optional[datetime] = None) -> Optional[dict]:
        """Close one auction in a single transaction.

        The highest bid (earliest among equal amounts) wins: the item becomes
        `sold`, the winning bid `won` and every other bid `lost`; the seller's
        `items_sold` and the winner's `total_spent` grow accordingly. Without
        bids the item just becomes `ended`. The close only applies while the
        item still shows the winning amount as its current bid, so a bid
        withdrawn meanwhile cannot win. Returns a summary, or None if the
        item changed or was closed by another process; a later run retries.
        """
        now = now or models.utcnow()
        winning = self.bid_repo.highest_for_item(item.id)
        try:
            if winning:
                closed = self.item_repo.stage_close(item.id, models.ItemStatus.sold.value, now,
                                                    winner_id=winning.bidder_id, winning_bid=winning.amount,
                                                    expected_bid=winning.amount)
            else:
                closed = self.item_repo.stage_close(item.id, models.ItemStatus.ended.value, now)
            if not closed:
                self.session.rollback()
                logger.info("auction_close_skipped item_id=%s", item.id)
                return None
            if winning:
                self.bid_repo.stage_settle(item.id, winning.id, now)
                self.user_repo.stage_increment(item.seller_id, items_sold=1)
                self.user_repo.stage_increment(winning.bidder_id, total_spent=winning.amount)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("auction_closed item_id=%s winner_id=%s amount=%s",
                    item.id, winning.bidder_id if winning else None, winning.amount if winning else None)
        return {
            "item_id": item.id,
            "status": models.ItemStatus.sold.value if winning else models.ItemStatus.ended.value,
            "winner_id": winning.bidder_id if winning else None,
            "winning_bid": winning.amount if winning else None,
        }

    def claim_ending_soon(self, hours: int = 24, now: Optional[datetime] = None) -> List[dict]:
        """Open items ending within `hours` whose bidders were not warned yet.

        Each item is flagged before it is returned, so every bidder gets a
        single notice across repeated runs. Returns `[{item, bidders}]`.
        """
        now = now or models.utcnow()
        claimed = []
        for item in self.item_repo.list_ending_unnotified(now, now + timedelta(hours=hours)):
            if not self.item_repo.stage_mark_ending_notified(item.id):
                self.session.rollback()
                continue
            bidder_ids = self.bid_repo.bidder_ids_for_item(item.id)
            self.session.commit()
            claimed.append({"item": item, "bidders": list(self.user_repo.get_many(bidder_ids).values())})
        return claimed

    def close_expired(self, now: Optional[datetime] = None) -> List[dict]:
        """Close every auction whose end date has passed."""
        now = now or models.utcnow()
        results = []
        for item in self.item_repo.list_expired_active(now):
            summary = self.end_auction(item, now)
            if summary:
                results.append(summary)
        return results


class BidService:
    """Place, cancel and list bids."""
    def __init__(self, session: Session):
        self.session = session
        self.item_repo = repositories.ItemRepository(session)
        self.bid_repo = repositories.BidRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def place(self, bidder: models.User, payload: BidIn) -> dict:
        """Accept a bid if it beats the current bid by the item's increment.

        Returns `{bid, item, outbid_user_ids}`. Raises `BidConflict` when
        another bid was accepted between reading the item and writing it.
        """
        now = models.utcnow()
        amount = payload.amount
        item = self.item_repo.get(payload.item_id)
        if not item:
            raise NotFound("Item not found")
        if not item.is_open(now):
            raise BadRequest("Auction has ended or item is not active")
        if not self.user_repo.get(bidder.id):
            raise NotFound("Bidder not found")
        if item.seller_id == bidder.id:
            raise BadRequest("You cannot bid on your own item")
        minimum = item.minimum_next_bid
        if amount < minimum:
            logger.info("bid_rejected item_id=%s bidder_id=%s amount=%.2f minimum=%.2f",
                        item.id, bidder.id, amount, minimum)
            raise BadRequest(
                f"Bid must be at least ${minimum:.2f} (current bid + ${item.min_bid_increment:.2f} increment)",
                data={"minimumBid": minimum},
            )

        observed = item.current_bid
        try:
            if not self.item_repo.stage_accept_bid(item.id, observed, amount, now):
                self.session.rollback()
                self._raise_conflict(item)
            outbid_user_ids = [uid for uid in self.bid_repo.active_bidder_ids(item.id) if uid != bidder.id]
            self.bid_repo.stage_mark_outbid(item.id, now)
            first_on_item = self.bid_repo.count_by_bidder_on_item(item.id, bidder.id) == 0
            bid = models.Bid(
                item_id=item.id,
                bidder_id=bidder.id,
                amount=amount,
                status=models.BidStatus.active.value,
                created_at=now,
                updated_at=now,
            )
            self.session.add(bid)
            if first_on_item:
                self.user_repo.stage_increment(bidder.id, successful_bids=1)
            self.session.commit()
        except BidConflict:
            raise
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(bid)
        self.session.refresh(item)
        logger.info("bid_placed bid_id=%s item_id=%s bidder_id=%s amount=%.2f", bid.id, item.id, bidder.id, amount)
        return {"bid": bid, "item": item, "outbid_user_ids": sorted(set(outbid_user_ids))}

    def _raise_conflict(self, item: models.Item):
        self.session.refresh(item)
        logger.warning("bid_conflict item_id=%s current_bid=%.2f", item.id, item.current_bid)
        if not item.is_open():
            raise BadRequest("Auction has ended or item is not active")
        raise BidConflict(
            f"Another bid was accepted first; current bid is now ${item.current_bid:.2f}",
            data={"currentBid": item.current_bid, "minimumNextBid": item.minimum_next_bid},
        )

    def cancel(self, user: models.User, bid_id: int) -> models.Item:
        """Withdraw the caller's active bid within the cancellation window.

        The previous highest bid becomes active again (or the price falls
        back to the starting price) and the bid counters are corrected, all
        in one transaction.
        """
        now = models.utcnow()
        bid = self.bid_repo.get(bid_id)
        if not bid:
            raise NotFound("Bid not found")
        if bid.bidder_id != user.id:
            raise Forbidden("Not authorized to delete this bid")
        if bid.status != models.BidStatus.active.value:
            raise BadRequest("Can only cancel active bids")
        window = settings.BID_CANCEL_WINDOW_SECONDS
        if (now - models.as_utc(bid.created_at)).total_seconds() > window:
            minutes = window // 60
            raise BadRequest(f"Bid can only be cancelled within {minutes} minutes of placement")
        item = self.item_repo.get(bid.item_id)
        if not item:
            raise NotFound("Item not found")
        if not item.is_open(now):
            raise BadRequest("Cannot cancel a bid after the auction has ended")

        previous = self.bid_repo.highest_for_item(item.id, before=bid.created_at, exclude_bid_id=bid.id)
        restored = previous.amount if previous else item.starting_price
        try:
            if not self.item_repo.stage_revert_bid(item.id, bid.amount, restored, now):
                self.session.rollback()
                self._raise_conflict(item)
            self.session.delete(bid)
            if previous:
                previous.status = models.BidStatus.active.value
                previous.updated_at = now
                self.session.add(previous)
            if self.bid_repo.count_by_bidder_on_item(item.id, user.id, exclude_bid_id=bid_id) == 0:
                self.user_repo.stage_increment(user.id, successful_bids=-1)
            self.session.commit()
        except BidConflict:
            raise
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(item)
        logger.info("bid_cancelled bid_id=%s item_id=%s restored_bid=%.2f", bid_id, item.id, item.current_bid)
        return item

    def for_item(self, item_id: int, page: int = 1, limit: int = 10) -> dict:
        item = self.item_repo.get(item_id)
        if not item:
            raise NotFound("Item not found")
        bids = self.bid_repo.list_for_item(item_id, page=page, limit=limit)
        total = self.bid_repo.count_for_item(item_id)
        return {
            "item": item,
            "bids": bids,
            "bidders": self.user_repo.get_many([b.bidder_id for b in bids]),
            "pagination": {
                "current": page,
                "total": math.ceil(total / limit) if limit else 0,
                "count": len(bids),
                "totalBids": total,
            },
        }

    def history(self, item_id: int, limit: int = 20) -> dict:
        item = self.item_repo.get(item_id)
        if not item:
            raise NotFound("Item not found")
        bids = self.bid_repo.history_for_item(item_id, limit=limit)
        return {
            "item": item,
            "bids": bids,
            "bidders": self.user_repo.get_many([b.bidder_id for b in bids]),
            "total": self.bid_repo.count_for_item(item_id),
        }

    def for_user(self, requester: models.User, user_id: int) -> dict:
        """Split a user's bids into those on open auctions and the rest."""
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        if requester.id != user_id:
            raise Forbidden("Not authorized to view these bids")
        now = models.utcnow()
        bids = self.bid_repo.list_for_user(user_id)
        items = {}
        for item_id in {b.item_id for b in bids}:
            item = self.item_repo.get(item_id)
            if item:
                items[item_id] = item
        active, past = [], []
        for bid in bids:
            item = items.get(bid.item_id)
            if item is not None and item.is_open(now):
                active.append((bid, item))
            else:
                past.append((bid, item))
        return {"user": user, "active": active, "past": past, "now": now}

    def winning_for_user(self, requester: models.User, user_id: int) -> dict:
        if requester.id != user_id:
            raise Forbidden("Not authorized to view these bids")
        now = models.utcnow()
        pairs = self.bid_repo.list_winning_for_user(user_id, now)
        sellers = self.user_repo.get_many([item.seller_id for _, item in pairs])
        return {"pairs": pairs, "sellers": sellers, "now": now}
