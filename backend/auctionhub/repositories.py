"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
items, bids). Repositories return SQLModel objects. Simple create/save
helpers commit immediately; the bid and auction-close writes instead
stage statements on the session so the service can commit them as one
transaction.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import case, func, or_, update
from sqlmodel import Session, select

from . import models

ITEM_SORTS = {
    "newest": (models.Item.created_at.desc(),),
    "oldest": (models.Item.created_at.asc(),),
    "price-low": (models.Item.current_bid.asc(),),
    "price-high": (models.Item.current_bid.desc(),),
    "ending-soon": (models.Item.auction_end_date.asc(),),
    "most-bids": (models.Item.bid_count.desc(),),
    "most-viewed": (models.Item.views.desc(),),
    "alphabetical": (models.Item.name.asc(),),
}


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        user.updated_at = models.utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by (case-insensitive) email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email.strip().lower())
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_many(self, user_ids: Sequence[int]) -> dict:
        """Return `{id: User}` for the given ids in one query."""
        ids = {i for i in user_ids if i is not None}
        if not ids:
            return {}
        stmt = select(models.User).where(models.User.id.in_(ids))
        return {u.id: u for u in self.session.exec(stmt).all()}

    def stage_increment(self, user_id: int, **deltas) -> None:
        """Queue an atomic `counter = counter + delta` update without committing."""
        values = {name: getattr(models.User, name) + delta for name, delta in deltas.items()}
        values["updated_at"] = models.utcnow()
        self.session.exec(
            update(models.User).where(models.User.id == user_id).values(**values)
        )


class ItemRepository:
    """Query and persistence helpers for `Item` records."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, item: models.Item) -> models.Item:
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def save(self, item: models.Item) -> models.Item:
        item.updated_at = models.utcnow()
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete(self, item: models.Item) -> None:
        self.session.delete(item)
        self.session.commit()

    def get(self, item_id: int) -> Optional[models.Item]:
        """Fetch an item by id."""
        return self.session.get(models.Item, item_id)

    def refresh(self, item: models.Item) -> models.Item:
        self.session.refresh(item)
        return item

    def _open_filter(self, now: datetime):
        return (
            models.Item.status == models.ItemStatus.active.value,
            models.Item.auction_end_date > now,
        )

    def search(
        self,
        now: datetime,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        condition: Optional[str] = None,
        sort: str = "newest",
        page: int = 1,
        limit: int = 20,
    ) -> tuple[List[models.Item], int]:
        """Return one page of open items matching the filters plus the total match count."""
        conditions = list(self._open_filter(now))
        if category and category != "ALL":
            conditions.append(models.Item.category == category)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(or_(
                func.lower(models.Item.name).like(pattern),
                func.lower(models.Item.description).like(pattern),
            ))
        if min_price is not None:
            conditions.append(models.Item.current_bid >= min_price)
        if max_price is not None:
            conditions.append(models.Item.current_bid <= max_price)
        if condition:
            conditions.append(models.Item.condition == condition)

        order_by = ITEM_SORTS.get(sort, ITEM_SORTS["newest"])
        stmt = (
            select(models.Item)
            .where(*conditions)
            .order_by(*order_by, models.Item.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(models.Item).where(*conditions)
        return self.session.exec(stmt).all(), self.session.exec(count_stmt).one()

    def list_featured(self, now: datetime, limit: int = 10) -> List[models.Item]:
        stmt = (
            select(models.Item)
            .where(*self._open_filter(now), models.Item.is_featured == True)  # noqa: E712
            .order_by(models.Item.created_at.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def list_ending_before(self, now: datetime, until: datetime, limit: int = 10) -> List[models.Item]:
        stmt = (
            select(models.Item)
            .where(*self._open_filter(now), models.Item.auction_end_date <= until)
            .order_by(models.Item.auction_end_date.asc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def list_ending_unnotified(self, now: datetime, until: datetime) -> List[models.Item]:
        stmt = (
            select(models.Item)
            .where(
                *self._open_filter(now),
                models.Item.auction_end_date <= until,
                models.Item.ending_soon_notified == False,  # noqa: E712
            )
            .order_by(models.Item.auction_end_date.asc())
        )
        return self.session.exec(stmt).all()

    def list_expired_active(self, now: datetime) -> List[models.Item]:
        """Items still flagged active whose end date has passed."""
        stmt = select(models.Item).where(
            models.Item.status == models.ItemStatus.active.value,
            models.Item.auction_end_date <= now,
        )
        return self.session.exec(stmt).all()

    def stage_mark_ending_notified(self, item_id: int) -> bool:
        """Flag the ending-soon notice as sent; False if another run already did."""
        result = self.session.exec(
            update(models.Item)
            .where(models.Item.id == item_id, models.Item.ending_soon_notified == False)  # noqa: E712
            .values(ending_soon_notified=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_views(self, item_id: int) -> None:
        self.session.exec(
            update(models.Item).where(models.Item.id == item_id).values(views=models.Item.views + 1)
        )
        self.session.commit()

    def stage_accept_bid(self, item_id: int, observed_bid: float, amount: float, now: datetime) -> bool:
        """Compare-and-swap the item's high bid.

        Sets `current_bid = amount` and bumps `bid_count` only if the row
        still holds `observed_bid` and is still open. Returns False when no
        row matched, i.e. another writer got there first or the auction closed.
        """
        result = self.session.exec(
            update(models.Item)
            .where(
                models.Item.id == item_id,
                models.Item.current_bid == observed_bid,
                *self._open_filter(now),
            )
            .values(current_bid=amount, bid_count=models.Item.bid_count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def stage_close(self, item_id: int, status: str, now: datetime,
                    winner_id: Optional[int] = None, winning_bid: Optional[float] = None,
                    expected_bid: Optional[float] = None) -> bool:
        """Move an active item to its final status.

        With `expected_bid` the row must still hold that `current_bid`.
        Returns False when no row matched.
        """
        conditions = [models.Item.id == item_id, models.Item.status == models.ItemStatus.active.value]
        if expected_bid is not None:
            conditions.append(models.Item.current_bid == expected_bid)
        result = self.session.exec(
            update(models.Item)
            .where(*conditions)
            .values(status=status, winner_id=winner_id, winning_bid=winning_bid, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def stage_revert_bid(self, item_id: int, observed_bid: float, restored_bid: float, now: datetime) -> bool:
        """Compare-and-swap used when the current high bid is withdrawn."""
        result = self.session.exec(
            update(models.Item)
            .where(models.Item.id == item_id, models.Item.current_bid == observed_bid, *self._open_filter(now))
            .values(
                current_bid=restored_bid,
                bid_count=case((models.Item.bid_count > 0, models.Item.bid_count - 1), else_=0),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class BidRepository:
    """Query helpers for `Bid` records."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, bid_id: int) -> Optional[models.Bid]:
        return self.session.get(models.Bid, bid_id)

    def list_for_item(self, item_id: int, page: int = 1, limit: int = 10) -> List[models.Bid]:
        """Bids on an item, highest first, newest first among equal amounts."""
        stmt = (
            select(models.Bid)
            .where(models.Bid.item_id == item_id)
            .order_by(models.Bid.amount.desc(), models.Bid.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def history_for_item(self, item_id: int, limit: int = 20) -> List[models.Bid]:
        stmt = (
            select(models.Bid)
            .where(models.Bid.item_id == item_id)
            .order_by(models.Bid.created_at.desc(), models.Bid.id.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def all_for_item(self, item_id: int) -> List[models.Bid]:
        stmt = select(models.Bid).where(models.Bid.item_id == item_id)
        return self.session.exec(stmt).all()

    def count_for_item(self, item_id: int) -> int:
        stmt = select(func.count()).select_from(models.Bid).where(models.Bid.item_id == item_id)
        return self.session.exec(stmt).one()

    def count_by_bidder_on_item(self, item_id: int, bidder_id: int, exclude_bid_id: Optional[int] = None) -> int:
        conditions = [models.Bid.item_id == item_id, models.Bid.bidder_id == bidder_id]
        if exclude_bid_id is not None:
            conditions.append(models.Bid.id != exclude_bid_id)
        stmt = select(func.count()).select_from(models.Bid).where(*conditions)
        return self.session.exec(stmt).one()

    def list_for_user(self, bidder_id: int) -> List[models.Bid]:
        stmt = (
            select(models.Bid)
            .where(models.Bid.bidder_id == bidder_id)
            .order_by(models.Bid.created_at.desc(), models.Bid.id.desc())
        )
        return self.session.exec(stmt).all()

    def list_winning_for_user(self, bidder_id: int, now: datetime) -> List[tuple]:
        """`(Bid, Item)` pairs where the user holds the active bid on an open item."""
        stmt = (
            select(models.Bid, models.Item)
            .join(models.Item, models.Item.id == models.Bid.item_id)
            .where(
                models.Bid.bidder_id == bidder_id,
                models.Bid.status == models.BidStatus.active.value,
                models.Item.status == models.ItemStatus.active.value,
                models.Item.auction_end_date > now,
            )
            .order_by(models.Bid.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def highest_for_item(self, item_id: int, before: Optional[datetime] = None,
                         exclude_bid_id: Optional[int] = None) -> Optional[models.Bid]:
        conditions = [models.Bid.item_id == item_id]
        if before is not None:
            conditions.append(models.Bid.created_at <= before)
        if exclude_bid_id is not None:
            conditions.append(models.Bid.id != exclude_bid_id)
        stmt = (
            select(models.Bid)
            .where(*conditions)
            .order_by(models.Bid.amount.desc(), models.Bid.created_at.asc())
            .limit(1)
        )
        return self.session.exec(stmt).first()

    def bidder_ids_for_item(self, item_id: int) -> List[int]:
        stmt = select(models.Bid.bidder_id).where(models.Bid.item_id == item_id).distinct()
        return list(self.session.exec(stmt).all())

    def active_bidder_ids(self, item_id: int) -> List[int]:
        stmt = select(models.Bid.bidder_id).where(
            models.Bid.item_id == item_id,
            models.Bid.status == models.BidStatus.active.value,
        )
        return list(self.session.exec(stmt).all())

    def stage_mark_outbid(self, item_id: int, now: datetime) -> None:
        self.session.exec(
            update(models.Bid)
            .where(models.Bid.item_id == item_id, models.Bid.status == models.BidStatus.active.value)
            .values(status=models.BidStatus.outbid.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    def stage_settle(self, item_id: int, winning_bid_id: int, now: datetime) -> None:
        """Mark the winning bid won and every other bid on the item lost."""
        self.session.exec(
            update(models.Bid)
            .where(models.Bid.id == winning_bid_id)
            .values(status=models.BidStatus.won.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.exec(
            update(models.Bid)
            .where(models.Bid.item_id == item_id, models.Bid.id != winning_bid_id)
            .values(status=models.BidStatus.lost.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
