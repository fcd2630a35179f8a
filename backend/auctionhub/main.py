"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the AuctionHub marketplace
backend. Controllers are intentionally thin: they accept requests,
delegate to services, and wrap results in the standard
`{success, message, data}` envelope. Errors raised by services are
mapped to responses by the handlers in `errors.py`.

Endpoints implemented:
- POST /api/auth/signup | signin | verify-email | resend-verification
- GET|PUT /api/auth/profile
- GET /api/items, /api/items/featured, /api/items/ending-soon
- GET|PUT|DELETE /api/items/{id}, GET /api/items/{id}/report
- POST /api/items, POST /api/items/{id}/photo
- POST /api/bids, DELETE /api/bids/{bid_id}
- GET /api/bids/item/{item_id}, /api/bids/item/{item_id}/history
- GET /api/bids/user/{user_id}, /api/bids/user/{user_id}/winning
- GET /, GET /api/health
"""

import json
import math
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from sqlmodel import Session

from . import models, repositories, services
from .auth import get_current_user, get_optional_user
from .config import settings
from .database import check_connection, create_db_and_tables, engine, get_session
from .errors import RateLimited, register_exception_handlers
from .schemas import (
    BidIn,
    ItemCreateIn,
    ItemUpdateIn,
    ProfileUpdateIn,
    ResendVerificationIn,
    SigninIn,
    SignupIn,
    VerifyEmailIn,
)
from .serializers import bid_out, item_brief, item_out, user_profile, user_summary
from .utils.email import EmailService
from .utils.rate_limit import build_rate_limiter
from .utils.uploads import read_limited, sniff_image_format, store_item_photo, validate_upload_filename

app = FastAPI(title="AuctionHub API")
logger = logging.getLogger("auctionhub.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_auth_rate_limiter = build_rate_limiter(settings.REDIS_URL)

register_exception_handlers(app)

# Wide-open CORS keeps the mobile client and local web testers working in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

create_db_and_tables()

SortOption = Literal[
    "newest", "oldest", "price-low", "price-high", "ending-soon", "most-bids", "most-viewed", "alphabetical"
]
CategoryFilter = Literal["ALL", "Electronics", "Fashion", "Home", "Sports", "Books", "Art", "Collectibles"]
ConditionFilter = Literal["new", "like-new", "good", "fair", "poor"]


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith("/api"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


def ok(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def _enforce_auth_rate_limit(request: Request) -> None:
    key = f"{request.client.host if request.client else 'unknown'}:{request.url.path}"
    allowed, retry_after = _auth_rate_limiter.allow(
        key, settings.AUTH_RATE_LIMIT_MAX, settings.AUTH_RATE_LIMIT_WINDOW_SECONDS
    )
    if not allowed:
        raise RateLimited(retry_after)


def _notify_bid(bidder_id: int, outbid_ids: list, item_name: str, amount: float) -> None:
    """Background task: confirm the bid to its bidder and tell previous leaders they were outbid."""
    mailer = EmailService()
    if not mailer.enabled:
        return
    with Session(engine) as session:
        users = repositories.UserRepository(session).get_many([bidder_id, *outbid_ids])
    bidder = users.get(bidder_id)
    if bidder is not None:
        mailer.send_bid_notification(bidder.email, bidder.name, item_name, amount)
    for user_id in outbid_ids:
        user = users.get(user_id)
        if user is not None:
            mailer.send_bid_notification(user.email, user.name, item_name, amount, outbid=True)


# --- general -----------------------------------------------------------------

@app.get("/")
def home():
    """Welcome document listing the available endpoints."""
    return {
        "message": "AuctionHub backend is running",
        "status": "Server running successfully",
        "endpoints": {
            "auth": {
                "signup": "POST /api/auth/signup",
                "signin": "POST /api/auth/signin",
                "verifyEmail": "POST /api/auth/verify-email",
                "resendVerification": "POST /api/auth/resend-verification",
                "profile": "GET|PUT /api/auth/profile",
            },
            "items": {
                "getAll": "GET /api/items",
                "getOne": "GET /api/items/:id",
                "create": "POST /api/items",
                "update": "PUT /api/items/:id",
                "delete": "DELETE /api/items/:id",
            },
            "bids": {
                "placeBid": "POST /api/bids",
                "getItemBids": "GET /api/bids/item/:itemId",
                "getUserBids": "GET /api/bids/user/:userId",
                "getWinningBids": "GET /api/bids/user/:userId/winning",
                "cancelBid": "DELETE /api/bids/:bidId",
            },
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {
        "status": "OK",
        "database": "connected" if check_connection() else "disconnected",
        "environment": settings.ENV,
    }


# --- auth --------------------------------------------------------------------

@app.post("/api/auth/signup", status_code=201)
def signup(payload: SignupIn, request: Request, db: Session = Depends(get_session)):
    """Create an account and return a token.

    The verification code is echoed in the response only when no email
    provider is configured.
    """
    _enforce_auth_rate_limit(request)
    result = services.AuthService(db).signup(payload)
    data = {"user": user_profile(result["user"]), "token": result["token"]}
    if result["verification_code"]:
        data["verificationCode"] = result["verification_code"]
    return ok(data, "Account created successfully! Please check your email for verification code.")


@app.post("/api/auth/signin")
def signin(payload: SigninIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate with email/password and return a signed JWT."""
    _enforce_auth_rate_limit(request)
    result = services.AuthService(db).signin(payload.email, payload.password)
    return ok({"user": user_profile(result["user"]), "token": result["token"]}, "Login successful")


@app.post("/api/auth/verify-email")
def verify_email(payload: VerifyEmailIn, request: Request, db: Session = Depends(get_session)):
    _enforce_auth_rate_limit(request)
    user = services.AuthService(db).verify_email(payload.email, payload.code)
    return ok({"user": user_profile(user)}, "Email verified successfully! You can now access all features.")


@app.post("/api/auth/resend-verification")
def resend_verification(payload: ResendVerificationIn, request: Request, db: Session = Depends(get_session)):
    _enforce_auth_rate_limit(request)
    code = services.AuthService(db).resend_verification(payload.email)
    return ok({"verificationCode": code} if code else None, "New verification code sent successfully")


@app.get("/api/auth/profile")
def get_profile(user: models.User = Depends(get_current_user)):
    return ok({"user": user_profile(user)})


@app.put("/api/auth/profile")
def update_profile(payload: ProfileUpdateIn, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    updated = services.AuthService(db).update_profile(user.id, payload)
    return ok({"user": user_profile(updated)}, "Profile updated successfully")


# --- items -------------------------------------------------------------------

def _items_with_sellers(db: Session, items: list) -> list:
    sellers = repositories.UserRepository(db).get_many([i.seller_id for i in items])
    now = models.utcnow()
    return [item_out(i, seller=sellers.get(i.seller_id), now=now) for i in items]


@app.get("/api/items")
def list_items(
    category: Optional[CategoryFilter] = None,
    search: Optional[str] = Query(default=None, max_length=100),
    sort: SortOption = "newest",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    min_price: Optional[float] = Query(default=None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(default=None, alias="maxPrice", ge=0),
    condition: Optional[ConditionFilter] = None,
    db: Session = Depends(get_session),
):
    """List open auctions with filtering, sorting and pagination."""
    items, total = services.ItemService(db).search(
        category=category,
        search=search.strip() if search else None,
        min_price=min_price,
        max_price=max_price,
        condition=condition,
        sort=sort,
        page=page,
        limit=limit,
    )
    return ok({
        "items": _items_with_sellers(db, items),
        "pagination": {
            "current": page,
            "total": math.ceil(total / limit),
            "count": len(items),
            "totalItems": total,
        },
        "filters": {"category": category, "search": search, "sort": sort},
    })


@app.get("/api/items/featured")
def featured_items(db: Session = Depends(get_session)):
    return ok({"items": _items_with_sellers(db, services.ItemService(db).featured())})


@app.get("/api/items/ending-soon")
def ending_soon_items(hours: int = Query(default=24, ge=1, le=24 * 30), db: Session = Depends(get_session)):
    return ok({"items": _items_with_sellers(db, services.ItemService(db).ending_soon(hours=hours))})


@app.get("/api/items/{item_id}")
def get_item(item_id: int, db: Session = Depends(get_session),
             user: Optional[models.User] = Depends(get_optional_user)):
    """Return one item (any status) and count the view."""
    item = services.ItemService(db).view(item_id)
    users = repositories.UserRepository(db).get_many([item.seller_id, item.winner_id])
    data = item_out(item, seller=users.get(item.seller_id), winner=users.get(item.winner_id))
    data["isOwner"] = bool(user and user.id == item.seller_id)
    return ok({"item": data})


@app.get("/api/items/{item_id}/report")
def item_report(item_id: int, db: Session = Depends(get_session)):
    """Bid statistics and simple performance ratios for an item."""
    report = services.ItemService(db).report(item_id)
    return ok({
        "item": item_out(report["item"]),
        "statistics": report["statistics"],
        "performance": report["performance"],
    })


@app.post("/api/items", status_code=201)
def create_item(payload: ItemCreateIn, db: Session = Depends(get_session),
                user: models.User = Depends(get_current_user)):
    item = services.ItemService(db).create(user, payload)
    return ok({"item": item_out(item, seller=user)}, "Item listed successfully!")


@app.put("/api/items/{item_id}")
def update_item(item_id: int, payload: ItemUpdateIn, db: Session = Depends(get_session),
                user: models.User = Depends(get_current_user)):
    item = services.ItemService(db).update(user, item_id, payload)
    return ok({"item": item_out(item, seller=user)}, "Item updated successfully")


@app.delete("/api/items/{item_id}")
def delete_item(item_id: int, db: Session = Depends(get_session),
                user: models.User = Depends(get_current_user)):
    services.ItemService(db).delete(user, item_id)
    return ok(message="Item deleted successfully")


@app.post("/api/items/{item_id}/photo")
def upload_item_photo(item_id: int, file: UploadFile = File(...), db: Session = Depends(get_session),
                      user: models.User = Depends(get_current_user)):
    """Upload a JPEG/PNG/WebP photo for an item the caller is selling."""
    svc = services.ItemService(db)
    svc.check_photo_owner(user, item_id)
    validate_upload_filename(file.filename or "")
    payload = read_limited(file.file, settings.MAX_UPLOAD_BYTES)
    fmt = sniff_image_format(payload)
    path = store_item_photo(payload, fmt, settings.UPLOAD_DIR, item_id)
    item = svc.set_photo(user, item_id, path)
    return ok({"item": item_out(item, seller=user)}, "Photo uploaded successfully")


# --- bids --------------------------------------------------------------------

@app.post("/api/bids", status_code=201)
def place_bid(payload: BidIn, background: BackgroundTasks, db: Session = Depends(get_session),
              user: models.User = Depends(get_current_user)):
    """Place a bid as the authenticated user."""
    result = services.BidService(db).place(user, payload)
    bid, item = result["bid"], result["item"]
    background.add_task(_notify_bid, user.id, result["outbid_user_ids"], item.name, bid.amount)
    return ok({
        "bid": bid_out(bid, bidder=user, item=item_brief(item)),
        "newCurrentBid": item.current_bid,
        "bidCount": item.bid_count,
        "minimumNextBid": item.minimum_next_bid,
    }, "Bid placed successfully!")


@app.get("/api/bids/item/{item_id}")
def item_bids(item_id: int, page: int = Query(default=1, ge=1), limit: int = Query(default=10, ge=1, le=50),
              db: Session = Depends(get_session)):
    res = services.BidService(db).for_item(item_id, page=page, limit=limit)
    item, bidders = res["item"], res["bidders"]
    return ok({
        "bids": [bid_out(b, bidder=bidders.get(b.bidder_id)) for b in res["bids"]],
        "itemName": item.name,
        "currentBid": item.current_bid,
        "bidCount": item.bid_count,
        "pagination": res["pagination"],
    })


@app.get("/api/bids/item/{item_id}/history")
def item_bid_history(item_id: int, limit: int = Query(default=20, ge=1, le=100),
                     db: Session = Depends(get_session)):
    res = services.BidService(db).history(item_id, limit=limit)
    bidders = res["bidders"]
    return ok({
        "bidHistory": [bid_out(b, bidder=bidders.get(b.bidder_id)) for b in res["bids"]],
        "itemName": res["item"].name,
        "totalBids": res["total"],
    })


@app.get("/api/bids/user/{user_id}")
def user_bids(user_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """The caller's bids, split into open auctions and past ones."""
    res = services.BidService(db).for_user(user, user_id)
    now = res["now"]
    active = [bid_out(b, item=item_brief(i, now)) for b, i in res["active"]]
    past = [bid_out(b, item=item_brief(i, now) if i is not None else None) for b, i in res["past"]]
    return ok({
        "activeBids": active,
        "pastBids": past,
        "totalBids": len(active) + len(past),
        "userName": res["user"].name,
    })


@app.get("/api/bids/user/{user_id}/winning")
def winning_bids(user_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Open auctions on which the caller currently holds the active bid."""
    res = services.BidService(db).winning_for_user(user, user_id)
    now, sellers = res["now"], res["sellers"]
    out = []
    for bid, item in res["pairs"]:
        brief = item_brief(item, now)
        brief["seller"] = user_summary(sellers.get(item.seller_id))
        out.append(bid_out(bid, item=brief))
    return ok({"winningBids": out, "count": len(out)})


@app.delete("/api/bids/{bid_id}")
def cancel_bid(bid_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    item = services.BidService(db).cancel(user, bid_id)
    return ok({"newCurrentBid": item.current_bid, "newBidCount": item.bid_count}, "Bid cancelled successfully")
