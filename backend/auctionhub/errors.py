"""Domain exceptions and the central exception-to-response mapping.

Services raise `AuctionError` subclasses; controllers let them propagate
and `register_exception_handlers` turns every error into the standard
`{success: false, message, error, ...}` envelope.
"""

import logging
import traceback
from datetime import datetime, timezone

import jwt
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings

logger = logging.getLogger("auctionhub.api")


class AuctionError(Exception):
    """Base class for errors that map onto an HTTP status."""
    status_code = 400
    error_code = "OPERATIONAL_ERROR"

    def __init__(self, message: str, *, data: dict | None = None, headers: dict | None = None):
        super().__init__(message)
        self.message = message
        self.data = data
        self.headers = headers


class BadRequest(AuctionError):
    status_code = 400
    error_code = "BAD_REQUEST"


class Unauthorized(AuctionError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class Forbidden(AuctionError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFound(AuctionError):
    status_code = 404
    error_code = "NOT_FOUND"


class BidConflict(AuctionError):
    """Another bid changed the item between our read and our write."""
    status_code = 409
    error_code = "BID_CONFLICT"


class UnsupportedMedia(AuctionError):
    status_code = 415
    error_code = "UNSUPPORTED_MEDIA_TYPE"


class RateLimited(AuctionError):
    status_code = 429
    error_code = "RATE_LIMITED"

    def __init__(self, retry_after: int):
        super().__init__(
            "Too many requests. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


AVAILABLE_ROUTES = {
    "auth": [
        "POST /api/auth/signup",
        "POST /api/auth/signin",
        "POST /api/auth/verify-email",
        "POST /api/auth/resend-verification",
        "GET /api/auth/profile",
        "PUT /api/auth/profile",
    ],
    "items": [
        "GET /api/items",
        "GET /api/items/featured",
        "GET /api/items/ending-soon",
        "GET /api/items/:id",
        "GET /api/items/:id/report",
        "POST /api/items",
        "PUT /api/items/:id",
        "DELETE /api/items/:id",
        "POST /api/items/:id/photo",
    ],
    "bids": [
        "POST /api/bids",
        "GET /api/bids/item/:itemId",
        "GET /api/bids/item/:itemId/history",
        "GET /api/bids/user/:userId",
        "GET /api/bids/user/:userId/winning",
        "DELETE /api/bids/:bidId",
    ],
    "general": ["GET /", "GET /api/health"],
}


def error_body(message: str, error: object = None, **extra) -> dict:
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    body.update(extra)
    return body


def _validation_errors(exc: RequestValidationError) -> list[dict]:
    out = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        out.append({
            "field": ".".join(loc),
            "message": err.get("msg", "invalid value"),
            "value": err.get("input"),
        })
    return out


async def handle_auction_error(request: Request, exc: AuctionError):
    extra = {}
    if exc.data is not None:
        extra["data"] = exc.data
    if isinstance(exc, RateLimited):
        extra["retryAfter"] = exc.retry_after
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, **extra),
        headers=exc.headers,
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(
            status_code=404,
            content=error_body(
                f"Route {request.method} {request.url.path} not found",
                "ROUTE_NOT_FOUND",
                availableRoutes=AVAILABLE_ROUTES,
            ),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = _validation_errors(exc)
    # an unparseable id in the path is a lookup miss, not a malformed body
    if any(err.get("loc", ("",))[0] == "path" for err in exc.errors()):
        return JSONResponse(status_code=404, content=error_body("Resource not found", "INVALID_ID"))
    return JSONResponse(
        status_code=400,
        content=jsonable(error_body("Validation failed", "VALIDATION_ERROR", errors=errors)),
    )


async def handle_integrity_error(request: Request, exc: IntegrityError):
    message = "Duplicate field value entered"
    field = None
    raw = str(exc.orig) if exc.orig is not None else str(exc)
    if "email" in raw:
        field = "email"
        message = "User already exists with this email"
    return JSONResponse(status_code=400, content=error_body(message, "DUPLICATE_FIELD", field=field))


async def handle_expired_token(request: Request, exc: jwt.ExpiredSignatureError):
    return JSONResponse(status_code=401, content=error_body("Token has expired", "TOKEN_EXPIRED"))


async def handle_invalid_token(request: Request, exc: jwt.InvalidTokenError):
    return JSONResponse(status_code=401, content=error_body("Invalid token", "INVALID_TOKEN"))


async def handle_operational_error(request: Request, exc: OperationalError):
    logger.error("database_error path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=503, content=error_body("Database connection error", "DB_CONNECTION_ERROR"))


async def handle_unexpected(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s method=%s", request.url.path, request.method)
    if settings.is_dev:
        error = {"type": type(exc).__name__, "stack": traceback.format_exception(type(exc), exc, exc.__traceback__)}
    else:
        error = "INTERNAL_SERVER_ERROR"
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", error, timestamp=datetime.now(timezone.utc).isoformat()),
    )


def jsonable(body: dict) -> dict:
    """Coerce validation inputs (which may be bytes or arbitrary objects) to JSON-safe values."""
    for err in body.get("errors", []):
        value = err.get("value")
        if value is not None and not isinstance(value, (str, int, float, bool, list, dict)):
            err["value"] = str(value)
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the class-keyed handlers to `app`."""
    app.add_exception_handler(AuctionError, handle_auction_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(jwt.ExpiredSignatureError, handle_expired_token)
    app.add_exception_handler(jwt.InvalidTokenError, handle_invalid_token)
    app.add_exception_handler(OperationalError, handle_operational_error)
    app.add_exception_handler(Exception, handle_unexpected)
