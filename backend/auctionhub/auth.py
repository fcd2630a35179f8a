"""Authentication helpers and FastAPI security dependencies.

This module provides utilities to decode JWT tokens and the FastAPI
dependencies `get_current_user` (token required) and
`get_optional_user` (token optional). Verification failures raise
`errors.Unauthorized`, which the central handlers turn into 401
responses.
"""

from typing import Optional

import jwt
from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import engine
from .errors import Unauthorized

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises `Unauthorized`.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


def _load_user(token: str) -> models.User:
    payload = decode_token(token)
    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        raise Unauthorized("Invalid token payload")
    # simple DB lookup; the returned instance is detached from this session
    with Session(engine) as session:
        user = repositories.UserRepository(session).get(user_id)
    if not user:
        raise Unauthorized("User not found")
    if not user.is_active:
        raise Unauthorized("Account is deactivated")
    return user


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    The function extracts the bearer token from the request, decodes it
    and performs a database lookup to return the `User` object.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Access token is required")
    return _load_user(credentials.credentials)


def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> Optional[models.User]:
    """Like `get_current_user` but returns None instead of failing."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return _load_user(credentials.credentials)
    except Unauthorized:
        return None
