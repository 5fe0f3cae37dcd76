"""
backend/oddsline/services/auth_service.py

Purpose:
    Access-token verification and FastAPI user dependencies. Token issuance
    beyond ``create_access_token`` (login, refresh, logout) lives with the
    external auth provider.

Dependencies:
    - PyJWT
    - oddsline.database
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, Request, status
from jwt.exceptions import InvalidTokenError as JWTError

from oddsline.config import settings
from oddsline.database import get_db
from oddsline.utils import utcnow

logger = logging.getLogger("oddsline.auth")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 15


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one (rotation window)."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM])
        raise


def create_access_token(user_id: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    payload = {
        "sub": user_id,
        "exp": utcnow() + timedelta(minutes=expires_minutes),
        "type": "access",
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def token_from_request(request: Request) -> Optional[str]:
    """Cookie first, then ``Authorization: Bearer``."""
    token = request.cookies.get("access_token")
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def user_id_from_token(token: str) -> Optional[str]:
    """Return the subject of a valid access token, None otherwise."""
    try:
        payload = decode_jwt(token)
    except JWTError:
        return None
    if payload.get("type") != "access":
        return None
    user_id = payload.get("sub")
    return str(user_id) if user_id else None


async def load_active_user(db, user_id: str) -> Optional[dict]:
    try:
        oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        return None
    user = await db.users.find_one({"_id": oid})
    if not user or not user.get("is_active", True):
        return None
    return user


async def get_current_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: extract and validate the user from the access token."""
    token = token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in.",
        )

    user_id = user_id_from_token(token)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )

    user = await load_active_user(db, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found.",
        )
    return user


async def get_admin_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: requires an authenticated admin user."""
    user = await get_current_user(request, db)
    if not user.get("is_admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admins only.",
        )
    return user
