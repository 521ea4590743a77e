"""
Authentication & authorization helpers.
Password hashing, JWT issue/verify and the protect/admin_only dependencies.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from bson.objectid import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from config import AUTH_COOKIES, COOKIE_SECURE, JWT_ALGO, JWT_EXPIRE_DAYS, JWT_SECRET
from database import db

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
security = HTTPBearer(auto_error=False)

TOKEN_COOKIE = "token"
ADMIN_TOKEN_COOKIE = "adminToken"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_token(user_id: str, role: str) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=JWT_EXPIRE_DAYS)
    return jwt.encode({"id": user_id, "role": role, "exp": exp}, JWT_SECRET, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")


def set_auth_cookie(response: Response, token: str, admin: bool = False):
    if not AUTH_COOKIES:
        return
    response.set_cookie(
        ADMIN_TOKEN_COOKIE if admin else TOKEN_COOKIE,
        token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        max_age=JWT_EXPIRE_DAYS * 24 * 3600,
    )


def clear_auth_cookies(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    response.delete_cookie(ADMIN_TOKEN_COOKIE)


def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    if AUTH_COOKIES:
        return request.cookies.get(TOKEN_COOKIE) or request.cookies.get(ADMIN_TOKEN_COOKIE)
    return None


def protect(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> dict:
    """Resolve the bearer token (or auth cookie) to the stored user document."""
    token = _token_from_request(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    payload = decode_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    try:
        user = db["user"].find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    if not user or not user.get("is_active", True):
        logger.warning("auth_rejected", user_id=user_id, reason="unknown or inactive user")
        raise HTTPException(status_code=401, detail="User not found")
    user["id"] = str(user["_id"])
    return user


def admin_only(user: dict = Depends(protect)) -> dict:
    if user.get("role") != "admin":
        logger.warning("admin_required", user_id=user["id"])
        raise HTTPException(status_code=403, detail="Not authorized as admin")
    return user
