"""
Authentication: bearer JWT verification, admin gate, password hashing.
"""
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
import structlog
from bson.objectid import ObjectId
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from pymongo.database import Database
from pymongo.errors import ConnectionFailure

from config import Settings, get_settings
from database import get_db, utcnow
from errors import AuthError, ForbiddenError, ServiceUnavailableError

logger = structlog.get_logger(__name__)

security = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    id: str
    name: str
    email: str
    is_admin: bool = False


# ----------------------- Passwords -----------------------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ----------------------- Tokens -----------------------
def create_token(user_id: str, settings: Settings = None) -> str:
    settings = settings or get_settings()
    payload = {"id": str(user_id), "exp": utcnow() + timedelta(days=settings.jwt_expires_days)}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings = None) -> dict:
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthError("Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Not authorized, invalid token")


# ----------------------- Dependencies -----------------------
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthError("Not authorized, no token")

    payload = decode_token(credentials.credentials, settings)
    user_id = payload.get("id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise AuthError("Not authorized, invalid token")

    try:
        user = db["users"].find_one({"_id": ObjectId(user_id)}, {"password_hash": 0})
    except ConnectionFailure as exc:
        logger.error("auth_db_unavailable", error=str(exc))
        raise ServiceUnavailableError()

    if not user:
        raise AuthError("Not authorized, user not found")

    return Principal(
        id=str(user["_id"]),
        name=user.get("name", ""),
        email=user.get("email", ""),
        is_admin=bool(user.get("is_admin", False)),
    )


def require_admin(user: Principal = Depends(get_current_user)) -> Principal:
    if not user.is_admin:
        raise ForbiddenError("Not authorized as an admin")
    return user
