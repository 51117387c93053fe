# DataSync_app/auth.py
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from DataSync_app.config import settings
from DataSync_app.db import storage
from DataSync_app.db.models import UserORM
from DataSync_app.db.session import async_session

log = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
_bearer = HTTPBearer(auto_error=False)


# ---------------- passwords ----------------
def _scrypt(password: str, salt: str) -> bytes:
    return hashlib.scrypt(password.encode(), salt=salt.encode(), n=16384, r=8, p=1, dklen=64)


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    return f"{_scrypt(password, salt).hex()}.{salt}"


def verify_password(supplied: str, stored: str) -> bool:
    hashed, _, salt = stored.partition(".")
    if not hashed or not salt:
        return False
    try:
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False
    return hmac.compare_digest(expected, _scrypt(supplied, salt))


# ---------------- tokens ----------------
def create_token(user: UserORM) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "id": user.id,
        "username": user.username,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expiration_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Raises 401 for an expired token and 403 for anything else invalid."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


# ---------------- dependency ----------------
async def current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> UserORM:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    claims = decode_token(credentials.credentials)
    user_id = claims.get("id")
    if not isinstance(user_id, int):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")

    async with async_session() as s:
        user = await storage.get_user(s, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user
