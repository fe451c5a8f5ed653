# achievement_api/core/security.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from jose import jwt
from passlib.context import CryptContext

from achievement_api.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _encode(claims: Dict[str, Any], secret_key: Optional[str]) -> str:
    return jwt.encode(claims, secret_key or settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
    user_id: str,
    role: str,
    permissions: List[str],
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
) -> Tuple[str, str, int]:
    """
    Mint a short-lived access token.

    Returns the encoded token, its token id and its expiry (epoch seconds).
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    token_id = str(uuid.uuid4())
    claims = {
        "userId": str(user_id),
        "role": role,
        "permissions": list(permissions),
        "tokenId": token_id,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return _encode(claims, secret_key), token_id, claims["exp"]


def create_refresh_token(
    user_id: str,
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
) -> str:
    """Refresh tokens carry only the user id; role and permissions are looked up on refresh."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=settings.REFRESH_TOKEN_EXPIRE_HOURS))
    claims = {
        "userId": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return _encode(claims, secret_key)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)
