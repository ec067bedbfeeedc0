import bcrypt
from jose import jwt, JWTError
from pydantic import BaseModel
from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from musiccollab.config import settings
from musiccollab.core.errors import Unauthenticated


class TokenData(BaseModel):
    """Decoded token payload."""
    user_id: uuid.UUID
    token_type: str


# ==================== Passwords ====================

def get_password_hash(password: str) -> str:
    """Hash a password with bcrypt (cost 12)."""
    # bcrypt only looks at the first 72 bytes
    secret = password.encode("utf-8")[:72]
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Check a plain password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


# ==================== Tokens ====================

def _create_token(data: dict, token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"exp": now + expires_delta, "iat": now, "type": token_type})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    return _create_token(
        data,
        "access",
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    # jti keeps two refresh tokens issued in the same second distinct
    payload = {**data, "jti": uuid.uuid4().hex}
    return _create_token(
        payload,
        "refresh",
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def _decode_token(token: str, expected_type: str) -> TokenData:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise Unauthenticated("Could not validate credentials.")

    subject = payload.get("sub")
    if subject is None or payload.get("type") != expected_type:
        raise Unauthenticated("Could not validate credentials.")

    try:
        user_id = uuid.UUID(subject)
    except ValueError:
        raise Unauthenticated("Could not validate credentials.")

    return TokenData(user_id=user_id, token_type=expected_type)


def verify_access_token(token: str) -> TokenData:
    """Decode an access token. Raises Unauthenticated on any failure."""
    return _decode_token(token, "access")


def verify_refresh_token(token: str) -> TokenData:
    """Decode a refresh token. Raises Unauthenticated on any failure."""
    return _decode_token(token, "refresh")
