import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .core_settings import Settings, get_settings

ACCESS = "access"
REFRESH = "refresh"


def _encode(claims: dict, secret: str, lifetime: timedelta, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "jti": uuid.uuid4().hex, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALG)


def create_access_token(user_id: str, email: str, role: str,
                        settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return _encode(
        {"sub": user_id, "email": email, "role": role, "type": ACCESS},
        settings.JWT_SECRET,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        settings,
    )


def create_refresh_token(user_id: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return _encode(
        {"sub": user_id, "type": REFRESH},
        settings.REFRESH_TOKEN_SECRET,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        settings,
    )


def _decode(token: str, secret: str, expected_type: str, settings: Settings) -> Optional[dict]:
    try:
        claims = jwt.decode(token, secret, algorithms=[settings.JWT_ALG],
                            options={"require": ["sub", "exp", "jti"]})
    except jwt.PyJWTError:
        return None
    if claims.get("type") != expected_type:
        return None
    return claims


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Optional[dict]:
    settings = settings or get_settings()
    return _decode(token, settings.JWT_SECRET, ACCESS, settings)


def decode_refresh_token(token: str, settings: Optional[Settings] = None) -> Optional[dict]:
    settings = settings or get_settings()
    return _decode(token, settings.REFRESH_TOKEN_SECRET, REFRESH, settings)


def seconds_until_expiry(claims: dict) -> int:
    return int(claims["exp"] - datetime.now(timezone.utc).timestamp())
