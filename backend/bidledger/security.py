from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from bidledger.config import settings

JWT_ALG = "HS256"

def make_access_token(sub: str, role: str = "partner", ttl_min: int | None = None) -> str:
    """Issue a token the way the identity provider does. Used by dev tooling and tests."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "type": "access",
        "role": role,
        "iat": now.timestamp(),
        "exp": int((now + timedelta(minutes=ttl_min or settings.access_ttl_min)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)

def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
