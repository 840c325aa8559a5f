from __future__ import annotations
from dataclasses import dataclass
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from bidledger.security import decode_token

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    partner_id: str
    role: str = "partner"


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Caller:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Login required")
    try:
        data = decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "access":
        raise HTTPException(status_code=401, detail="Wrong token type")
    sub = data.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Caller(partner_id=str(sub), role=str(data.get("role") or "partner"))


async def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if caller.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return caller
