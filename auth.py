import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt
from fastapi import HTTPException, Request, status

from config import ACCESS_TOKEN_EXPIRE_MINUTES, AUTH_SECRET, CRON_SECRET, CACHE_WARM_USER_AGENT
from models import ROLE_MAJOR_ADMIN, ROLES

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
INTERNAL_HEADER = "x-internal-request"


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    role: str
    is_internal: bool = False


SYSTEM_PRINCIPAL = Principal(user_id="system", email="system@internal", role=ROLE_MAJOR_ADMIN, is_internal=True)


def create_access_token(*, user_id: str, email: str, role: str, expires_minutes: Optional[int] = None) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, AUTH_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Principal:
    try:
        claims = jwt.decode(token, AUTH_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected access token: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    role = claims.get("role")
    if not claims.get("sub") or role not in ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")
    return Principal(user_id=str(claims["sub"]), email=claims.get("email", ""), role=role)


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip()


def is_internal_request(request: Request) -> bool:
    """System calls (cron, cache warming) carry the internal header plus the cron secret."""
    if request.headers.get(INTERNAL_HEADER, "").lower() != "true":
        return False
    token = bearer_token(request)
    if not token or not CRON_SECRET:
        return False
    return hmac.compare_digest(token.encode(), CRON_SECRET.encode())


def internal_headers() -> Dict[str, str]:
    return {
        INTERNAL_HEADER: "true",
        "authorization": f"Bearer {CRON_SECRET}",
        "user-agent": CACHE_WARM_USER_AGENT,
    }
