"""
Security utilities and authentication
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import settings
from app.core.errors import AuthorizationError

logger = logging.getLogger(__name__)

security = HTTPBearer()

DEFAULT_ROLE = "operator"


@dataclass(frozen=True)
class AccountContext:
    """Who is calling, and on behalf of which account"""
    account_id: str
    subject: str
    role: str = DEFAULT_ROLE


def verify_admin_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Verify admin authentication token"""
    if not secrets.compare_digest(credentials.credentials.encode(), settings.ADMIN_TOKEN.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
    return credentials.credentials


def issue_account_token(
    account_id: str,
    subject: Optional[str] = None,
    role: str = DEFAULT_ROLE,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign a bearer token that binds the caller to one account"""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": subject or f"account:{account_id}",
        "account_id": account_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_account_token(token: Optional[str]) -> AccountContext:
    if not token:
        raise AuthorizationError("Missing bearer token")
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthorizationError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected account token: {e}")
        raise AuthorizationError("Invalid token")

    account_id = payload.get("account_id")
    if not account_id or not isinstance(account_id, str):
        raise AuthorizationError("Token is not bound to an account")
    return AccountContext(
        account_id=account_id,
        subject=str(payload["sub"]),
        role=payload.get("role") or DEFAULT_ROLE,
    )


def resolve_account_context(token: Optional[str], accounts) -> AccountContext:
    """Decode the token and make sure its account still exists"""
    context = decode_account_token(token)
    if not accounts.exists(context.account_id):
        logger.warning(f"Token for unknown account {context.account_id} rejected")
        raise AuthorizationError("Account no longer exists")
    return context
