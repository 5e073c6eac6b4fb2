"""Credentials: bcrypt password hashes and signed access tokens.

Tokens carry the user ID, role and organization. Routes never trust the role
claim for decisions; the user is reloaded and its stored role is used.
"""

from datetime import datetime, timedelta, timezone
from typing import Literal
from uuid import UUID
import logging

import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError

from ..models import UserRole
from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """False for a wrong password and for a stored hash passlib cannot read."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.error("Stored password hash is not a recognised bcrypt hash")
        return False


class AccessClaims(BaseModel):
    """Validated claims of an access token."""

    sub: UUID
    role: UserRole
    org: UUID | None = None
    exp: datetime
    iat: datetime
    type: Literal["access"]


def create_access_token(
    user_id: UUID,
    role: UserRole | str,
    organization_id: UUID | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )

    payload = {
        "sub": str(user_id),
        "role": UserRole(role).value,
        "org": str(organization_id) if organization_id else None,
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(payload, settings.secret_key, algorithm=TOKEN_ALGORITHM)


def decode_access_token(token: str) -> AccessClaims | None:
    """Claims of a valid, unexpired access token, else None."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
        return None
    except jwt.InvalidTokenError:
        return None

    try:
        return AccessClaims(**payload)
    except ValidationError:
        logger.warning("Rejected token with malformed claims")
        return None
