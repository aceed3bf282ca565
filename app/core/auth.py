from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from dataclasses import dataclass
from typing import Optional
import logging

import jwt

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import AuthenticationError
from app.models.user import User
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    """Claims of a verified identity-provider session token"""
    external_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None


def decode_session_token(token: str) -> Identity:
    """Verify an RS256 session token and read the user claims"""
    if not settings.CLERK_JWT_KEY:
        logger.error("CLERK_JWT_KEY not configured")
        raise AuthenticationError("User not authenticated")

    try:
        payload = jwt.decode(
            token,
            settings.CLERK_JWT_KEY,
            algorithms=["RS256"],
            options={"require": ["sub", "exp"]}
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected session token: {e}")
        raise AuthenticationError("User not authenticated")

    authorized_party = payload.get("azp")
    if settings.CLERK_AUTHORIZED_PARTIES and authorized_party not in settings.CLERK_AUTHORIZED_PARTIES:
        logger.warning(f"Rejected session token from party {authorized_party!r}")
        raise AuthenticationError("User not authenticated")

    return Identity(
        external_id=payload["sub"],
        email=payload.get("email"),
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
        image_url=payload.get("image_url")
    )


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Identity:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("User not authenticated")
    return decode_session_token(credentials.credentials)


async def get_current_user(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get the local user of the authenticated session"""
    return await UserService(db).get_or_create_user(
        identity.external_id,
        email=identity.email,
        first_name=identity.first_name,
        last_name=identity.last_name,
        image_url=identity.image_url
    )
