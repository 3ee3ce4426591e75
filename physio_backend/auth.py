import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .errors import AuthenticationError, ForbiddenError
from .models import User
from .security_utils import decode_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer token"""

    if not credentials:
        raise AuthenticationError("You are not logged in! Please log in to get access.")

    token = credentials.credentials

    # Basic token format validation before processing
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, token length: {len(token)}")
        raise AuthenticationError("Invalid token format. Expected a valid JWT token.")

    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token. Please log in again.")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as e:
        logger.error(f"❌ Token carries a non-numeric subject: {payload.get('sub')!r}")
        raise AuthenticationError("Invalid token claims") from e

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise AuthenticationError("The user belonging to this token does no longer exist.")

    if not user.is_active:
        raise AuthenticationError("Your account has been deactivated. Please contact support.")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user


def require_roles(*roles: str):
    """
    Create a dependency that only lets the given roles through

    Example usage:
        @router.post("", dependencies=[Depends(require_roles("patient"))])
    """

    async def role_checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning(f"⚠️ User {user.id} with role {user.role} denied; requires {roles}")
            raise ForbiddenError("You do not have permission to perform this action")
        return user

    return role_checker


async def verified_only(user: User = Depends(get_current_user)) -> User:
    """Physiotherapists must be approved by an admin before acting on appointments"""
    if user.role == "physiotherapist" and user.verification_status != "verified":
        raise ForbiddenError("Your account is not verified yet. Please wait for admin approval.")
    return user
