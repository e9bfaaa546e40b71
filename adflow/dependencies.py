import logging
from typing import List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from firebase_admin import auth

from .firebase_client import get_db, init_firebase
from .models import CurrentUser
from .store import DocumentStore, FirestoreDocumentStore

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

EDITING_ROLES = ["admin", "agency", "editor"]

# Expired and revoked subclass InvalidIdTokenError, so they are matched first.
_TOKEN_MESSAGES = (
    (auth.ExpiredIdTokenError, "Session expired, sign in again"),
    (auth.RevokedIdTokenError, "Session revoked, sign in again"),
    (auth.InvalidIdTokenError, "Invalid ID token"),
    (ValueError, "Malformed ID token"),
)
_TOKEN_ERRORS = tuple(error for error, _ in _TOKEN_MESSAGES)


def _token_error_message(error: Exception) -> str:
    for error_type, message in _TOKEN_MESSAGES:
        if isinstance(error, error_type):
            return message
    return "Invalid ID token"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """
    Verify the Firebase ID token and turn its claims into a ``CurrentUser``.
    """
    init_firebase()
    try:
        claims = auth.verify_id_token(token)
    except _TOKEN_ERRORS as e:
        raise _unauthorized(_token_error_message(e))
    except Exception as e:
        logger.error(f"Could not verify caller token: {e}")
        raise _unauthorized("Could not verify credentials")

    user = CurrentUser.from_claims(claims)
    logger.debug(f"Authenticated {user.id} as {user.role or 'no role'}")
    return user


def require_role(allowed_roles: List[str]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/{group_id}/scrub")
        async def scrub(user: CurrentUser = Depends(require_role(EDITING_ROLES))):
            ...
    """
    async def role_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        allowed_lower = [r.lower() for r in allowed_roles]
        if current_user.role not in allowed_lower:
            logger.warning(
                f"Access denied for user {current_user.id} "
                f"with role '{current_user.role}'. Required: {allowed_roles}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join(allowed_roles)}",
            )
        return current_user

    return role_checker


def get_store() -> DocumentStore:
    return FirestoreDocumentStore(get_db())
