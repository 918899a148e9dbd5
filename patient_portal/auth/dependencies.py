from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging

from ..core.exceptions import AuthError, AuthErrorCategory
from ..models.user import Session
from .session import SessionProvider

security = HTTPBearer()
logger = logging.getLogger(__name__)


def get_session_provider() -> SessionProvider:
    """A fresh provider per request; nothing session-shaped is shared across requests."""
    return SessionProvider()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    provider: SessionProvider = Depends(get_session_provider)
) -> Session:
    """
    Verify the Firebase ID token and return the caller's Session (role from the
    profile document). Raises 401 if the token or profile is unusable.
    """
    try:
        session = await provider.restore(credentials.credentials)
    except AuthError as e:
        logger.warning(f"[Auth] Token rejected: {e.category.value}")
        code = status.HTTP_403_FORBIDDEN if e.category == AuthErrorCategory.ACCOUNT_DISABLED else status.HTTP_401_UNAUTHORIZED
        raise HTTPException(
            status_code=code,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"[Auth] ✅ Authenticated user: {session.email} with role: {session.role.value}")
    return session


async def require_admin(current_user: Session = Depends(get_current_user)) -> Session:
    if not current_user.is_admin:
        logger.warning(f"[Auth] Admin access denied: user role '{current_user.role.value}' is not admin")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Admin access required. Current role: {current_user.role.value}"
        )
    return current_user


async def require_self_or_admin(user_id: str, current_user: Session = Depends(get_current_user)) -> Session:
    """Allow users to reach their own data, and admins to reach anyone's."""
    if current_user.uid == user_id or current_user.is_admin:
        return current_user

    logger.warning(f"[Auth] Self/Admin access denied: user '{current_user.uid}' requested '{user_id}'")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You can only access your own data"
    )
