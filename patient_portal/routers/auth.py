"""
Authentication & account routes.

- Register: email, password, display_name (role defaults to patient; admins
  can only be created by an admin).
- Login: email + password via the identity provider; returns id_token + profile.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from ..auth.dependencies import get_current_user, get_session_provider, require_admin, security
from ..auth.session import SessionProvider
from ..core.exceptions import AuthError, AuthErrorCategory
from ..models.user import LoginRequest, RegisterRequest, Session, UserRole

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["authentication"])

AUTH_STATUS = {
    AuthErrorCategory.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCategory.EMAIL_IN_USE: status.HTTP_409_CONFLICT,
    AuthErrorCategory.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    AuthErrorCategory.TOO_MANY_ATTEMPTS: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorCategory.ACCOUNT_DISABLED: status.HTTP_403_FORBIDDEN,
    AuthErrorCategory.PROFILE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCategory.UNKNOWN: status.HTTP_400_BAD_REQUEST,
}


def _redact_sensitive(d: Dict[str, Any]) -> Dict[str, Any]:
    redacted = dict(d or {})
    if redacted.get("password") is not None:
        redacted["password"] = "***"
    return redacted


def _auth_http_error(e: AuthError) -> HTTPException:
    return HTTPException(status_code=AUTH_STATUS[e.category], detail=e.message)


def _session_response(session: Session, message: str, **extra) -> Dict[str, Any]:
    return {
        "message": message,
        "id_token": session.id_token,
        "token_type": "Bearer",
        "refresh_token": session.refresh_token,
        "uid": session.uid,
        "email": session.email,
        "display_name": session.display_name,
        "role": session.role.value,
        "email_verified": session.email_verified,
        **extra,
    }


# ──────────────────────────────────────────────────────────────────────────────
# Registration & login
# ──────────────────────────────────────────────────────────────────────────────

async def _register(body: RegisterRequest, role: UserRole, provider: SessionProvider) -> Dict[str, Any]:
    logger.info("Registration attempt: %s", _redact_sensitive(body.model_dump()))
    try:
        result = await provider.register(body.email, body.password, body.display_name, role=role)
    except AuthError as e:
        raise _auth_http_error(e)
    return _session_response(
        result.session,
        "registration successful. Please check your email to verify your account.",
        needs_verification=result.needs_verification,
    )


@router.post("/register", response_model=dict, status_code=status.HTTP_201_CREATED)
async def register_patient(
    body: RegisterRequest,
    provider: SessionProvider = Depends(get_session_provider)
) -> Dict[str, Any]:
    return await _register(body, UserRole.PATIENT, provider)


@router.post("/register/admin", response_model=dict, status_code=status.HTTP_201_CREATED)
async def register_admin(
    body: RegisterRequest,
    current_user: Session = Depends(require_admin),
    provider: SessionProvider = Depends(get_session_provider)
) -> Dict[str, Any]:
    logger.info(f"[Auth] Admin {current_user.uid} is creating an admin account")
    return await _register(body, UserRole.ADMIN, SessionProvider(provider.auth, provider.users, provider.analytics))


@router.post("/login", response_model=dict)
async def login_email_password(
    body: LoginRequest,
    provider: SessionProvider = Depends(get_session_provider)
) -> Dict[str, Any]:
    logger.info("Login attempt: %s", _redact_sensitive(body.model_dump()))
    try:
        session = await provider.sign_in(body.email, body.password)
    except AuthError as e:
        raise _auth_http_error(e)

    profile = await provider.get_profile(session.uid)
    return _session_response(
        session,
        "login successful",
        profile=profile.to_store() if profile else None,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Identity / self-service
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/me", response_model=dict)
async def get_current_user_info(
    current_user: Session = Depends(get_current_user),
    provider: SessionProvider = Depends(get_session_provider)
) -> Dict[str, Any]:
    profile = await provider.get_profile(current_user.uid)
    info: Dict[str, Any] = {
        "uid": current_user.uid,
        "email": current_user.email,
        "display_name": current_user.display_name,
        "role": current_user.role.value,
        "email_verified": current_user.email_verified,
    }
    if profile:
        info["profile"] = profile.to_store()
    return info


@router.post("/logout", response_model=dict)
async def logout_user(
    current_user: Session = Depends(get_current_user),
    provider: SessionProvider = Depends(get_session_provider)
) -> Dict[str, Any]:
    """Revoke the caller's refresh tokens."""
    await provider.sign_out()
    return {"message": "logged out successfully", "uid": current_user.uid}


@router.get("/verify", response_model=dict)
async def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    provider: SessionProvider = Depends(get_session_provider)
) -> Dict[str, Any]:
    """Check a token without failing the request; useful for the frontend on reload."""
    try:
        session = await provider.restore(credentials.credentials)
    except AuthError as e:
        return {"valid": False, "reason": e.category.value}
    return {"valid": True, "uid": session.uid, "role": session.role.value}
