"""
Session provider: registration, sign-in/out and the current-session stream.

A SessionProvider is owned by one client (one connection, one request); it is
never a process-wide singleton. Services receive the Session it produces
explicitly.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

from pydantic import BaseModel

from ..core.exceptions import AuthError, AuthErrorCategory
from ..database.gateway import Subscription
from ..models.user import ProfileUpdate, Session, UserProfile, UserRole
from ..services.analytics_service import get_analytics_service
from ..services.user_service import get_user_service
from .firebase_auth import get_firebase_auth

logger = logging.getLogger(__name__)


class RegistrationResult(BaseModel):
    session: Session
    needs_verification: bool = True


class SessionProvider:
    def __init__(self, auth_client=None, user_service=None, analytics_service=None):
        self.auth = auth_client or get_firebase_auth()
        self.users = user_service or get_user_service()
        self.analytics = analytics_service if analytics_service is not None else get_analytics_service()
        self._session: Optional[Session] = None
        self._listeners: List[Callable[[Optional[Session]], Any]] = []

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    # ===== Auth state stream =====

    def on_auth_change(self, callback: Callable[[Optional[Session]], Any]) -> Subscription:
        """Call `callback` now and on every sign-in/sign-out. Close the result to stop."""
        self._listeners.append(callback)
        subscription = Subscription('auth', closer=lambda: self._remove_listener(callback))
        self._emit_to(callback, self._session)
        return subscription

    def _remove_listener(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit_to(self, callback, session: Optional[Session]):
        try:
            result = callback(session)
            if inspect.isawaitable(result):
                asyncio.ensure_future(result)
        except Exception as e:
            logger.error(f"[Auth] Auth-change listener failed: {e}", exc_info=True)

    def _set_session(self, session: Optional[Session]):
        self._session = session
        for callback in list(self._listeners):
            self._emit_to(callback, session)

    # ===== Operations =====

    async def register(
        self,
        email: str,
        password: str,
        display_name: str,
        role: UserRole = UserRole.PATIENT
    ) -> RegistrationResult:
        """
        Create the account, name it, send the verification mail, then write the
        full User document. If that last write fails the account exists without
        a profile; this is logged and the error propagates.
        """
        tokens = await self.auth.sign_up(email, password)
        uid = tokens.get('localId')
        id_token = tokens.get('idToken')
        if not uid:
            raise AuthError(AuthErrorCategory.UNKNOWN)

        await self.auth.update_display_name(id_token, display_name)

        needs_verification = True
        try:
            await self.auth.send_email_verification(id_token)
        except AuthError as e:
            logger.warning(f"[Auth] Verification email for {uid} not sent: {e.category.value}")

        try:
            await self.users.create_user(uid, email, display_name, role=role, email_verified=False)
        except Exception as e:
            logger.error(f"[Auth] REGISTRATION_PARTIAL_FAILURE uid={uid}: account created, profile write failed: {e}")
            raise

        if role != UserRole.PATIENT:
            try:
                await self.auth.set_custom_claims(uid, {'role': role.value})
            except Exception as e:
                logger.warning(f"[Auth] Could not set role claim for {uid}: {e}")

        await self.analytics.increment('user_registrations')

        session = Session(
            uid=uid,
            email=email,
            display_name=display_name,
            email_verified=False,
            role=role,
            id_token=id_token,
            refresh_token=tokens.get('refreshToken'),
        )
        self._set_session(session)
        logger.info(f"[Auth] Registered {uid} as {role.value}")
        return RegistrationResult(session=session, needs_verification=needs_verification)

    async def sign_in(self, email: str, password: str) -> Session:
        tokens = await self.auth.sign_in_with_password(email, password)
        uid = tokens.get('localId')
        if not uid:
            raise AuthError(AuthErrorCategory.UNKNOWN)

        profile = await self.users.get_profile(uid)
        if profile is None:
            logger.warning(f"[Auth] Account {uid} has no profile document")
            raise AuthError(AuthErrorCategory.PROFILE_NOT_FOUND)
        if not profile.is_active:
            raise AuthError(AuthErrorCategory.ACCOUNT_DISABLED)

        try:
            await self.users.update_last_login(uid)
        except Exception as e:
            logger.warning(f"[Auth] Could not stamp last login for {uid}: {e}")

        id_token = tokens.get('idToken')
        claims = await self.auth.verify_token(id_token) if id_token else None
        session = self._session_from_profile(profile, id_token, tokens.get('refreshToken'))
        session.email_verified = await self._sync_email_verified(profile, claims)
        self._set_session(session)
        logger.info(f"[Auth] ✅ Signed in {uid} ({session.role.value})")
        return session

    async def sign_out(self) -> None:
        session = self._session
        if session is None:
            return
        try:
            await self.auth.revoke_refresh_tokens(session.uid)
        except Exception as e:
            logger.warning(f"[Auth] Could not revoke tokens for {session.uid}: {e}")
        self._set_session(None)
        logger.info(f"[Auth] Signed out {session.uid}")

    async def restore(self, id_token: str) -> Session:
        """Rebuild a session from an ID token (bearer header, websocket query)."""
        claims = await self.auth.verify_token(id_token)
        if not claims:
            raise AuthError(AuthErrorCategory.INVALID_CREDENTIALS)

        uid = claims.get('uid') or claims.get('user_id') or claims.get('sub')
        profile = await self.users.get_profile(uid) if uid else None
        if profile is None:
            raise AuthError(AuthErrorCategory.PROFILE_NOT_FOUND)
        if not profile.is_active:
            raise AuthError(AuthErrorCategory.ACCOUNT_DISABLED)

        session = self._session_from_profile(profile, id_token, None)
        session.email_verified = await self._sync_email_verified(profile, claims)
        self._set_session(session)
        return session

    async def get_profile(self, uid: str) -> Optional[UserProfile]:
        return await self.users.get_profile(uid)

    async def update_profile(self, uid: str, update: ProfileUpdate) -> None:
        await self.users.update_profile(uid, update)
        session = self._session
        if session and session.uid == uid and update.display_name is not None:
            self._set_session(session.model_copy(update={'display_name': update.display_name}))

    async def is_admin(self, uid: str) -> bool:
        profile = await self.users.get_profile(uid)
        return bool(profile and profile.role == UserRole.ADMIN)

    async def _sync_email_verified(self, profile: UserProfile, claims: Optional[dict]) -> bool:
        """The provider's verified-email flag wins; the profile mirror is updated to match."""
        if not claims or 'email_verified' not in claims:
            return profile.email_verified
        verified = bool(claims['email_verified'])
        if verified != profile.email_verified:
            try:
                await self.users.set_email_verified(profile.uid, verified)
            except Exception as e:
                logger.warning(f"[Auth] Could not sync emailVerified for {profile.uid}: {e}")
        return verified

    @staticmethod
    def _session_from_profile(profile: UserProfile, id_token: Optional[str], refresh_token: Optional[str]) -> Session:
        return Session(
            uid=profile.uid,
            email=profile.email,
            display_name=profile.display_name,
            email_verified=profile.email_verified,
            role=profile.role,
            id_token=id_token,
            refresh_token=refresh_token,
        )
