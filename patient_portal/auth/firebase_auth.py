"""
Identity provider access.

Account creation, password sign-in, display-name updates and verification
mail go through the Identity Toolkit REST API (these need the web API key and
act as the user). Token verification and account lookups use the Admin SDK.
Raw provider codes are translated to AuthErrorCategory here and never leave
this package.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from firebase_admin import auth

from ..core.config import settings
from ..core.exceptions import AuthError, AuthErrorCategory
from ..core.firebase_init import initialize_firebase, is_firebase_available

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts"

# REST error messages and client-SDK style codes -> user-facing category
PROVIDER_ERROR_CATEGORIES = {
    'EMAIL_EXISTS': AuthErrorCategory.EMAIL_IN_USE,
    'auth/email-already-in-use': AuthErrorCategory.EMAIL_IN_USE,
    'EMAIL_NOT_FOUND': AuthErrorCategory.INVALID_CREDENTIALS,
    'INVALID_PASSWORD': AuthErrorCategory.INVALID_CREDENTIALS,
    'INVALID_LOGIN_CREDENTIALS': AuthErrorCategory.INVALID_CREDENTIALS,
    'INVALID_EMAIL': AuthErrorCategory.INVALID_CREDENTIALS,
    'INVALID_ID_TOKEN': AuthErrorCategory.INVALID_CREDENTIALS,
    'auth/user-not-found': AuthErrorCategory.INVALID_CREDENTIALS,
    'auth/wrong-password': AuthErrorCategory.INVALID_CREDENTIALS,
    'auth/invalid-credential': AuthErrorCategory.INVALID_CREDENTIALS,
    'auth/invalid-email': AuthErrorCategory.INVALID_CREDENTIALS,
    'WEAK_PASSWORD': AuthErrorCategory.WEAK_PASSWORD,
    'auth/weak-password': AuthErrorCategory.WEAK_PASSWORD,
    'TOO_MANY_ATTEMPTS_TRY_LATER': AuthErrorCategory.TOO_MANY_ATTEMPTS,
    'auth/too-many-requests': AuthErrorCategory.TOO_MANY_ATTEMPTS,
    'USER_DISABLED': AuthErrorCategory.ACCOUNT_DISABLED,
    'auth/user-disabled': AuthErrorCategory.ACCOUNT_DISABLED,
}


def map_provider_error(code: Optional[str]) -> AuthErrorCategory:
    """
    Map a provider code to a category. REST messages may carry detail after a
    colon ("WEAK_PASSWORD : Password should be at least 6 characters").
    """
    if not code:
        return AuthErrorCategory.UNKNOWN
    key = str(code).split(':', 1)[0].strip()
    return PROVIDER_ERROR_CATEGORIES.get(key, AuthErrorCategory.UNKNOWN)


def map_admin_error(error: Exception) -> AuthErrorCategory:
    if isinstance(error, auth.EmailAlreadyExistsError):
        return AuthErrorCategory.EMAIL_IN_USE
    if isinstance(error, auth.UserDisabledError):
        return AuthErrorCategory.ACCOUNT_DISABLED
    if isinstance(error, (auth.UserNotFoundError, auth.InvalidIdTokenError)):
        return AuthErrorCategory.INVALID_CREDENTIALS
    return AuthErrorCategory.UNKNOWN


class FirebaseAuth:
    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0
    ):
        self.api_key = api_key if api_key is not None else settings.FIREBASE_WEB_API_KEY
        self._transport = transport
        self._timeout = timeout

    def _ensure_admin(self):
        if not is_firebase_available():
            if not initialize_firebase():
                raise Exception("Firebase initialization failed - Auth not available")

    # ===== Identity Toolkit REST =====

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            logger.error("[Auth] Missing FIREBASE_WEB_API_KEY")
            raise AuthError(AuthErrorCategory.UNKNOWN)

        url = f"{IDENTITY_TOOLKIT_URL}:{endpoint}?key={self.api_key}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload, headers={"Content-Type": "application/json"})
        except httpx.HTTPError as e:
            logger.error(f"[Auth] {endpoint} request failed: {e}")
            raise AuthError(AuthErrorCategory.UNKNOWN) from e

        if resp.status_code != 200:
            try:
                code = resp.json().get('error', {}).get('message')
            except ValueError:
                code = None
            category = map_provider_error(code)
            logger.warning(f"[Auth] {endpoint} rejected: {code} -> {category.value}")
            raise AuthError(category)
        return resp.json()

    async def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        """Create an email/password account. Returns {localId, idToken, refreshToken, ...}."""
        return await self._post("signUp", {"email": email, "password": password, "returnSecureToken": True})

    async def sign_in_with_password(self, email: str, password: str) -> Dict[str, Any]:
        return await self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True}
        )

    async def update_display_name(self, id_token: str, display_name: str) -> None:
        await self._post(
            "update",
            {"idToken": id_token, "displayName": display_name, "returnSecureToken": False}
        )

    async def send_email_verification(self, id_token: str) -> None:
        await self._post("sendOobCode", {"requestType": "VERIFY_EMAIL", "idToken": id_token})

    # ===== Admin SDK =====

    async def verify_token(self, token: str) -> Optional[dict]:
        try:
            self._ensure_admin()
            return await asyncio.to_thread(auth.verify_id_token, token)
        except Exception as e:
            logger.warning(f"[Auth] Token verification failed: {e}")
            return None

    async def get_user(self, uid: str):
        try:
            self._ensure_admin()
            return await asyncio.to_thread(auth.get_user, uid)
        except Exception as e:
            logger.warning(f"[Auth] Get user failed: {e}")
            return None

    async def set_custom_claims(self, uid: str, claims: dict):
        self._ensure_admin()
        try:
            await asyncio.to_thread(auth.set_custom_user_claims, uid, claims)
        except Exception as e:
            raise AuthError(map_admin_error(e)) from e

    async def revoke_refresh_tokens(self, uid: str):
        self._ensure_admin()
        try:
            await asyncio.to_thread(auth.revoke_refresh_tokens, uid)
        except Exception as e:
            raise AuthError(map_admin_error(e)) from e


# Singleton instance
_firebase_auth = None

def get_firebase_auth() -> FirebaseAuth:
    global _firebase_auth
    if _firebase_auth is None:
        _firebase_auth = FirebaseAuth()
    return _firebase_auth
