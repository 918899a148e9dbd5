import httpx
import pytest

from conftest import FakeGateway
from patient_portal.auth.firebase_auth import FirebaseAuth, map_provider_error
from patient_portal.auth.session import SessionProvider
from patient_portal.core.exceptions import AuthError, AuthErrorCategory, GatewayError
from patient_portal.models.user import UserRole
from patient_portal.services.analytics_service import AnalyticsService, today_key
from patient_portal.services.user_service import UserService


class FakeAuthClient:
    """Records identity-provider calls in order"""

    def __init__(self, uid="uid_new", verification_error=None, claims=None):
        self.uid = uid
        self.calls = []
        self.verification_error = verification_error
        self.claims = claims

    async def sign_up(self, email, password):
        self.calls.append('sign_up')
        return {'localId': self.uid, 'idToken': 'id-token', 'refreshToken': 'refresh-token'}

    async def sign_in_with_password(self, email, password):
        self.calls.append('sign_in')
        return {'localId': self.uid, 'idToken': 'id-token', 'refreshToken': 'refresh-token'}

    async def update_display_name(self, id_token, display_name):
        self.calls.append('update_display_name')

    async def send_email_verification(self, id_token):
        self.calls.append('send_email_verification')
        if self.verification_error:
            raise self.verification_error

    async def set_custom_claims(self, uid, claims):
        self.calls.append(('set_custom_claims', claims))

    async def revoke_refresh_tokens(self, uid):
        self.calls.append('revoke')

    async def verify_token(self, token):
        return self.claims


def make_provider(gateway, auth_client):
    return SessionProvider(auth_client, UserService(gateway), AnalyticsService(gateway))


# ===== Error mapping =====

@pytest.mark.parametrize("code, category", [
    ("EMAIL_EXISTS", AuthErrorCategory.EMAIL_IN_USE),
    ("auth/email-already-in-use", AuthErrorCategory.EMAIL_IN_USE),
    ("INVALID_LOGIN_CREDENTIALS", AuthErrorCategory.INVALID_CREDENTIALS),
    ("auth/wrong-password", AuthErrorCategory.INVALID_CREDENTIALS),
    ("WEAK_PASSWORD : Password should be at least 6 characters", AuthErrorCategory.WEAK_PASSWORD),
    ("TOO_MANY_ATTEMPTS_TRY_LATER", AuthErrorCategory.TOO_MANY_ATTEMPTS),
    ("USER_DISABLED", AuthErrorCategory.ACCOUNT_DISABLED),
    ("SOMETHING_NEW", AuthErrorCategory.UNKNOWN),
    (None, AuthErrorCategory.UNKNOWN),
])
def test_map_provider_error(code, category):
    assert map_provider_error(code) == category


@pytest.mark.asyncio
async def test_rest_errors_become_categories():
    def handler(request):
        assert request.url.params['key'] == "web-key"
        return httpx.Response(400, json={'error': {'code': 400, 'message': 'EMAIL_EXISTS'}})

    client = FirebaseAuth(api_key="web-key", transport=httpx.MockTransport(handler))
    with pytest.raises(AuthError) as exc_info:
        await client.sign_up("pat@example.com", "secret123")

    assert exc_info.value.category == AuthErrorCategory.EMAIL_IN_USE
    assert exc_info.value.message == "This email address is already registered"


@pytest.mark.asyncio
async def test_missing_web_api_key_is_unknown_error():
    client = FirebaseAuth(api_key="")
    with pytest.raises(AuthError) as exc_info:
        await client.sign_in_with_password("pat@example.com", "secret123")
    assert exc_info.value.category == AuthErrorCategory.UNKNOWN


# ===== Registration =====

@pytest.mark.asyncio
async def test_register_names_account_sends_verification_then_writes_user(gateway):
    auth_client = FakeAuthClient()
    provider = make_provider(gateway, auth_client)

    result = await provider.register("pat@example.com", "secret123", "Pat Doe")

    assert auth_client.calls == ['sign_up', 'update_display_name', 'send_email_verification']
    assert result.needs_verification is True
    assert result.session.uid == "uid_new"
    assert provider.current_session.display_name == "Pat Doe"

    user = gateway.get("users/uid_new")
    assert user['profile']['displayName'] == "Pat Doe"
    assert user['profile']['role'] == "patient"
    assert user['profile']['emailVerified'] is False
    assert user['systemSettings']['preferences']['dateFormat'] == "MM/DD/YYYY"
    assert gateway.get(f"analytics/dailyStats/{today_key()}")['userRegistrations'] == 1


@pytest.mark.asyncio
async def test_admin_registration_sets_role_claim(gateway):
    auth_client = FakeAuthClient(uid="uid_admin")
    provider = make_provider(gateway, auth_client)

    await provider.register("ops@example.com", "secret123", "Ops", role=UserRole.ADMIN)

    assert ('set_custom_claims', {'role': 'admin'}) in auth_client.calls
    assert gateway.get("users/uid_admin/profile/role") == "admin"


@pytest.mark.asyncio
async def test_verification_mail_failure_does_not_block_registration(gateway):
    auth_client = FakeAuthClient(verification_error=AuthError(AuthErrorCategory.TOO_MANY_ATTEMPTS))
    provider = make_provider(gateway, auth_client)

    await provider.register("pat@example.com", "secret123", "Pat Doe")
    assert gateway.get("users/uid_new/profile") is not None


@pytest.mark.asyncio
async def test_profile_write_failure_propagates_and_is_logged(gateway, caplog):
    gateway.fail('set', 'users/uid_new')
    provider = make_provider(gateway, FakeAuthClient())

    with pytest.raises(GatewayError):
        await provider.register("pat@example.com", "secret123", "Pat Doe")

    assert "REGISTRATION_PARTIAL_FAILURE uid=uid_new" in caplog.text
    assert provider.current_session is None


# ===== Sign-in / sign-out =====

@pytest.mark.asyncio
async def test_sign_in_without_profile_is_profile_not_found(gateway):
    provider = make_provider(gateway, FakeAuthClient(uid="ghost"))

    with pytest.raises(AuthError) as exc_info:
        await provider.sign_in("ghost@example.com", "secret123")
    assert exc_info.value.category == AuthErrorCategory.PROFILE_NOT_FOUND
    assert provider.current_session is None


@pytest.mark.asyncio
async def test_sign_in_disabled_profile(gateway):
    await UserService(gateway).create_user("uid_new", "pat@example.com", "Pat Doe")
    await gateway.update("users/uid_new/profile", {'isActive': False})

    provider = make_provider(gateway, FakeAuthClient())
    with pytest.raises(AuthError) as exc_info:
        await provider.sign_in("pat@example.com", "secret123")
    assert exc_info.value.category == AuthErrorCategory.ACCOUNT_DISABLED


@pytest.mark.asyncio
async def test_sign_in_and_out_drive_the_auth_stream(gateway):
    await UserService(gateway).create_user("uid_new", "pat@example.com", "Pat Doe")
    await gateway.update("users/uid_new/profile", {'lastLoginAt': "2025-01-01T00:00:00+00:00"})
    auth_client = FakeAuthClient()
    provider = make_provider(gateway, auth_client)

    seen = []
    subscription = provider.on_auth_change(lambda session: seen.append(session.uid if session else None))

    session = await provider.sign_in("pat@example.com", "secret123")
    assert session.role == UserRole.PATIENT
    assert session.id_token == "id-token"
    assert gateway.get("users/uid_new/profile/lastLoginAt") != "2025-01-01T00:00:00+00:00"

    await provider.sign_out()
    assert 'revoke' in auth_client.calls
    assert provider.current_session is None

    subscription.close()
    await provider.sign_in("pat@example.com", "secret123")
    assert seen == [None, "uid_new", None]


@pytest.mark.asyncio
async def test_restore_rejects_invalid_token(gateway):
    provider = make_provider(gateway, FakeAuthClient(claims=None))
    with pytest.raises(AuthError) as exc_info:
        await provider.restore("bad-token")
    assert exc_info.value.category == AuthErrorCategory.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_restore_folds_legacy_user_role(gateway):
    await UserService(gateway).create_user("uid_new", "pat@example.com", "Pat Doe")
    await gateway.update("users/uid_new/profile", {'role': 'user'})
    provider = make_provider(gateway, FakeAuthClient(claims={'uid': 'uid_new', 'email_verified': True}))

    session = await provider.restore("token")
    assert session.role == UserRole.PATIENT
    assert session.email_verified is True
    assert not session.is_admin


# ===== Verified-email flag =====

@pytest.mark.asyncio
async def test_sign_in_picks_up_verification_from_provider(gateway):
    await make_provider(gateway, FakeAuthClient()).register("pat@example.com", "secret123", "Pat Doe")
    assert gateway.get("users/uid_new/profile/emailVerified") is False

    provider = make_provider(gateway, FakeAuthClient(claims={'uid': 'uid_new', 'email_verified': True}))
    session = await provider.sign_in("pat@example.com", "secret123")

    assert session.email_verified is True
    assert gateway.get("users/uid_new/profile/emailVerified") is True


@pytest.mark.asyncio
async def test_restore_writes_back_verified_flag(gateway):
    await UserService(gateway).create_user("uid_new", "pat@example.com", "Pat Doe")
    provider = make_provider(gateway, FakeAuthClient(claims={'uid': 'uid_new', 'email_verified': True}))

    await provider.restore("token")
    assert gateway.get("users/uid_new/profile/emailVerified") is True

    gateway.writes.clear()
    await provider.restore("token")
    assert ('update', 'users/uid_new/profile') not in gateway.writes


@pytest.mark.asyncio
async def test_sign_in_without_claims_keeps_profile_flag(gateway):
    await UserService(gateway).create_user("uid_new", "pat@example.com", "Pat Doe", email_verified=True)
    provider = make_provider(gateway, FakeAuthClient(claims=None))

    session = await provider.sign_in("pat@example.com", "secret123")
    assert session.email_verified is True
