"""Tests for sessions and sign-in."""

import asyncio

import pytest

from buildledger.auth import AuthService, InMemoryAuthProvider, Session
from buildledger.exceptions import AuthenticationError, AuthorizationError, ValidationError
from buildledger.models import UserProfile, UserRole


@pytest.fixture
def provider():
    return InMemoryAuthProvider()


@pytest.fixture
def auth(provider, user_storage, audit_logger):
    return AuthService(provider, user_storage, audit_logger)


@pytest.fixture
def account(provider, admin):
    asyncio.run(provider.sign_up(admin.email, "correct-horse", user_id=admin.id))
    return admin


class TestSession:
    """Tests for session guards."""

    def test_admin_session(self, admin_session):
        assert admin_session.is_admin
        admin_session.require_active()
        admin_session.require_admin()

    def test_regular_user_is_not_admin(self, user_session):
        user_session.require_active()
        with pytest.raises(AuthorizationError):
            user_session.require_admin()

    def test_inactive_session(self, admin_session):
        admin_session.active = False
        with pytest.raises(AuthorizationError):
            admin_session.require_active()

    def test_deactivated_profile(self):
        profile = UserProfile(email="x@example.com", role=UserRole.ADMIN, is_active=False)
        session = Session(user_id=profile.id, profile=profile, access_token="t")
        with pytest.raises(AuthorizationError):
            session.require_admin()


class TestSignIn:
    """Tests for AuthService.sign_in."""

    def test_sign_in_returns_session(self, auth, account, user_storage, event_types):
        session = asyncio.run(auth.sign_in("  PETR@example.com ", "correct-horse"))

        assert session.user_id == account.id
        assert session.active
        assert session.is_admin
        assert session.profile.last_login is not None
        stored = asyncio.run(user_storage.get_user(account.id))
        assert stored.last_login is not None
        assert event_types() == ["signed_in"]

    def test_wrong_password(self, auth, account, event_types):
        with pytest.raises(AuthenticationError):
            asyncio.run(auth.sign_in(account.email, "wrong-password"))
        assert event_types() == ["sign_in_rejected"]

    def test_unknown_email(self, auth):
        with pytest.raises(AuthenticationError):
            asyncio.run(auth.sign_in("nobody@example.com", "whatever1"))

    def test_missing_credentials(self, auth):
        with pytest.raises(ValidationError):
            asyncio.run(auth.sign_in("", "secret"))

    def test_deactivated_account_signed_out(self, auth, provider, db, add_user):
        inactive = add_user("Old Timer", is_active=False, email="old@example.com")
        asyncio.run(provider.sign_up(inactive.email, "long-password", user_id=inactive.id))

        with pytest.raises(AuthenticationError):
            asyncio.run(auth.sign_in(inactive.email, "long-password"))

        assert provider._tokens == {}

    def test_account_without_profile(self, auth, provider):
        asyncio.run(provider.sign_up("ghost@example.com", "long-password"))
        with pytest.raises(AuthenticationError):
            asyncio.run(auth.sign_in("ghost@example.com", "long-password"))


class TestSignOut:
    """Tests for sign-out and profile refresh."""

    def test_sign_out_invalidates_session(self, auth, account, provider):
        session = asyncio.run(auth.sign_in(account.email, "correct-horse"))

        asyncio.run(auth.sign_out(session))

        assert not session.active
        assert not provider.is_token_active(session.access_token)
        with pytest.raises(AuthorizationError):
            session.require_active()

    def test_refresh_picks_up_role_change(self, auth, account, user_storage):
        session = asyncio.run(auth.sign_in(account.email, "correct-horse"))
        asyncio.run(user_storage.update_user(account.id, {"role": "user"}))

        refreshed = asyncio.run(auth.refresh_profile(session))

        assert not refreshed.is_admin

    def test_refresh_ends_deactivated_session(self, auth, account, user_storage):
        session = asyncio.run(auth.sign_in(account.email, "correct-horse"))
        asyncio.run(user_storage.update_user(account.id, {"is_active": False}))

        with pytest.raises(AuthenticationError):
            asyncio.run(auth.refresh_profile(session))
        assert not session.active

    def test_password_reset(self, auth, account, provider):
        asyncio.run(auth.request_password_reset("Petr@Example.com"))
        assert provider.reset_requests == ["petr@example.com"]

    def test_password_reset_requires_email(self, auth):
        with pytest.raises(ValidationError):
            asyncio.run(auth.request_password_reset("  "))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
