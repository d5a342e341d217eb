"""
Session & Authentication

DESIGN DECISION: The signed-in session is an explicit object. It is
created by AuthService.sign_in and handed to every service call that
needs an actor, instead of being read from ambient global state. That
keeps authorization checks visible at the call site and testable.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from buildledger.audit import AuditLogger
from buildledger.auth.provider import AuthProviderInterface
from buildledger.exceptions import AuthenticationError, AuthorizationError, ValidationError
from buildledger.models.records import utc_now
from buildledger.models.user import UserProfile
from buildledger.services.storage import UserStorageInterface


logger = structlog.get_logger(__name__)


class Session(BaseModel):
    """An authenticated actor. `active` is cleared on sign-out."""

    user_id: UUID
    profile: UserProfile
    access_token: str
    issued_at: datetime = Field(default_factory=utc_now)
    active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.profile.is_admin

    def require_active(self) -> None:
        """Raise AuthorizationError unless the session and its account are usable."""
        if not self.active:
            raise AuthorizationError("Session has been signed out")
        if not self.profile.is_active:
            raise AuthorizationError("Account is deactivated")

    def require_admin(self) -> None:
        """Raise AuthorizationError unless an active admin is signed in."""
        self.require_active()
        if not self.is_admin:
            raise AuthorizationError("Administrator privileges are required")


class AuthService:
    """Signs users in and out through the configured auth provider."""

    def __init__(
        self,
        provider: AuthProviderInterface,
        users: UserStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._provider = provider
        self._users = users
        self._audit_logger = audit_logger or AuditLogger()

    async def sign_in(self, email: str, password: str) -> Session:
        """
        Authenticate and open a session.

        Deactivated accounts are signed straight back out and rejected,
        so a stale provider session never outlives the deactivation.

        Raises:
            ValidationError: Email or password missing
            AuthenticationError: Credentials rejected, no profile, or account inactive
        """
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required")

        try:
            account = await self._provider.sign_in(email, password)
        except AuthenticationError as e:
            await self._audit_logger.log_sign_in_rejected(email, str(e))
            raise

        profile = await self._users.get_user(account.user_id)
        if profile is None:
            await self._provider.sign_out(account.access_token)
            await self._audit_logger.log_sign_in_rejected(email, "missing profile")
            raise AuthenticationError("No user profile exists for this account")

        if not profile.is_active:
            await self._provider.sign_out(account.access_token)
            await self._audit_logger.log_sign_in_rejected(email, "account deactivated")
            raise AuthenticationError("Account is deactivated. Contact an administrator.")

        profile = await self._users.update_user(profile.id, {"last_login": utc_now()})
        await self._audit_logger.log_signed_in(profile.id)

        return Session(
            user_id=profile.id,
            profile=profile,
            access_token=account.access_token,
        )

    async def sign_out(self, session: Session) -> None:
        """Close the provider session and invalidate the local one."""
        if not session.active:
            return
        await self._provider.sign_out(session.access_token)
        session.active = False
        await self._audit_logger.log_signed_out(session.user_id)

    async def refresh_profile(self, session: Session) -> Session:
        """
        Reload the session's profile (role or activation may have changed).

        A profile that disappeared or was deactivated ends the session.
        """
        session.require_active()
        profile = await self._users.get_user(session.user_id)
        if profile is None or not profile.is_active:
            await self.sign_out(session)
            raise AuthenticationError("Account is no longer active")

        session.profile = profile
        return session

    async def request_password_reset(self, email: str) -> None:
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required", field="email")
        await self._provider.request_password_reset(email)
        logger.info("password_reset_requested")
