"""
User Administration

Every call takes the acting session and requires an active admin.
Accounts are registered with the auth provider first; the profile row
is written with the provider's user id.
"""

from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from buildledger.audit import AuditLogger
from buildledger.auth.provider import AuthProviderInterface
from buildledger.auth.session import Session
from buildledger.exceptions import ValidationError
from buildledger.models.user import CreateUserData, UpdateUserData, UserProfile, UserRole
from buildledger.services.storage import NotFoundError, UserStorageInterface


logger = structlog.get_logger(__name__)


class UserStats(BaseModel):
    total: int
    active: int
    admins: int


class UserAdminService:
    """Admin-only management of user accounts and profiles."""

    def __init__(
        self,
        provider: AuthProviderInterface,
        users: UserStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._provider = provider
        self._users = users
        self._audit_logger = audit_logger or AuditLogger()

    async def list_users(self, session: Session) -> list[UserProfile]:
        """All profiles, newest first."""
        session.require_admin()
        return await self._users.list_users()

    async def get_user(self, session: Session, user_id: UUID) -> UserProfile:
        session.require_admin()
        profile = await self._users.get_user(user_id)
        if profile is None:
            raise NotFoundError(f"User not found: {user_id}")
        return profile

    async def create_user(self, session: Session, data: CreateUserData) -> UserProfile:
        """
        Register an account and write its profile.

        Raises:
            AuthorizationError: Not an active admin
            ValidationError: Email already in use
            PersistenceError: Profile write failed
        """
        session.require_admin()

        if await self._users.get_user_by_email(data.email):
            raise ValidationError(f"A user with email {data.email} already exists", field="email")

        user_id = await self._provider.sign_up(data.email, data.password)
        profile = await self._users.save_user(UserProfile(
            id=user_id,
            email=data.email,
            full_name=data.full_name,
            role=data.role,
            is_active=data.is_active,
            phone=data.phone or None,
            position=data.position or None,
        ))

        await self._audit_logger.log_user_created(
            profile.id, profile.email, profile.role.value, session.user_id
        )
        return profile

    async def update_user(
        self,
        session: Session,
        user_id: UUID,
        data: UpdateUserData,
    ) -> UserProfile:
        """Apply the fields set in `data`. An admin cannot demote or deactivate themself."""
        session.require_admin()

        changes = data.model_dump(mode="json", exclude_none=True)
        if user_id == session.user_id:
            if changes.get("is_active") is False:
                raise ValidationError("You cannot deactivate your own account", field="is_active")
            if changes.get("role", UserRole.ADMIN.value) != UserRole.ADMIN.value:
                raise ValidationError("You cannot remove your own admin role", field="role")

        if not changes:
            return await self.get_user(session, user_id)

        profile = await self._users.update_user(user_id, changes)
        await self._audit_logger.log_user_updated(user_id, changes, session.user_id)
        return profile

    async def toggle_active(self, session: Session, user_id: UUID) -> UserProfile:
        """Flip a user's active flag. Admins cannot deactivate themselves."""
        session.require_admin()
        if user_id == session.user_id:
            raise ValidationError("You cannot deactivate your own account", field="is_active")

        profile = await self.get_user(session, user_id)
        updated = await self._users.update_user(user_id, {"is_active": not profile.is_active})

        await self._audit_logger.log_user_activation_changed(
            user_id, updated.is_active, session.user_id
        )
        return updated

    async def user_stats(self, session: Session) -> UserStats:
        users = await self.list_users(session)
        return UserStats(
            total=len(users),
            active=sum(1 for u in users if u.is_active),
            admins=sum(1 for u in users if u.is_admin),
        )
