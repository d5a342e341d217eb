"""
Authentication Providers

The credential store is an external collaborator (a hosted auth service in
production). AuthService only talks to it through AuthProviderInterface, so
the hosted provider and the in-memory one used for tests are interchangeable.
"""

import hashlib
import hmac
import secrets
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel

from buildledger.exceptions import AuthenticationError, ValidationError


logger = structlog.get_logger(__name__)


class AuthAccount(BaseModel):
    """Result of a successful credential check."""

    user_id: UUID
    email: str
    access_token: str


class AuthProviderInterface(ABC):
    """Abstract interface for the credential store."""

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> UUID:
        """
        Register credentials for a new account.

        Returns the new account's user id.
        Raises ValidationError if the email is already registered.
        """
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthAccount:
        """
        Check credentials and open a provider session.

        Raises AuthenticationError when the credentials are rejected.
        """
        pass

    @abstractmethod
    async def sign_out(self, access_token: str) -> None:
        """Invalidate a provider session. Unknown tokens are ignored."""
        pass

    @abstractmethod
    async def request_password_reset(self, email: str) -> None:
        """Send a password reset link. Unknown addresses are ignored."""
        pass


class InMemoryAuthProvider(AuthProviderInterface):
    """
    Credential store kept in process memory.

    Passwords are stored as salted PBKDF2 hashes, never in clear text.
    """

    ITERATIONS = 100_000

    def __init__(self):
        self._accounts: dict[str, tuple[UUID, bytes, bytes]] = {}
        self._tokens: dict[str, UUID] = {}
        self.reset_requests: list[str] = []

    def _hash(self, password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, self.ITERATIONS)

    async def sign_up(self, email: str, password: str, user_id: Optional[UUID] = None) -> UUID:
        email = email.strip().lower()
        if email in self._accounts:
            raise ValidationError(f"Email is already registered: {email}", field="email")

        salt = secrets.token_bytes(16)
        user_id = user_id or uuid4()
        self._accounts[email] = (user_id, salt, self._hash(password, salt))
        return user_id

    async def sign_in(self, email: str, password: str) -> AuthAccount:
        email = email.strip().lower()
        account = self._accounts.get(email)
        if account is None:
            raise AuthenticationError("Invalid email or password")

        user_id, salt, stored_hash = account
        if not hmac.compare_digest(stored_hash, self._hash(password, salt)):
            raise AuthenticationError("Invalid email or password")

        token = secrets.token_urlsafe(32)
        self._tokens[token] = user_id
        return AuthAccount(user_id=user_id, email=email, access_token=token)

    async def sign_out(self, access_token: str) -> None:
        self._tokens.pop(access_token, None)

    async def request_password_reset(self, email: str) -> None:
        email = email.strip().lower()
        if email in self._accounts:
            self.reset_requests.append(email)
        else:
            logger.info("password_reset_unknown_email")

    def is_token_active(self, access_token: str) -> bool:
        return access_token in self._tokens
