"""Authentication and session handling."""

from buildledger.auth.provider import AuthAccount, AuthProviderInterface, InMemoryAuthProvider
from buildledger.auth.session import AuthService, Session

__all__ = [
    "AuthAccount",
    "AuthProviderInterface",
    "AuthService",
    "InMemoryAuthProvider",
    "Session",
]
