"""
Services package.

storage/     persistence interfaces and backends
projects     project listing, filtering and maintenance
invoices     invoice listing and payment statistics
users        user administration

The domain services are imported from their modules
(e.g. ``from buildledger.services.projects import ProjectService``).
"""

from buildledger.services.storage import (
    NotFoundError,
    PersistenceError,
    StaleBudgetError,
    StoreConnectionError,
)

__all__ = [
    "NotFoundError",
    "PersistenceError",
    "StaleBudgetError",
    "StoreConnectionError",
]
