"""SQLite-backed identity and expense storage for a single device."""

from .identity import LocalIdentityProvider
from .schema import ensure_schema
from .store import LocalExpenseStore

__all__ = [
    "LocalIdentityProvider",
    "LocalExpenseStore",
    "ensure_schema",
]
