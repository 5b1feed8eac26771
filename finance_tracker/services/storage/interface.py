"""
Abstract Storage Interface

DESIGN DECISION: Each entity has one abstract service with two
implementations, MongoDB and JSON files. Callers depend only on the
interface; which implementation they get is decided once, at startup,
by the selector.

Both implementations must give the same answers: the same uniqueness
rules, the same ownership checks, the same filtering and sorting.
The shared tests in tests/test_storage_parity.py run against both.

Contract:
- Reads return records (or empty lists), never raise for "nothing there".
- Mutations return an OperationResult. not_found and not_authorized are
  always distinguished; bad input is a ``validation`` result.
- Infrastructure failures are StorageError subclasses.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from finance_tracker.models.inputs import TransactionFilters
from finance_tracker.models.records import (
    Budget,
    Category,
    Notification,
    Transaction,
    TransactionType,
    User,
)
from finance_tracker.models.results import OperationResult
from finance_tracker.security import verify_password


class UserStorageInterface(ABC):
    """Registered users. Email and username are unique, case-insensitive."""

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup by email."""
        pass

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[User]:
        """Case-insensitive lookup by username."""
        pass

    @abstractmethod
    async def create_user(self, fields: dict[str, Any]) -> OperationResult:
        """
        Register a user.

        Hashes the password and assigns default settings.

        Returns:
            OperationResult with the new User, or failure
            ``user_exists`` / ``validation``.
        """
        pass

    @abstractmethod
    async def update_user(self, user_id: str, patch: dict[str, Any]) -> OperationResult:
        """
        Update username, email and/or settings.

        ``settings`` is deep-merged: keys not in the patch keep their value.

        Returns:
            OperationResult with the updated User, or failure
            ``not_found`` / ``email_in_use`` / ``username_in_use`` / ``validation``.
        """
        pass

    @abstractmethod
    async def set_password(self, user_id: str, new_password: str) -> OperationResult:
        """Re-hash and store a new password."""
        pass

    async def validate_password(self, user: User, candidate: str) -> bool:
        """Compare a plaintext candidate against the stored hash."""
        return verify_password(candidate, user.password)


class TransactionStorageInterface(ABC):
    """Income/expense entries owned by a single user."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        """
        List a user's transactions.

        Args:
            user_id: Owner
            filters: Type, category, text query, date range, amount
                range and sort key. Defaults to newest first.
        """
        pass

    @abstractmethod
    async def create_for_user(self, user_id: str, fields: dict[str, Any]) -> OperationResult:
        """Create a transaction. A missing or invalid date means now."""
        pass

    @abstractmethod
    async def update_for_user(
        self,
        user_id: str,
        transaction_id: str,
        patch: dict[str, Any],
    ) -> OperationResult:
        """Apply a partial patch; absent fields keep their stored value."""
        pass

    @abstractmethod
    async def delete_for_user(self, user_id: str, transaction_id: str) -> OperationResult:
        pass


class CategoryStorageInterface(ABC):
    """
    Global default categories plus user-owned ones.

    The default catalog is seeded lazily the first time the collection
    is found empty. Global categories are read-only for everyone.
    """

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        type: Optional[TransactionType] = None,
    ) -> list[Category]:
        """Global and owned categories, sorted by (type, name)."""
        pass

    @abstractmethod
    async def create_for_user(self, user_id: str, fields: dict[str, Any]) -> OperationResult:
        pass

    @abstractmethod
    async def update_for_user(
        self,
        user_id: str,
        category_id: str,
        patch: dict[str, Any],
    ) -> OperationResult:
        pass

    @abstractmethod
    async def delete_for_user(self, user_id: str, category_id: str) -> OperationResult:
        pass


class BudgetStorageInterface(ABC):
    """Monthly category limits. One per (user, category, month, year)."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Budget]:
        """Budgets sorted newest period first, then by category."""
        pass

    @abstractmethod
    async def upsert_for_user(self, user_id: str, fields: dict[str, Any]) -> OperationResult:
        """
        Create or overwrite the budget for (user, category, month, year).

        An existing budget keeps its id and created_at; only limit and
        updated_at change.
        """
        pass

    @abstractmethod
    async def delete_for_user(self, user_id: str, budget_id: str) -> OperationResult:
        pass


class NotificationStorageInterface(ABC):
    """Per-user notifications. (user, type, message) is unique."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[Notification]:
        """Notifications newest first."""
        pass

    @abstractmethod
    async def find_matching(
        self,
        user_id: str,
        type: str,
        message: str,
    ) -> Optional[Notification]:
        """The notification with exactly this type and message, if any."""
        pass

    @abstractmethod
    async def create_for_user(self, user_id: str, type: str, message: str) -> OperationResult:
        """
        Store a notification.

        Idempotent: if one with the same (type, message) already exists
        for this user it is returned and nothing new is written.
        """
        pass

    @abstractmethod
    async def mark_read(self, user_id: str, notification_id: str) -> OperationResult:
        pass


@dataclass(frozen=True)
class StorageBackend:
    """The five entity services of one storage mode."""
    users: UserStorageInterface
    transactions: TransactionStorageInterface
    categories: CategoryStorageInterface
    budgets: BudgetStorageInterface
    notifications: NotificationStorageInterface


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageUnavailableError(StorageError):
    """Could not connect to the document database."""
    pass


class CorruptStoreError(StorageError):
    """A flat-file collection could not be read as a list of records."""
    pass
