"""
Data Models Package

Stored records, caller input and operation results. Everything that
crosses a service boundary is one of these.
"""

from finance_tracker.models.records import (
    Budget,
    Category,
    Notification,
    NotificationType,
    StorageMode,
    StoredRecord,
    Transaction,
    TransactionType,
    User,
    UserSettings,
    coerce_datetime,
    normalize_date,
    utcnow,
)
from finance_tracker.models.inputs import (
    BudgetUpsert,
    CategoryCreate,
    CategoryPatch,
    PasswordChange,
    ProfilePatch,
    RegisterRequest,
    SettingsPatch,
    TransactionCreate,
    TransactionFilters,
    TransactionPatch,
)
from finance_tracker.models.results import FailureReason, OperationResult
from finance_tracker.models.summary import BudgetStatus, DashboardSummary

__all__ = [
    # Records
    "Budget",
    "Category",
    "Notification",
    "NotificationType",
    "StorageMode",
    "StoredRecord",
    "Transaction",
    "TransactionType",
    "User",
    "UserSettings",
    "coerce_datetime",
    "normalize_date",
    "utcnow",
    # Inputs
    "BudgetUpsert",
    "CategoryCreate",
    "CategoryPatch",
    "PasswordChange",
    "ProfilePatch",
    "RegisterRequest",
    "SettingsPatch",
    "TransactionCreate",
    "TransactionFilters",
    "TransactionPatch",
    # Results
    "FailureReason",
    "OperationResult",
    # Summaries
    "BudgetStatus",
    "DashboardSummary",
]
