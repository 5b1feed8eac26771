"""
Main Orchestrator for Finance Tracker

This module ties the storage services together into the flows an outer
layer (HTTP handlers, a CLI, a scheduler) calls:
1. Accounts (register -> authenticate -> profile/settings/password)
2. Dashboard (totals -> budget statuses -> budget alerts)

DESIGN DECISION: Flows only talk to the storage interfaces. They never
know which backend is active; create_app_components makes that choice
once and injects the result.
"""

from typing import Any, Optional

from pydantic import ValidationError
from pymongo import MongoClient

from finance_tracker.alerts import BudgetAlertNotifier
from finance_tracker.config import Settings, get_settings
from finance_tracker.log import configure_logging, get_logger
from finance_tracker.models.inputs import SettingsPatch
from finance_tracker.models.records import Notification, TransactionType
from finance_tracker.models.results import FailureReason, OperationResult
from finance_tracker.models.summary import DashboardSummary
from finance_tracker.services.storage import (
    BudgetStorageInterface,
    NotificationStorageInterface,
    StorageBackend,
    StorageState,
    TransactionStorageInterface,
    UserStorageInterface,
    build_backend,
    probe_storage,
)


logger = get_logger(__name__)


class AccountFlow:
    """
    Registration, login and profile maintenance.

    Results never carry password hashes: successful results hold the
    user's ``public_view``.
    """

    def __init__(self, users: UserStorageInterface):
        self._users = users

    async def register(self, fields: dict[str, Any]) -> OperationResult:
        result = await self._users.create_user(fields)
        if not result.ok:
            return result
        logger.info("user_registered", user_id=result.record.id)
        return OperationResult.success(result.record.public_view())

    async def authenticate(self, email: str, password: str) -> OperationResult:
        """
        Check an email/password pair.

        Unknown email and wrong password give the same failure.
        """
        user = await self._users.find_by_email(email or "")
        if user is None or not await self._users.validate_password(user, password or ""):
            logger.info("login_rejected", email=email)
            return OperationResult.failure(
                FailureReason.INVALID_CREDENTIALS, "Invalid email or password"
            )
        return OperationResult.success(user.public_view())

    async def get_profile(self, user_id: str) -> OperationResult:
        user = await self._users.find_by_id(user_id)
        if user is None:
            return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")
        return OperationResult.success(user.public_view())

    async def update_profile(self, user_id: str, patch: dict[str, Any]) -> OperationResult:
        result = await self._users.update_user(user_id, patch)
        if not result.ok:
            return result
        return OperationResult.success(result.record.public_view())

    async def change_password(self, user_id: str, new_password: str) -> OperationResult:
        return await self._users.set_password(user_id, new_password)

    async def get_settings(self, user_id: str) -> OperationResult:
        user = await self._users.find_by_id(user_id)
        if user is None:
            return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")
        return OperationResult.success(user.settings.model_dump(by_alias=True))

    async def update_settings(self, user_id: str, patch: dict[str, Any]) -> OperationResult:
        """Merge the supplied settings keys into the stored settings."""
        try:
            settings = SettingsPatch.model_validate(patch)
        except ValidationError as e:
            return OperationResult.invalid(e)

        result = await self._users.update_user(
            user_id, {"settings": settings.as_settings_dict()}
        )
        if not result.ok:
            return result
        return OperationResult.success(result.record.settings.model_dump(by_alias=True))


class DashboardFlow:
    """
    Dashboard summary with budget alerting.

    Every summary re-evaluates the current month's budgets and emits any
    alert not already present.
    """

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        budgets: BudgetStorageInterface,
        notifications: NotificationStorageInterface,
        notifier: Optional[BudgetAlertNotifier] = None,
        notification_limit: int = 50,
    ):
        self._transactions = transactions
        self._budgets = budgets
        self._notifications = notifications
        self._notifier = notifier or BudgetAlertNotifier(notifications)
        self._notification_limit = notification_limit

    async def get_summary(self, user_id: str) -> DashboardSummary:
        now = self._notifier.now()

        transactions = await self._transactions.list_for_user(user_id)
        income_total = sum(tx.amount for tx in transactions if tx.type == TransactionType.INCOME)
        expense_total = sum(tx.amount for tx in transactions if tx.type == TransactionType.EXPENSE)

        budgets = await self._budgets.list_for_user(user_id, month=now.month, year=now.year)
        statuses = self._notifier.budget_statuses(budgets, transactions, now)
        await self._notifier.notify(user_id, statuses, now)

        return DashboardSummary(
            income_total=income_total,
            expense_total=expense_total,
            balance=income_total - expense_total,
            month=now.month,
            year=now.year,
            budget_statuses=statuses,
        )

    async def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
    ) -> list[Notification]:
        """Newest first, capped at the configured limit."""
        return await self._notifications.list_for_user(
            user_id, unread_only=unread_only, limit=self._notification_limit
        )


def create_app_components(
    settings: Optional[Settings] = None,
    mongo_client: Optional[MongoClient] = None,
) -> tuple[AccountFlow, DashboardFlow, StorageBackend, StorageState]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings())
        mongo_client: Pre-built client to probe instead of MONGO_URI

    Returns:
        (account_flow, dashboard_flow, backend, storage_state)
    """
    settings = settings or get_settings()
    app = settings.app
    configure_logging(debug=app.debug_mode)

    state = probe_storage(settings.storage, client=mongo_client)
    backend = build_backend(state, settings)

    notifier = BudgetAlertNotifier(
        backend.notifications,
        warning_percent=app.budget_warning_percent,
        exceeded_percent=app.budget_exceeded_percent,
    )

    account_flow = AccountFlow(backend.users)
    dashboard_flow = DashboardFlow(
        backend.transactions,
        backend.budgets,
        backend.notifications,
        notifier=notifier,
        notification_limit=app.notification_list_limit,
    )

    return account_flow, dashboard_flow, backend, state
