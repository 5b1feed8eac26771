"""
Budget Alert Notifier

Compares this month's spending against each budget and raises a
notification when usage crosses the warning or exceeded threshold.

DESIGN DECISION: The notification message carries the day and the live
amounts, and (user, type, message) is the de-duplication key. Re-running
the check on the same day with the same spend changes nothing; a new
expense that moves the amounts produces a fresh notification.
"""

import math
from collections import defaultdict
from datetime import datetime
from typing import Callable, Iterable, Optional

from finance_tracker.log import get_logger
from finance_tracker.models.records import (
    Budget,
    Notification,
    NotificationType,
    Transaction,
    TransactionType,
    utcnow,
)
from finance_tracker.models.summary import BudgetStatus
from finance_tracker.services.storage.interface import NotificationStorageInterface


logger = get_logger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def monthly_expenses_by_category(
    transactions: Iterable[Transaction],
    month: int,
    year: int,
) -> dict[str, float]:
    """Sum of expense amounts per category for one calendar month (UTC)."""
    totals: dict[str, float] = defaultdict(float)
    for tx in transactions:
        if tx.type != TransactionType.EXPENSE:
            continue
        if tx.date.year != year or tx.date.month != month:
            continue
        totals[tx.category] += float(tx.amount)
    return dict(totals)


class BudgetAlertNotifier:
    """
    Budget usage and alert emission.

    Thresholds are percentages of the budget limit. Budgets with a
    non-positive limit never alert.
    """

    def __init__(
        self,
        notifications: NotificationStorageInterface,
        warning_percent: int = 80,
        exceeded_percent: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._notifications = notifications
        self._warning_percent = warning_percent
        self._exceeded_percent = exceeded_percent
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def budget_statuses(
        self,
        budgets: Iterable[Budget],
        transactions: Iterable[Transaction],
        now: Optional[datetime] = None,
    ) -> list[BudgetStatus]:
        """Usage of each budget by this month's expenses."""
        now = now or self.now()
        used_by_category = monthly_expenses_by_category(transactions, now.month, now.year)

        statuses = []
        for budget in budgets:
            used = used_by_category.get(budget.category, 0.0)
            percent = round_half_up(100 * used / budget.limit) if budget.limit > 0 else 0
            statuses.append(BudgetStatus(budget=budget, used=used, percent_used=percent))
        return statuses

    def alert_for(
        self,
        status: BudgetStatus,
        today: datetime,
    ) -> Optional[tuple[NotificationType, str]]:
        """
        Alert type and message for one budget status, if any.

        Exceeded takes precedence over warning.
        """
        if status.limit <= 0:
            return None

        day = today.strftime("%Y-%m-%d")
        amounts = f"{status.used:.2f} / {status.limit:.2f}"

        if status.percent_used >= self._exceeded_percent:
            return (
                NotificationType.BUDGET_EXCEEDED,
                f"[{day}] Budget exceeded for {status.category}: {amounts}",
            )
        if status.percent_used >= self._warning_percent:
            return (
                NotificationType.BUDGET_WARNING,
                f"[{day}] Budget at {status.percent_used}% for {status.category}: {amounts}",
            )
        return None

    async def notify(
        self,
        user_id: str,
        statuses: Iterable[BudgetStatus],
        now: Optional[datetime] = None,
    ) -> list[Notification]:
        """
        Emit alerts for the given statuses.

        Returns the notifications matching each alert, whether newly
        created or already present.
        """
        now = now or self.now()
        emitted = []

        for status in statuses:
            alert = self.alert_for(status, now)
            if alert is None:
                continue

            alert_type, message = alert
            result = await self._notifications.create_for_user(user_id, alert_type.value, message)
            if not result.ok:
                logger.warning(
                    "budget_alert_failed",
                    user_id=user_id,
                    category=status.category,
                    reason=result.message,
                )
                continue

            logger.info(
                "budget_alert_emitted",
                user_id=user_id,
                category=status.category,
                type=alert_type.value,
                percent_used=status.percent_used,
            )
            emitted.append(result.record)

        return emitted
