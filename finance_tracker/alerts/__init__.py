"""Budget alerting."""

from finance_tracker.alerts.notifier import (
    BudgetAlertNotifier,
    monthly_expenses_by_category,
    round_half_up,
)

__all__ = [
    "BudgetAlertNotifier",
    "monthly_expenses_by_category",
    "round_half_up",
]
