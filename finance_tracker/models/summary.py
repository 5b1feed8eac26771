"""
Dashboard Summary Models

Derived, never persisted. Built from a user's transactions and budgets
each time a summary is requested.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from finance_tracker.models.records import Budget


class SummaryModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class BudgetStatus(SummaryModel):
    """A budget with the current month's spend against it."""

    budget: Budget
    used: float = Field(default=0.0, ge=0)
    percent_used: int = Field(
        default=0,
        description="100 * used / limit, rounded half up"
    )

    @property
    def category(self) -> str:
        return self.budget.category

    @property
    def limit(self) -> float:
        return self.budget.limit


class DashboardSummary(SummaryModel):
    """
    Totals over all of a user's transactions plus this month's budgets.

    ``balance`` is income minus expense over all time.
    """

    income_total: float = 0.0
    expense_total: float = 0.0
    balance: float = 0.0
    month: int = Field(..., ge=1, le=12)
    year: int
    budget_statuses: list[BudgetStatus] = Field(default_factory=list)
