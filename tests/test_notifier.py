"""
Tests for budget alerting.

The clock is pinned so messages (which embed the day) are predictable.
"""

from datetime import datetime, timezone

import pytest

from finance_tracker.alerts import (
    BudgetAlertNotifier,
    monthly_expenses_by_category,
    round_half_up,
)
from finance_tracker.models import Budget, Transaction
from finance_tracker.orchestrator import DashboardFlow


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


@pytest.fixture
def dashboard(backend):
    notifier = BudgetAlertNotifier(backend.notifications, clock=fixed_clock)
    return DashboardFlow(
        backend.transactions,
        backend.budgets,
        backend.notifications,
        notifier=notifier,
    )


def _spend(run, backend, user_id, amount, category="Food", date="2026-03-05T10:00:00Z", type="expense"):
    result = run(backend.transactions.create_for_user(user_id, {
        "title": f"{category} {amount}",
        "amount": amount,
        "category": category,
        "type": type,
        "date": date,
    }))
    assert result.ok, result.message


def _budget(run, backend, user_id, limit, category="Food"):
    result = run(backend.budgets.upsert_for_user(user_id, {
        "category": category, "limit": limit, "month": 3, "year": 2026,
    }))
    assert result.ok, result.message


class TestHelpers:
    """Tests for the pure helpers."""

    def test_round_half_up(self):
        """Test halves round up."""
        assert round_half_up(84.5) == 85
        assert round_half_up(84.49) == 84
        assert round_half_up(0.5) == 1

    def test_monthly_expenses_ignore_income_and_other_months(self):
        """Test only this month's expenses count."""
        txs = [
            Transaction(user="u", title="a", amount=10, category="Food", type="expense",
                        date=datetime(2026, 3, 1, tzinfo=timezone.utc)),
            Transaction(user="u", title="b", amount=5, category="Food", type="expense",
                        date=datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc)),
            Transaction(user="u", title="c", amount=99, category="Food", type="expense",
                        date=datetime(2026, 2, 28, tzinfo=timezone.utc)),
            Transaction(user="u", title="d", amount=50, category="Food", type="income",
                        date=datetime(2026, 3, 2, tzinfo=timezone.utc)),
        ]
        assert monthly_expenses_by_category(txs, 3, 2026) == {"Food": 15}


class TestAlertRules:
    """Tests for threshold and message rules."""

    def _status(self, used, limit):
        notifier = BudgetAlertNotifier(notifications=None, clock=fixed_clock)
        budget = Budget(user="u", category="Food", limit=limit, month=3, year=2026)
        tx = Transaction(user="u", title="x", amount=used, category="Food", type="expense", date=NOW)
        return notifier, notifier.budget_statuses([budget], [tx] if used else [])[0]

    def test_below_warning_has_no_alert(self):
        """Test 79% raises nothing."""
        notifier, status = self._status(79, 100)
        assert status.percent_used == 79
        assert notifier.alert_for(status, NOW) is None

    def test_warning_message(self):
        """Test the warning message format."""
        notifier, status = self._status(85, 100)
        alert_type, message = notifier.alert_for(status, NOW)
        assert alert_type.value == "budget_warning"
        assert message == "[2026-03-15] Budget at 85% for Food: 85.00 / 100.00"

    def test_exceeded_message(self):
        """Test the exceeded message format."""
        notifier, status = self._status(120, 100)
        alert_type, message = notifier.alert_for(status, NOW)
        assert alert_type.value == "budget_exceeded"
        assert message == "[2026-03-15] Budget exceeded for Food: 120.00 / 100.00"

    def test_rounding_can_reach_exceeded(self):
        """Test 99.5% rounds to 100 and counts as exceeded."""
        notifier, status = self._status(99.5, 100)
        assert status.percent_used == 100
        assert notifier.alert_for(status, NOW)[0].value == "budget_exceeded"

    def test_zero_limit_never_alerts(self):
        """Test budgets with limit 0 are skipped."""
        notifier, status = self._status(50, 0)
        assert status.percent_used == 0
        assert notifier.alert_for(status, NOW) is None


class TestDashboardAlerts:
    """End-to-end alerting through the dashboard summary, on both backends."""

    def _notes(self, run, backend, user_id, type):
        return [n for n in run(backend.notifications.list_for_user(user_id)) if n.type == type]

    def test_warning_once(self, backend, run, make_user, dashboard):
        """Test 85/100 gives one warning and no exceeded, however often it runs."""
        user = make_user()
        _budget(run, backend, user.id, 100)
        _spend(run, backend, user.id, 85)

        for _ in range(3):
            summary = run(dashboard.get_summary(user.id))

        assert summary.budget_statuses[0].percent_used == 85
        assert len(self._notes(run, backend, user.id, "budget_warning")) == 1
        assert self._notes(run, backend, user.id, "budget_exceeded") == []

    def test_exceeded_after_warning(self, backend, run, make_user, dashboard):
        """Test crossing 100% adds an exceeded alert next to the warning."""
        user = make_user()
        _budget(run, backend, user.id, 100)
        _spend(run, backend, user.id, 85)
        run(dashboard.get_summary(user.id))

        _spend(run, backend, user.id, 35)
        run(dashboard.get_summary(user.id))
        run(dashboard.get_summary(user.id))

        exceeded = self._notes(run, backend, user.id, "budget_exceeded")
        warnings = self._notes(run, backend, user.id, "budget_warning")
        assert [n.message for n in exceeded] == ["[2026-03-15] Budget exceeded for Food: 120.00 / 100.00"]
        assert len(warnings) == 1
        assert exceeded[0].id != warnings[0].id

    def test_new_amount_same_day_is_new_warning(self, backend, run, make_user, dashboard):
        """Test 85% then 90% on the same day leaves two warnings, one per amount."""
        user = make_user()
        _budget(run, backend, user.id, 100)
        _spend(run, backend, user.id, 85)
        run(dashboard.get_summary(user.id))

        _spend(run, backend, user.id, 5)
        run(dashboard.get_summary(user.id))
        run(dashboard.get_summary(user.id))

        warnings = self._notes(run, backend, user.id, "budget_warning")
        assert sorted(n.message for n in warnings) == [
            "[2026-03-15] Budget at 85% for Food: 85.00 / 100.00",
            "[2026-03-15] Budget at 90% for Food: 90.00 / 100.00",
        ]

    def test_next_day_same_spend_is_new_warning(self, backend, run, make_user):
        """Test an unchanged spend warns again once the day changes."""
        now = [NOW]
        notifier = BudgetAlertNotifier(backend.notifications, clock=lambda: now[0])
        flow = DashboardFlow(backend.transactions, backend.budgets, backend.notifications, notifier=notifier)

        user = make_user()
        _budget(run, backend, user.id, 100)
        _spend(run, backend, user.id, 85)
        run(flow.get_summary(user.id))
        run(flow.get_summary(user.id))

        now[0] = datetime(2026, 3, 16, 9, 0, tzinfo=timezone.utc)
        run(flow.get_summary(user.id))
        run(flow.get_summary(user.id))

        warnings = self._notes(run, backend, user.id, "budget_warning")
        assert sorted(n.message for n in warnings) == [
            "[2026-03-15] Budget at 85% for Food: 85.00 / 100.00",
            "[2026-03-16] Budget at 85% for Food: 85.00 / 100.00",
        ]

    def test_no_budget_no_alert(self, backend, run, make_user, dashboard):
        """Test spending without a budget raises nothing."""
        user = make_user()
        _spend(run, backend, user.id, 500)
        summary = run(dashboard.get_summary(user.id))
        assert summary.budget_statuses == []
        assert run(backend.notifications.list_for_user(user.id)) == []

    def test_other_month_spend_is_ignored(self, backend, run, make_user, dashboard):
        """Test last month's expenses do not count toward this month's budget."""
        user = make_user()
        _budget(run, backend, user.id, 100)
        _spend(run, backend, user.id, 150, date="2026-02-20T10:00:00Z")
        summary = run(dashboard.get_summary(user.id))
        assert summary.budget_statuses[0].used == 0
        assert run(backend.notifications.list_for_user(user.id)) == []

    def test_summary_totals(self, backend, run, make_user, dashboard):
        """Test all-time income, expense and balance."""
        user = make_user()
        _spend(run, backend, user.id, 300, category="Allowance", type="income")
        _spend(run, backend, user.id, 40)
        _spend(run, backend, user.id, 10, date="2025-12-01T00:00:00Z")
        summary = run(dashboard.get_summary(user.id))
        assert summary.income_total == 300
        assert summary.expense_total == 50
        assert summary.balance == 250
        assert (summary.month, summary.year) == (3, 2026)
