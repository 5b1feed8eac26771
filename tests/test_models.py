"""
Tests for Finance Tracker models

Test strategy:
1. Unit tests for record and input models (no storage involved)
2. Storage behaviour is covered per backend in the other test modules
3. No real database connections in tests (mongomock only)
"""

import pytest
from datetime import date, datetime, timezone

from pydantic import ValidationError

from finance_tracker.models import (
    Budget,
    BudgetUpsert,
    Category,
    CategoryCreate,
    FailureReason,
    OperationResult,
    ProfilePatch,
    RegisterRequest,
    SettingsPatch,
    Transaction,
    TransactionCreate,
    TransactionFilters,
    TransactionPatch,
    TransactionType,
    User,
    coerce_datetime,
)


class TestRecordModels:
    """Tests for the persisted record models."""

    def test_transaction_document_uses_camel_case(self):
        """Test stored documents use camelCase keys and _id."""
        tx = Transaction(
            user="u1",
            title="Lunch",
            amount=12.5,
            category="Food",
            type=TransactionType.EXPENSE,
            payment_method="Card",
        )
        document = tx.to_json_document()
        assert document["_id"] == tx.id
        assert document["paymentMethod"] == "Card"
        assert document["type"] == "expense"
        assert "createdAt" in document

    def test_mongo_document_omits_id(self):
        """Test the MongoDB document leaves _id to the database."""
        budget = Budget(user="u1", category="Food", limit=100, month=3, year=2026)
        document = budget.to_mongo_document()
        assert "_id" not in document
        assert document["limit"] == 100

    def test_from_document_stringifies_id(self):
        """Test non-string ids (ObjectId-like) become strings."""
        category = Category.from_document({"_id": 42, "name": "Food", "type": "expense"})
        assert category.id == "42"
        assert category.is_global

    def test_naive_datetimes_become_utc(self):
        """Test naive datetimes read from storage are treated as UTC."""
        tx = Transaction.from_document({
            "_id": "t1",
            "user": "u1",
            "title": "Bus",
            "amount": 2,
            "category": "Transport",
            "type": "expense",
            "date": datetime(2026, 3, 1, 8, 30),
        })
        assert tx.date.tzinfo == timezone.utc
        assert tx.date.hour == 8

    def test_public_view_hides_password(self):
        """Test the user's public view carries no password hash."""
        user = User(username="alice", email="alice@example.com", password="hash")
        view = user.public_view()
        assert "password" not in view
        assert view["settings"] == {"currency": "$", "theme": "light", "notificationsEnabled": True}


class TestDateCoercion:
    """Tests for lenient date parsing."""

    def test_iso_string_with_z(self):
        """Test a trailing Z is read as UTC."""
        parsed = coerce_datetime("2026-03-01T10:00:00Z")
        assert parsed == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_plain_date(self):
        """Test a date becomes midnight UTC."""
        assert coerce_datetime(date(2026, 3, 1)) == datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        """Test integers are epoch milliseconds."""
        assert coerce_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_garbage_is_none(self):
        """Test unparsable values give None."""
        assert coerce_datetime("not a date") is None
        assert coerce_datetime(True) is None
        assert coerce_datetime("") is None


class TestInputModels:
    """Tests for caller input validation."""

    def test_transaction_create_invalid_date_falls_back_to_now(self):
        """Test an unparsable date becomes the current time."""
        before = datetime.now(timezone.utc)
        payload = TransactionCreate(
            title="Coffee", amount=3, category="Food", type="expense", date="yesterday-ish"
        )
        assert payload.date >= before

    def test_transaction_create_missing_date_is_now(self):
        """Test an omitted date becomes the current time."""
        payload = TransactionCreate(title="Coffee", amount=3, category="Food", type="expense")
        assert payload.date.tzinfo is not None

    def test_transaction_create_rejects_non_positive_amount(self):
        """Test amounts must be positive."""
        with pytest.raises(ValidationError):
            TransactionCreate(title="Refund", amount=0, category="Food", type="expense")

    def test_transaction_create_rejects_unknown_type(self):
        """Test type must be income or expense."""
        with pytest.raises(ValidationError):
            TransactionCreate(title="Gift", amount=5, category="Other", type="transfer")

    def test_transaction_create_accepts_camel_case(self):
        """Test camelCase keys are accepted."""
        payload = TransactionCreate.model_validate({
            "title": "Taxi", "amount": 9, "category": "Transport",
            "type": "expense", "paymentMethod": "Card",
        })
        assert payload.payment_method == "Card"

    def test_transaction_patch_changes_only_supplied_fields(self):
        """Test a patch reports only the fields it was given."""
        patch = TransactionPatch.model_validate({"amount": 20})
        assert patch.changes() == {"amount": 20}

    def test_filters_ignore_bad_dates_and_amounts(self):
        """Test unparsable filter values are dropped, not rejected."""
        filters = TransactionFilters.model_validate({
            "startDate": "garbage", "minAmount": "abc", "maxAmount": "50", "q": "  ",
        })
        assert filters.start_date is None
        assert filters.min_amount is None
        assert filters.max_amount == 50.0
        assert filters.q is None

    def test_filters_sort(self):
        """Test sort direction and field parsing."""
        filters = TransactionFilters(sort="amount")
        assert filters.sort_field == "amount"
        assert not filters.sort_descending
        assert TransactionFilters().sort_descending

    def test_filters_reject_unknown_sort_field(self):
        """Test sort must name a sortable field."""
        with pytest.raises(ValidationError):
            TransactionFilters(sort="-password")

    def test_settings_patch_limits(self):
        """Test currency length and theme values are validated."""
        with pytest.raises(ValidationError):
            SettingsPatch(currency="EURO$")
        with pytest.raises(ValidationError):
            SettingsPatch(theme="blue")

    def test_settings_patch_dict_holds_only_supplied_keys(self):
        """Test unsupplied settings are not part of the merge."""
        patch = SettingsPatch(theme="dark")
        assert patch.as_settings_dict() == {"theme": "dark"}

    def test_profile_patch_rejects_bad_email(self):
        """Test emails are validated."""
        with pytest.raises(ValidationError):
            ProfilePatch(email="not-an-email")

    def test_register_requires_password_length(self):
        """Test short passwords are rejected."""
        with pytest.raises(ValidationError):
            RegisterRequest(username="bob", email="bob@example.com", password="123")

    def test_category_color_must_be_hex(self):
        """Test category colors are hex codes."""
        CategoryCreate(name="Pets", type="expense", color="#abc")
        with pytest.raises(ValidationError):
            CategoryCreate(name="Pets", type="expense", color="red")

    def test_budget_month_range(self):
        """Test budget month must be 1-12."""
        with pytest.raises(ValidationError):
            BudgetUpsert(category="Food", limit=100, month=13)


class TestOperationResult:
    """Tests for OperationResult helpers."""

    def test_failure_flags(self):
        """Test not_found and not_authorized are distinguishable."""
        missing = OperationResult.failure(FailureReason.NOT_FOUND)
        forbidden = OperationResult.failure(FailureReason.NOT_AUTHORIZED)
        assert missing.not_found and not missing.not_authorized
        assert forbidden.not_authorized and not forbidden.not_found
        assert missing.message == "not_found"

    def test_invalid_summarizes_errors(self):
        """Test validation errors become a readable message."""
        with pytest.raises(ValidationError) as exc_info:
            BudgetUpsert(category="Food", limit=-1)
        result = OperationResult.invalid(exc_info.value)
        assert result.reason == FailureReason.VALIDATION
        assert "limit" in result.message
