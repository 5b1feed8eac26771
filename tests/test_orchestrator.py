"""
Tests for the account and dashboard flows and the component factory.
"""

import pytest

from finance_tracker.config import Settings, get_settings, validate_all_settings
from finance_tracker.models import FailureReason, StorageMode
from finance_tracker.orchestrator import AccountFlow, create_app_components


@pytest.fixture
def accounts(backend):
    return AccountFlow(backend.users)


def _register(run, accounts, username="dana", password="secret123"):
    result = run(accounts.register({
        "username": username,
        "email": f"{username}@example.com",
        "password": password,
    }))
    assert result.ok, result.message
    return result.record


class TestAccountFlow:
    """Tests for AccountFlow on both backends."""

    def test_register_returns_public_view(self, run, accounts):
        """Test registration never exposes the password hash."""
        user = _register(run, accounts)
        assert "password" not in user
        assert user["email"] == "dana@example.com"
        assert user["settings"]["currency"] == "$"

    def test_register_duplicate(self, run, accounts):
        """Test registering the same email twice fails."""
        _register(run, accounts)
        result = run(accounts.register({
            "username": "dana2", "email": "DANA@example.com", "password": "secret123",
        }))
        assert result.reason == FailureReason.USER_EXISTS

    def test_authenticate(self, run, accounts):
        """Test login with correct and incorrect credentials."""
        user = _register(run, accounts)
        ok = run(accounts.authenticate("Dana@Example.com", "secret123"))
        assert ok.ok
        assert ok.record["_id"] == user["_id"]

        wrong = run(accounts.authenticate("dana@example.com", "nope-nope"))
        unknown = run(accounts.authenticate("ghost@example.com", "secret123"))
        assert wrong.reason == FailureReason.INVALID_CREDENTIALS
        assert unknown.reason == FailureReason.INVALID_CREDENTIALS
        assert wrong.message == unknown.message

    def test_change_password(self, run, accounts):
        """Test the new password works and the old one stops working."""
        user = _register(run, accounts)
        assert run(accounts.change_password(user["_id"], "brand-new")).ok
        assert run(accounts.authenticate("dana@example.com", "brand-new")).ok
        assert not run(accounts.authenticate("dana@example.com", "secret123")).ok

    def test_settings_round_trip(self, run, accounts):
        """Test reading and merging settings."""
        user = _register(run, accounts)
        assert run(accounts.get_settings(user["_id"])).record == {
            "currency": "$", "theme": "light", "notificationsEnabled": True,
        }
        updated = run(accounts.update_settings(user["_id"], {"notificationsEnabled": False}))
        assert updated.ok
        assert updated.record["notificationsEnabled"] is False
        assert updated.record["theme"] == "light"

    def test_invalid_settings(self, run, accounts):
        """Test invalid settings are rejected as validation failures."""
        user = _register(run, accounts)
        assert run(accounts.update_settings(user["_id"], {"theme": "neon"})).reason == FailureReason.VALIDATION
        assert run(accounts.update_settings(user["_id"], {"fontSize": 12})).reason == FailureReason.VALIDATION

    def test_profile(self, run, accounts):
        """Test profile read and update."""
        user = _register(run, accounts)
        updated = run(accounts.update_profile(user["_id"], {"username": "dee"}))
        assert updated.ok
        assert updated.record["username"] == "dee"
        assert "password" not in updated.record
        assert run(accounts.get_profile(user["_id"])).record["username"] == "dee"
        assert run(accounts.get_profile("missing")).not_found


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_json_mode_without_uri(self, tmp_path, monkeypatch, run):
        """Test an empty environment yields working JSON-backed flows."""
        monkeypatch.delenv("MONGO_URI", raising=False)
        monkeypatch.setenv("FINANCE_DATA_DIR", str(tmp_path))

        accounts, dashboard, backend, state = create_app_components(Settings())
        assert state.mode == StorageMode.JSON
        assert state.health()["mongoError"] == "MONGO_URI not set"

        user = _register(run, accounts)
        summary = run(dashboard.get_summary(user["_id"]))
        assert summary.balance == 0
        assert (tmp_path / "users.json").exists()

    def test_mongo_mode_with_client(self, mongo_client, run):
        """Test a reachable server yields MongoDB-backed flows."""
        accounts, dashboard, backend, state = create_app_components(Settings(), mongo_client=mongo_client)
        assert state.mode == StorageMode.MONGO
        assert state.health() == {"mode": "mongo", "mongoConnected": True, "mongoError": None}

        user = _register(run, accounts)
        assert run(dashboard.list_notifications(user["_id"])) == []

    def test_notification_limit_from_settings(self, tmp_path, monkeypatch, run):
        """Test dashboard notification listings are capped by configuration."""
        monkeypatch.delenv("MONGO_URI", raising=False)
        monkeypatch.setenv("FINANCE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("FINANCE_NOTIFICATION_LIST_LIMIT", "2")

        accounts, dashboard, backend, state = create_app_components(Settings())
        user = _register(run, accounts)
        for n in range(4):
            run(backend.notifications.create_for_user(user["_id"], "budget_warning", f"m{n}"))
        assert len(run(dashboard.list_notifications(user["_id"]))) == 2


class TestSettings:
    """Tests for configuration loading."""

    def test_defaults(self, monkeypatch):
        """Test an empty environment gives the documented defaults."""
        for name in ("MONGO_URI", "MONGO_SERVER_SELECTION_TIMEOUT_MS", "FINANCE_BUDGET_WARNING_PERCENT"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert settings.storage.uri is None
        assert settings.storage.timeout_seconds == 8
        assert settings.app.budget_warning_percent == 80
        assert settings.app.budget_exceeded_percent == 100

    def test_validate_all_settings(self, monkeypatch):
        """Test invalid environment values are reported, not raised."""
        monkeypatch.setenv("FINANCE_DEFAULT_THEME", "neon")
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results["storage"] is True
        assert results["app"] is False
        assert "default_theme" in results["app_error"]
