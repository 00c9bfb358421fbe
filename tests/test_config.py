"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from app.config import Settings


def test_settings_load_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("APNS_KEY_ID", "ABC123DEFG")
    monkeypatch.delenv("PUSH_MAX_ATTEMPTS", raising=False)

    settings = Settings(_env_file=None)

    assert settings.apns_key_id == "ABC123DEFG"
    assert settings.push_max_attempts == 5


@pytest.mark.parametrize(
    "variable",
    ["APNS_KEY_ID", "APNS_TEAM_ID", "DATABASE_URL", "REDIS_URL", "FIREBASE_SERVICE_ACCOUNT_JSON"],
)
def test_missing_required_setting_fails_fast(monkeypatch, variable: str) -> None:
    monkeypatch.delenv(variable)

    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None)

    assert variable in str(exc_info.value)


def test_out_of_range_tuning_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("PUSH_MAX_ATTEMPTS", "0")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
