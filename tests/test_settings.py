import pytest
from pydantic import ValidationError

from config.settings import MIN_SECRET_LENGTH, Settings


def test_missing_secret_refuses_to_load(monkeypatch):
    monkeypatch.delenv("RESERVATION_SECRET", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.mark.parametrize("secret", ["", "   ", "short", "boletera-secret-key-2025", "CHANGE_ME_TO_SECURE_VALUE"])
def test_weak_secrets_are_rejected(secret):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, RESERVATION_SECRET=secret)


def test_strong_secret_is_accepted_and_trimmed():
    secret = "x" * MIN_SECRET_LENGTH
    settings = Settings(_env_file=None, RESERVATION_SECRET=f"  {secret}  ")
    assert settings.RESERVATION_SECRET == secret


def test_db_toggle_and_origins():
    settings = Settings(
        _env_file=None,
        RESERVATION_SECRET="a-long-enough-secret-value",
        USE_DB=True,
        MYSQL_ASYNC_URL="disabled",
        ALLOWED_ORIGINS="http://a.example, http://b.example ,",
    )
    assert settings.db_enabled is False
    assert settings.allowed_origins == ["http://a.example", "http://b.example"]

    settings = Settings(_env_file=None, RESERVATION_SECRET="a-long-enough-secret-value", USE_DB=True)
    assert settings.db_enabled is True
