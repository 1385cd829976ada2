from __future__ import annotations

import pytest

from tappass.core.config import AppEnv, Settings, load_settings

# ---- defaults and parsing ----


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "APP_ENV",
        "LOG_LEVEL",
        "FACILITY_TIMEZONE",
        "AUDIT_MAX_RETRIES",
        "LOOKUP_TIMEOUT_SECONDS",
        "LOOKUP_MISS_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.facility_timezone == "UTC"
    assert settings.audit_max_retries == 1
    assert settings.lookup_timeout_seconds == 5.0
    assert settings.lookup_miss_limit == 5


def test_load_settings_normalizes_case_and_whitespace(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "  PROD ")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"


def test_load_settings_reads_access_control_vars(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("FACILITY_TIMEZONE", "Europe/Berlin")
    monkeypatch.setenv("LOOKUP_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("AUDIT_TIMEOUT_SECONDS", "1")
    monkeypatch.setenv("AUDIT_MAX_RETRIES", "3")
    monkeypatch.setenv("LOG_JSON", "yes")
    settings = load_settings()
    assert settings.tz.key == "Europe/Berlin"
    assert settings.lookup_timeout_seconds == 2.5
    assert settings.audit_timeout_seconds == 1.0
    assert settings.audit_max_retries == 3
    assert settings.log_json is True


# ---- invalid values ----


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("APP_ENV", "staging", "APP_ENV must be dev|test|prod"),
        ("LOG_LEVEL", "verbose", "LOG_LEVEL must be debug|info|warning|error"),
        ("PORT", "eighty", "PORT must be an integer"),
        ("FACILITY_TIMEZONE", "Mars/Olympus", "FACILITY_TIMEZONE must be an IANA zone"),
        ("AUDIT_MAX_RETRIES", "4", "AUDIT_MAX_RETRIES must be 0..3"),
        ("AUDIT_MAX_RETRIES", "-1", "AUDIT_MAX_RETRIES must be 0..3"),
        ("LOOKUP_TIMEOUT_SECONDS", "0", "LOOKUP_TIMEOUT_SECONDS must be positive"),
        ("AUDIT_TIMEOUT_SECONDS", "soon", "AUDIT_TIMEOUT_SECONDS must be a number"),
        ("LOOKUP_MISS_LIMIT", "0", "LOOKUP_MISS_LIMIT must be >= 1"),
    ],
)
def test_load_settings_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=message.replace("|", r"\|")):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


def test_settings_env_flags() -> None:
    assert _make_settings("dev").is_dev is True
    assert _make_settings("test").is_test is True
    assert _make_settings("prod").is_prod is True
    assert _make_settings("prod").is_dev is False


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.audit_max_retries = 3  # type: ignore[misc]
