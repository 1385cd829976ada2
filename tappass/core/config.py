from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _parse_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {raw!r})")
    return value


def _parse_int(name: str, raw: str, *, minimum: int, maximum: int | None = None) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"{minimum}..{maximum}"
        raise ValueError(f"{name} must be {bounds} (got {raw!r})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Business-hours windows are evaluated in this zone, never the
    # operator device's local time.
    facility_timezone: str = "UTC"
    lookup_timeout_seconds: float = 5.0
    audit_timeout_seconds: float = 5.0
    audit_max_retries: int = 1
    lookup_miss_limit: int = 5
    lookup_miss_window_seconds: int = 60
    jwt_public_key: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.facility_timezone)


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    facility_timezone = _getenv("FACILITY_TIMEZONE", "UTC")
    try:
        ZoneInfo(facility_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"FACILITY_TIMEZONE must be an IANA zone name (got {facility_timezone!r})"
        ) from None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None
    jwt_public_key = _getenv("JWT_PUBLIC_KEY", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("1", "true", "yes"),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        facility_timezone=facility_timezone,
        lookup_timeout_seconds=_parse_float(
            "LOOKUP_TIMEOUT_SECONDS", _getenv("LOOKUP_TIMEOUT_SECONDS", "5")
        ),
        audit_timeout_seconds=_parse_float(
            "AUDIT_TIMEOUT_SECONDS", _getenv("AUDIT_TIMEOUT_SECONDS", "5")
        ),
        # Immediate retries only; capped at 3.
        audit_max_retries=_parse_int(
            "AUDIT_MAX_RETRIES", _getenv("AUDIT_MAX_RETRIES", "1"), minimum=0, maximum=3
        ),
        lookup_miss_limit=_parse_int(
            "LOOKUP_MISS_LIMIT", _getenv("LOOKUP_MISS_LIMIT", "5"), minimum=1
        ),
        lookup_miss_window_seconds=_parse_int(
            "LOOKUP_MISS_WINDOW_SECONDS",
            _getenv("LOOKUP_MISS_WINDOW_SECONDS", "60"),
            minimum=1,
        ),
        jwt_public_key=jwt_public_key,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
