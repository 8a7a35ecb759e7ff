from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Europe/Zurich"
DEFAULT_DB_PATH = "clock.db"
DEFAULT_ROLLUP_COOLDOWN_SECONDS = 120


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    report_channel_id: int
    timezone: ZoneInfo
    db_path: Path
    rollup_cooldown_seconds: int


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _positive_int(name: str, raw: str) -> int:
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _positive_int(name, _required_env(name))


def _timezone_from_env(name: str, default: str) -> ZoneInfo:
    tz_name = os.getenv(name, default).strip() or default
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def load_config() -> Config:
    cooldown_raw = os.getenv("ROLLUP_COOLDOWN_SECONDS", str(DEFAULT_ROLLUP_COOLDOWN_SECONDS)).strip()

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        report_channel_id=_required_int_env("REPORT_CHANNEL_ID"),
        timezone=_timezone_from_env("TIMEZONE", DEFAULT_TIMEZONE),
        db_path=Path(os.getenv("CLOCK_DB_PATH", DEFAULT_DB_PATH).strip() or DEFAULT_DB_PATH),
        rollup_cooldown_seconds=_positive_int("ROLLUP_COOLDOWN_SECONDS", cooldown_raw),
    )
