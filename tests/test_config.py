from pathlib import Path

import pytest

from clockbot.config import load_config

REQUIRED = {
    "DISCORD_TOKEN": "token",
    "GUILD_ID": "123",
    "REPORT_CHANNEL_ID": "456",
}


def set_env(monkeypatch, **values: str) -> None:
    for name in ("TIMEZONE", "CLOCK_DB_PATH", "ROLLUP_COOLDOWN_SECONDS", *REQUIRED):
        monkeypatch.delenv(name, raising=False)
    for name, value in {**REQUIRED, **values}.items():
        monkeypatch.setenv(name, value)


def test_load_config_defaults(monkeypatch) -> None:
    set_env(monkeypatch)

    config = load_config()

    assert config.guild_id == 123
    assert config.report_channel_id == 456
    assert config.timezone.key == "Europe/Zurich"
    assert config.db_path == Path("clock.db")
    assert config.rollup_cooldown_seconds == 120


def test_load_config_overrides(monkeypatch) -> None:
    set_env(monkeypatch, TIMEZONE="America/New_York", CLOCK_DB_PATH="/tmp/x.db", ROLLUP_COOLDOWN_SECONDS="30")

    config = load_config()

    assert config.timezone.key == "America/New_York"
    assert config.db_path == Path("/tmp/x.db")
    assert config.rollup_cooldown_seconds == 30


def test_load_config_requires_token(monkeypatch) -> None:
    set_env(monkeypatch)
    monkeypatch.delenv("DISCORD_TOKEN")

    with pytest.raises(ValueError, match="DISCORD_TOKEN"):
        load_config()


@pytest.mark.parametrize(
    ("name", "value"),
    [("GUILD_ID", "abc"), ("GUILD_ID", "-1"), ("ROLLUP_COOLDOWN_SECONDS", "0"), ("TIMEZONE", "Mars/Olympus")],
)
def test_load_config_rejects_bad_values(monkeypatch, name: str, value: str) -> None:
    set_env(monkeypatch, **{name: value})

    with pytest.raises(ValueError, match=name):
        load_config()
