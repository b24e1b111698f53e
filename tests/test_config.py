from __future__ import annotations

from datetime import timedelta

import pytest

from dewana import config
from dewana.config import ConfigError, load_settings, update_config_file


@pytest.fixture()
def isolated_env(monkeypatch, tmp_path):
    for key in (
        "DEWANA_LIVE_GRACE_HOURS",
        "DEWANA_STATUS_POLL_SECONDS",
        "DEWANA_ENABLE_SCHEDULER",
        "DEWANA_CONFIG",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DEWANA_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("DEWANA_DATA_DIR", str(tmp_path / "data"))
    # Keep update_config_file from replacing the settings other tests use.
    monkeypatch.setattr(config, "settings", config.settings)
    return tmp_path


def test_missing_live_grace_hours_is_an_error(isolated_env):
    with pytest.raises(ConfigError, match="DEWANA_LIVE_GRACE_HOURS"):
        load_settings(isolated_env / "dewana.toml")


def test_values_come_from_toml(isolated_env):
    path = isolated_env / "dewana.toml"
    path.write_text("live_grace_hours = 6\nstatus_poll_seconds = 45\n")

    loaded = load_settings(path)

    assert loaded.live_grace_window == timedelta(hours=6)
    assert loaded.status_poll_seconds == 45
    assert loaded.archive_interval_minutes == 15
    assert loaded.database_path == isolated_env / "data" / "dewana.db"
    assert loaded.media_dir.is_dir()


def test_environment_overrides_toml(isolated_env, monkeypatch):
    path = isolated_env / "dewana.toml"
    path.write_text("live_grace_hours = 6\nenable_scheduler = true\n")
    monkeypatch.setenv("DEWANA_LIVE_GRACE_HOURS", "1.5")
    monkeypatch.setenv("DEWANA_ENABLE_SCHEDULER", "off")

    loaded = load_settings(path)

    assert loaded.live_grace_hours == 1.5
    assert loaded.enable_scheduler is False


@pytest.mark.parametrize("raw", ["0", "-2", "soon"])
def test_invalid_live_grace_hours_is_rejected(isolated_env, monkeypatch, raw):
    monkeypatch.setenv("DEWANA_LIVE_GRACE_HOURS", raw)
    with pytest.raises(ConfigError):
        load_settings(isolated_env / "dewana.toml")


def test_update_config_file_persists_values(isolated_env):
    path = isolated_env / "dewana.toml"

    updated = update_config_file(
        {"live_grace_hours": 4, "public_base_url": "https://rsvp.example", "bogus": 1},
        path=path,
    )

    text = path.read_text()
    assert "live_grace_hours = 4.0" in text
    assert 'public_base_url = "https://rsvp.example"' in text
    assert "bogus" not in text
    assert updated.live_grace_hours == 4.0
    assert load_settings(path).public_base_url == "https://rsvp.example"
