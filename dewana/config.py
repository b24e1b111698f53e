"""Global configuration for Dewana."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

# Keys without a default must be provided through the environment or the TOML
# file; ``live_grace_hours`` has no sensible universal value.
REQUIRED_KEYS = ("live_grace_hours",)

DEFAULTS: dict[str, Any] = {
    "status_poll_seconds": 30,
    "archive_interval_minutes": 15,
    "enable_scheduler": True,
    "max_cover_bytes": 5 * 1024 * 1024,
    "app_host": "0.0.0.0",
    "app_port": 8000,
    "public_base_url": "",
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "live_grace_hours": float,
    "status_poll_seconds": int,
    "archive_interval_minutes": int,
    "enable_scheduler": bool,
    "max_cover_bytes": int,
    "app_host": str,
    "app_port": int,
    "public_base_url": str,
}


class ConfigError(RuntimeError):
    """Raised when the configuration is incomplete or invalid."""


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    media_dir: Path
    live_grace_hours: float
    status_poll_seconds: int
    archive_interval_minutes: int
    enable_scheduler: bool
    max_cover_bytes: int
    app_host: str
    app_port: int
    public_base_url: str
    config_path: Path

    @property
    def live_grace_window(self) -> timedelta:
        return timedelta(hours=self.live_grace_hours)


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    caster = TYPE_CASTERS[key]
    if caster is bool:
        return _boolify(value)
    try:
        return caster(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from exc


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"DEWANA_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    if key in DEFAULTS:
        return DEFAULTS[key]
    raise ConfigError(
        f"Missing required setting '{key}'. Set {env_key} or add "
        f"'{key} = ...' to the configuration file."
    )


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_path: str | Path | None,
    media_dir: str | Path | None,
):
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_db = Path(database_path) if database_path else resolved_data / "dewana.db"
    if not resolved_db.is_absolute():
        resolved_db = resolved_base / resolved_db
    resolved_media = Path(media_dir) if media_dir else resolved_data / "media"
    if not resolved_media.is_absolute():
        resolved_media = resolved_base / resolved_media
    return resolved_base, resolved_data, resolved_db, resolved_media


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("DEWANA_BASE_DIR", Path.cwd()))
    env_config = os.getenv("DEWANA_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "dewana.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_path_value, media_dir_value = (
        _resolve_paths(
            base_dir=base_dir,
            data_dir=os.getenv("DEWANA_DATA_DIR", toml_config.get("data_dir")),
            database_path=os.getenv("DEWANA_DB", toml_config.get("database_path")),
            media_dir=os.getenv("DEWANA_MEDIA_DIR", toml_config.get("media_dir")),
        )
    )

    live_grace_hours = _config_layered_value(
        "live_grace_hours", toml_config=toml_config
    )
    if live_grace_hours <= 0:
        raise ConfigError("live_grace_hours must be greater than zero")

    settings = Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_path=database_path_value,
        media_dir=media_dir_value,
        live_grace_hours=live_grace_hours,
        status_poll_seconds=_config_layered_value(
            "status_poll_seconds", toml_config=toml_config
        ),
        archive_interval_minutes=_config_layered_value(
            "archive_interval_minutes", toml_config=toml_config
        ),
        enable_scheduler=_config_layered_value(
            "enable_scheduler", toml_config=toml_config
        ),
        max_cover_bytes=_config_layered_value(
            "max_cover_bytes", toml_config=toml_config
        ),
        app_host=_config_layered_value("app_host", toml_config=toml_config),
        app_port=_config_layered_value("app_port", toml_config=toml_config),
        public_base_url=_config_layered_value(
            "public_base_url", toml_config=toml_config
        ),
        config_path=config_path,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.media_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    return {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
        "media_dir": str(settings.media_dir),
        "live_grace_hours": settings.live_grace_hours,
        "status_poll_seconds": settings.status_poll_seconds,
        "archive_interval_minutes": settings.archive_interval_minutes,
        "enable_scheduler": settings.enable_scheduler,
        "max_cover_bytes": settings.max_cover_bytes,
        "app_host": settings.app_host,
        "app_port": settings.app_port,
        "public_base_url": settings.public_base_url,
    }


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# Dewana configuration\n"]
    for key in sorted(config.keys()):
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    current_settings = settings if "settings" in globals() else load_settings()
    target_path = path or current_settings.config_path
    existing = _load_toml_config(target_path)
    merged = {**existing}
    for key, value in updates.items():
        if key not in TYPE_CASTERS:
            continue
        merged[key] = _cast_value(key, value)
    write_config_file(merged, path=target_path)
    new_settings = load_settings(target_path)
    globals()["settings"] = new_settings
    return new_settings


settings = load_settings()
