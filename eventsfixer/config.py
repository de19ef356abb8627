"""Global configuration for EventsFixer."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

DEFAULTS: dict[str, Any] = {
    "default_template_id": "wedding_v1",
    "max_versions_listed": 50,
    "preview_token_days": 7,
    "max_assets_per_event": 20,
    "max_upload_bytes": 5 * 1024 * 1024,
    "media_base_url": "/media",
    "public_base_url": "http://localhost:8000",
    "rate_limit_requests": 60,
    "rate_limit_window_seconds": 60,
    "rate_limit_storage_uri": "memory://",
    "forwarded_allow_ips": "127.0.0.1",
    "email_batch_size": 10,
    "email_interval_minutes": 1,
    "email_max_attempts": 3,
    "reminder_hour_utc": 9,
    "no_response_reminder_days": 3,
    "mail_from": "EventsFixer <no-reply@eventsfixer.local>",
    "smtp_host": "",
    "smtp_port": 587,
    "smtp_username": "",
    "smtp_password": "",
    "enable_scheduler": True,
    "app_host": "0.0.0.0",
    "app_port": 8000,
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "default_template_id": str,
    "max_versions_listed": int,
    "preview_token_days": int,
    "max_assets_per_event": int,
    "max_upload_bytes": int,
    "media_base_url": str,
    "public_base_url": str,
    "rate_limit_requests": int,
    "rate_limit_window_seconds": int,
    "rate_limit_storage_uri": str,
    "forwarded_allow_ips": str,
    "email_batch_size": int,
    "email_interval_minutes": int,
    "email_max_attempts": int,
    "reminder_hour_utc": int,
    "no_response_reminder_days": int,
    "mail_from": str,
    "smtp_host": str,
    "smtp_port": int,
    "smtp_username": str,
    "smtp_password": str,
    "enable_scheduler": bool,
    "app_host": str,
    "app_port": int,
}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    media_dir: Path
    default_template_id: str
    max_versions_listed: int
    preview_token_days: int
    max_assets_per_event: int
    max_upload_bytes: int
    media_base_url: str
    public_base_url: str
    rate_limit_requests: int
    rate_limit_window_seconds: int
    rate_limit_storage_uri: str
    forwarded_allow_ips: str
    email_batch_size: int
    email_interval_minutes: int
    email_max_attempts: int
    reminder_hour_utc: int
    no_response_reminder_days: int
    mail_from: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    enable_scheduler: bool
    app_host: str
    app_port: int
    config_path: Path

    @property
    def preview_token_lifetime(self) -> timedelta:
        return timedelta(days=self.preview_token_days)

    @property
    def smtp_enabled(self) -> bool:
        return bool(self.smtp_host)


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
    return caster(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"EVENTSFIXER_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_path(base_dir: Path, raw: str | Path | None, default: Path) -> Path:
    resolved = Path(raw) if raw else default
    if not resolved.is_absolute():
        resolved = base_dir / resolved
    return resolved


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("EVENTSFIXER_BASE_DIR", Path.cwd()))
    env_config = os.getenv("EVENTSFIXER_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "eventsfixer.toml")
    toml_config = _load_toml_config(config_path)

    data_dir = _resolve_path(
        base_dir,
        os.getenv("EVENTSFIXER_DATA_DIR", toml_config.get("data_dir")),
        base_dir / "data",
    )
    database_path = _resolve_path(
        base_dir,
        os.getenv("EVENTSFIXER_DB", toml_config.get("database_path")),
        data_dir / "eventsfixer.db",
    )
    media_dir = _resolve_path(
        base_dir,
        os.getenv("EVENTSFIXER_MEDIA_DIR", toml_config.get("media_dir")),
        data_dir / "media",
    )

    values = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    settings = Settings(
        base_dir=base_dir,
        data_dir=data_dir,
        database_path=database_path,
        media_dir=media_dir,
        config_path=config_path,
        **values,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    data: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
        "media_dir": str(settings.media_dir),
    }
    for key in DEFAULTS:
        if key == "smtp_password":
            continue
        data[key] = getattr(settings, key)
    return data


settings = load_settings()
