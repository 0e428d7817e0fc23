"""Runtime configuration for the bot bridge.

Settings are resolved once at process start and passed explicitly to the app
factory, the router and the channel adapters. Values come from (highest
priority first):

- the process environment (``.env`` is loaded with python-dotenv),
- ``<CONFIG_DIR>/app_<APP_ENV>.json`` for environment specific overrides,
- ``<CONFIG_DIR>/app.json`` for defaults shared by every environment.
"""

from __future__ import annotations

import dataclasses
import json
import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .bots.webhook import WebhookDestination
from .channels.google import AuthFailurePolicy

_TRUE_VALUES = {"1", "true", "yes", "on"}
_SECRET_KEYS = {"verification_token", "webhook_secret"}


class ConfigError(ValueError):
    """Raised when configuration values cannot be parsed."""


@dataclasses.dataclass(frozen=True)
class LoggingSettings:
    """Options consumed by :func:`botbridge.app_logging.init_logging`."""

    log_dir: str = "logs"
    log_level: str = "INFO"
    log_json: bool = False
    log_request_bodies: bool = False
    retention_days: int = 7
    rotate_utc: bool = False


@dataclasses.dataclass(frozen=True)
class Settings:
    """Immutable configuration shared by the router and adapters."""

    verification_token: str = ""
    webhook_url: str = ""
    webhook_secret: str = ""
    google_credentials_path: str = ""
    host: str = "0.0.0.0"
    port: int = 3000
    request_timeout: float = 30.0
    auth_failure_policy: AuthFailurePolicy = AuthFailurePolicy.FAIL_FAST
    enabled_channels: tuple[str, ...] = ("hangouts",)
    static_dir: str = "static"
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_json: bool = False
    log_request_bodies: bool = False
    log_retention_days: int = 7
    log_rotate_utc: bool = False

    @property
    def bot_destination(self) -> WebhookDestination:
        return WebhookDestination(url=self.webhook_url, secret=self.webhook_secret)

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings(
            log_dir=self.log_dir,
            log_level=self.log_level,
            log_json=self.log_json,
            log_request_bodies=self.log_request_bodies,
            retention_days=self.log_retention_days,
            rotate_utc=self.log_rotate_utc,
        )

    def redacted(self) -> dict[str, Any]:
        """Return the settings as a dict with secret values masked."""

        data = dataclasses.asdict(self)
        for key in _SECRET_KEYS:
            if data.get(key):
                data[key] = "***"
        data["auth_failure_policy"] = self.auth_failure_policy.value
        data["enabled_channels"] = list(self.enabled_channels)
        return data


def _read_json_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _merge_sources(
    environ: Mapping[str, str], config_dir: str | os.PathLike[str]
) -> dict[str, Any]:
    """Layer base file, env specific file and the environment, in that order."""

    directory = Path(config_dir)
    merged: dict[str, Any] = {}
    merged.update(_read_json_file(directory / "app.json"))
    app_env = environ.get("APP_ENV") or merged.get("APP_ENV")
    if app_env:
        merged.update(_read_json_file(directory / f"app_{app_env}.json"))
    merged.update(environ)
    return merged


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _as_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _as_float(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return number


def _as_policy(value: Any) -> AuthFailurePolicy:
    try:
        return AuthFailurePolicy(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(p.value for p in AuthFailurePolicy)
        raise ConfigError(
            f"AUTH_FAILURE_POLICY must be one of {choices}, got {value!r}"
        ) from exc


def _as_channels(value: Any) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    return tuple(item.strip().lower() for item in items if str(item).strip())


def load_settings(
    environ: Mapping[str, str] | None = None,
    config_dir: str | os.PathLike[str] | None = None,
) -> Settings:
    """Build :class:`Settings` from files and environment variables."""

    if environ is None:
        environ = os.environ
    if config_dir is None:
        config_dir = environ.get("CONFIG_DIR", "config")
    values = _merge_sources(environ, config_dir)
    defaults = Settings()

    def get(name: str, default: Any) -> Any:
        value = values.get(name)
        return default if value is None or value == "" else value

    return Settings(
        verification_token=str(get("HANGOUTS_BOT_VERIFICATION_TOKEN", "")),
        webhook_url=str(get("BOT_WEBHOOK_URL", "")),
        webhook_secret=str(get("BOT_WEBHOOK_SECRET", "")),
        google_credentials_path=str(get("GOOGLE_APPLICATION_CREDENTIALS", "")),
        host=str(get("HOST", defaults.host)),
        port=_as_int("PORT", get("PORT", defaults.port)),
        request_timeout=_as_float(
            "REQUEST_TIMEOUT_SECONDS",
            get("REQUEST_TIMEOUT_SECONDS", defaults.request_timeout),
        ),
        auth_failure_policy=_as_policy(
            get("AUTH_FAILURE_POLICY", defaults.auth_failure_policy.value)
        ),
        enabled_channels=_as_channels(
            get("ENABLED_CHANNELS", ",".join(defaults.enabled_channels))
        ),
        static_dir=str(get("STATIC_DIR", defaults.static_dir)),
        log_dir=str(get("LOG_DIR", defaults.log_dir)),
        log_level=str(get("LOG_LEVEL", defaults.log_level)).upper(),
        log_json=_as_bool(get("LOG_JSON", False)),
        log_request_bodies=_as_bool(get("LOG_REQUEST_BODIES", False)),
        log_retention_days=_as_int(
            "LOG_RETENTION_DAYS", get("LOG_RETENTION_DAYS", defaults.log_retention_days)
        ),
        log_rotate_utc=_as_bool(get("LOG_ROTATE_UTC", False)),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process, reading ``.env`` first."""

    load_dotenv()
    return load_settings()


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
