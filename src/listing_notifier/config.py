from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import find_dotenv, load_dotenv

from listing_notifier.utils.url_utils import site_root

TELEGRAM_MEDIA_GROUP_LIMIT = 10


class ConfigError(ValueError):
    """Raised when configuration is invalid."""


@dataclass(slots=True)
class ListingSettings:
    url: str = ""
    type: str = "olx"
    base_url: str = ""
    timeout_seconds: int = 30
    user_agent: str = "listing-notifier/0.1"
    fresh_marker: str = "Сьогодні о "


@dataclass(slots=True)
class TelegramSettings:
    api_base_url: str = "https://api.telegram.org"
    token_env_var: str = "TELEGRAM_BOT_API_KEY"
    chat_id: str = ""
    timeout_seconds: int = 15


@dataclass(slots=True)
class ScanSettings:
    existing_attempts: int = 3


@dataclass(slots=True)
class DispatchSettings:
    delay_ms: int = 5000
    min_images: int = 2
    max_images: int = TELEGRAM_MEDIA_GROUP_LIMIT
    dry_run: bool = False


@dataclass(slots=True)
class SchedulerSettings:
    cycle_interval_ms: int = 60000


@dataclass(slots=True)
class StorageSettings:
    type: str = "sqlite"
    path: str = "data/state.sqlite"
    keep_records: int = 5000


@dataclass(slots=True)
class AppConfig:
    listing: ListingSettings = field(default_factory=ListingSettings)
    telegram: TelegramSettings = field(default_factory=TelegramSettings)
    scan: ScanSettings = field(default_factory=ScanSettings)
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    log_level: str = "INFO"
    log_file: str | None = None

    def bot_token(self, environ: Mapping[str, str] | None = None) -> str:
        env = os.environ if environ is None else environ
        return env.get(self.telegram.token_env_var, "").strip()


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, int) and value in {0, 1}:
        return bool(value)

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off"}:
            return False

    raise ConfigError(f"{field_name} must be a boolean")


def _as_int(
    value: Any,
    *,
    field_name: str,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc

    if minimum is not None and parsed < minimum:
        raise ConfigError(f"{field_name} must be >= {minimum}")
    if maximum is not None and parsed > maximum:
        raise ConfigError(f"{field_name} must be <= {maximum}")
    return parsed


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip() or default


def _section(parsed: dict[str, Any], name: str) -> dict[str, Any]:
    raw = parsed.get(name, {}) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{name} must be a mapping")
    return raw


def _resolve_relative_path(config_path: Path, raw_path: str) -> str:
    candidate = Path(raw_path).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str((config_path.parent / candidate).resolve())


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {config_path} is not valid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ConfigError("Config root must be a mapping")
    return parsed


def load_config(
    path: str | Path = "config.yaml",
    *,
    environ: Mapping[str, str] | None = None,
    load_env_file: bool = True,
) -> AppConfig:
    """Build the configuration from an optional YAML file plus environment overrides."""
    if load_env_file:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    env = os.environ if environ is None else environ

    config_path = Path(path).expanduser().resolve()
    parsed = _read_yaml(config_path)

    raw_listing = _section(parsed, "listing")
    listing_url = _as_str(env.get("ENTRY_LIST_URL")) or _as_str(raw_listing.get("url"))
    listing = ListingSettings(
        url=listing_url,
        type=_as_str(raw_listing.get("type"), "olx"),
        base_url=_as_str(raw_listing.get("base_url")) or site_root(listing_url),
        timeout_seconds=_as_int(
            raw_listing.get("timeout_seconds", 30),
            field_name="listing.timeout_seconds",
            minimum=1,
        ),
        user_agent=_as_str(raw_listing.get("user_agent"), "listing-notifier/0.1"),
        # Leading/trailing spaces are part of the marker.
        fresh_marker=str(raw_listing.get("fresh_marker", "Сьогодні о ")),
    )

    raw_telegram = _section(parsed, "telegram")
    telegram = TelegramSettings(
        api_base_url=(
            _as_str(env.get("TELEGRAM_API_BASE_URL"))
            or _as_str(raw_telegram.get("api_base_url"), "https://api.telegram.org")
        ).rstrip("/"),
        token_env_var=_as_str(raw_telegram.get("token_env_var"), "TELEGRAM_BOT_API_KEY"),
        chat_id=_as_str(env.get("TELEGRAM_TARGET_CHAT_ID")) or _as_str(raw_telegram.get("chat_id")),
        timeout_seconds=_as_int(
            raw_telegram.get("timeout_seconds", 15),
            field_name="telegram.timeout_seconds",
            minimum=1,
        ),
    )

    raw_scan = _section(parsed, "scan")
    scan = ScanSettings(
        existing_attempts=_as_int(
            env.get("EXISTING_ATTEMPTS", raw_scan.get("existing_attempts", 3)),
            field_name="scan.existing_attempts",
            minimum=1,
        ),
    )

    raw_dispatch = _section(parsed, "dispatch")
    max_images = _as_int(
        env.get("MAX_IMAGES", raw_dispatch.get("max_images", TELEGRAM_MEDIA_GROUP_LIMIT)),
        field_name="dispatch.max_images",
        minimum=1,
        maximum=TELEGRAM_MEDIA_GROUP_LIMIT,
    )
    min_images = _as_int(
        env.get("MIN_IMAGES", raw_dispatch.get("min_images", 2)),
        field_name="dispatch.min_images",
        minimum=1,
    )
    if min_images > max_images:
        raise ConfigError("dispatch.min_images must be <= dispatch.max_images")

    dispatch = DispatchSettings(
        delay_ms=_as_int(
            env.get("DISPATCH_DELAY_MS", raw_dispatch.get("delay_ms", 5000)),
            field_name="dispatch.delay_ms",
            minimum=0,
        ),
        min_images=min_images,
        max_images=max_images,
        dry_run=_as_bool(
            raw_dispatch.get("dry_run", False),
            field_name="dispatch.dry_run",
        ),
    )

    raw_scheduler = _section(parsed, "scheduler")
    scheduler = SchedulerSettings(
        cycle_interval_ms=_as_int(
            env.get("CYCLE_INTERVAL_MS", raw_scheduler.get("cycle_interval_ms", 60000)),
            field_name="scheduler.cycle_interval_ms",
            minimum=0,
        ),
    )

    raw_storage = _section(parsed, "storage")
    env_db_path = _as_str(env.get("LISTING_NOTIFIER_DB"))
    if env_db_path:
        storage_path = str(Path(env_db_path).expanduser())
    else:
        storage_path = _resolve_relative_path(
            config_path,
            _as_str(raw_storage.get("path"), "data/state.sqlite"),
        )
    storage = StorageSettings(
        type=_as_str(raw_storage.get("type"), "sqlite"),
        path=storage_path,
        keep_records=_as_int(
            raw_storage.get("keep_records", 5000),
            field_name="storage.keep_records",
            minimum=1,
        ),
    )

    raw_log_file = _as_str(parsed.get("log_file"))
    return AppConfig(
        listing=listing,
        telegram=telegram,
        scan=scan,
        dispatch=dispatch,
        scheduler=scheduler,
        storage=storage,
        log_level=(_as_str(env.get("LOG_LEVEL")) or _as_str(parsed.get("log_level"), "INFO")).upper(),
        log_file=_resolve_relative_path(config_path, raw_log_file) if raw_log_file else None,
    )


def require_listing_url(app_config: AppConfig) -> str:
    if not app_config.listing.url:
        raise ConfigError("A listing URL is required (ENTRY_LIST_URL or listing.url)")
    return app_config.listing.url
