"""Application configuration powered by Pydantic settings.

Two layers:

* :class:`Settings` - process options read from ``HAG_*`` environment
  variables (and ``.env``).
* :class:`HagConfig` - the YAML configuration file (``app_options``,
  ``hass_options``, ``hvac_options``), validated with Pydantic.  Selected
  environment settings override the file so secrets never need to live in it.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from hag.exceptions import ConfigurationError
from hag.models.enums import HVACMode, LogLevel, SystemMode

logger = logging.getLogger(__name__)

CONFIG_SEARCH_PATHS: tuple[str, ...] = (
    "config/hvac_config.yaml",
    "hvac_config.yaml",
    "~/.config/hag/hvac_config.yaml",
    "/etc/hag/hvac_config.yaml",
)


class Settings(BaseSettings):
    """Centralized process configuration with environment fallbacks."""

    model_config = SettingsConfigDict(env_prefix="HAG_", env_file=".env", extra="ignore")

    # App
    app_name: str = "HAG"
    config_file: str | None = Field(default=None)
    log_level: LogLevel | None = Field(default=None)
    dry_run: bool | None = Field(default=None)

    # HTTP API
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8430

    # Home Assistant
    home_assistant_url: str | None = Field(default=None)
    home_assistant_token: str | None = Field(default=None)

    # AI advisory
    use_ai: bool | None = Field(default=None)
    openai_api_key: str = Field(default="")
    anthropic_api_key: str = Field(default="")

    @field_validator("home_assistant_token", "config_file", mode="before")
    @classmethod
    def _coerce_empty(cls, v: Any) -> Any:
        """Treat an env var that is set but blank as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


# ---------------------------------------------------------------------------
# YAML configuration models
# ---------------------------------------------------------------------------


class _Options(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ApplicationOptions(_Options):
    log_level: LogLevel = LogLevel.info
    use_ai: bool = False
    ai_model: str = "gpt-4o-mini"
    ai_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    openai_api_key: str | None = None
    dry_run: bool = False


class HassOptions(_Options):
    """Home Assistant connection options."""

    rest_url: str = "http://localhost:8123"
    ws_url: str | None = None
    token: str = ""
    max_retries: int = Field(default=5, gt=0)
    retry_delay_ms: int = Field(default=1000, gt=0)
    state_check_interval: int = Field(default=300_000, gt=0)
    ping_interval: float = Field(default=30.0, gt=0)
    request_timeout: float = Field(default=15.0, gt=0)

    @field_validator("rest_url")
    @classmethod
    def _check_rest_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("REST API URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("ws_url")
    @classmethod
    def _check_ws_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("ws://", "wss://")):
            raise ValueError("WebSocket URL must start with ws:// or wss://")
        return v


class TemperatureThresholds(_Options):
    indoor_min: float = Field(ge=-50, le=60)
    indoor_max: float = Field(ge=-50, le=60)
    outdoor_min: float = Field(ge=-50, le=60)
    outdoor_max: float = Field(ge=-50, le=60)

    @model_validator(mode="after")
    def _check_bands(self) -> TemperatureThresholds:
        if self.indoor_min >= self.indoor_max:
            raise ValueError("Indoor min temperature must be less than max temperature")
        if self.outdoor_min >= self.outdoor_max:
            raise ValueError("Outdoor min temperature must be less than max temperature")
        return self


class DefrostOptions(_Options):
    temperature_threshold: float = 0.0
    period_seconds: int = Field(default=3600, gt=0)
    duration_seconds: int = Field(default=300, gt=0)


class HeatingOptions(_Options):
    temperature: float = Field(default=21.0, ge=10, le=35)
    preset_mode: str = "comfort"
    temperature_thresholds: TemperatureThresholds
    defrost: DefrostOptions | None = None


class CoolingOptions(_Options):
    temperature: float = Field(default=24.0, ge=15, le=35)
    preset_mode: str = "eco"
    temperature_thresholds: TemperatureThresholds


class ActiveHours(_Options):
    start: int = Field(default=8, ge=0, le=23)
    start_weekday: int = Field(default=7, ge=0, le=23)
    end: int = Field(default=22, ge=0, le=23)


class HvacEntity(_Options):
    entity_id: str
    enabled: bool = True

    @field_validator("entity_id")
    @classmethod
    def _check_entity_id(cls, v: str) -> str:
        if "." not in v:
            raise ValueError('Entity ID must be in format "domain.entity"')
        return v


class HvacOptions(_Options):
    """Immutable control policy for one run of the controller."""

    temp_sensor: str
    outdoor_sensor: str = "sensor.openweathermap_temperature"
    system_mode: SystemMode = SystemMode.auto
    hvac_entities: tuple[HvacEntity, ...] = ()
    heating: HeatingOptions
    cooling: CoolingOptions
    active_hours: ActiveHours | None = None

    @field_validator("temp_sensor", "outdoor_sensor")
    @classmethod
    def _check_sensor(cls, v: str) -> str:
        if not v.startswith("sensor."):
            raise ValueError("Temperature sensors must be sensor entities")
        return v

    @property
    def enabled_entities(self) -> list[HvacEntity]:
        return [entity for entity in self.hvac_entities if entity.enabled]

    def target_temperature(self, mode: HVACMode) -> float:
        if mode == HVACMode.heat:
            return self.heating.temperature
        return self.cooling.temperature

    def preset_for(self, mode: HVACMode) -> str:
        if mode == HVACMode.heat:
            return self.heating.preset_mode
        return self.cooling.preset_mode


class HagConfig(_Options):
    app_options: ApplicationOptions = Field(default_factory=ApplicationOptions)
    hass_options: HassOptions = Field(default_factory=HassOptions)
    hvac_options: HvacOptions


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def find_config_file(explicit: str | None = None, settings: Settings | None = None) -> Path:
    """Resolve the configuration file path.

    Order: explicit argument, ``HAG_CONFIG_FILE``, then the standard search
    locations.  Falls back to ``config/hvac_config.yaml`` when nothing exists
    so the caller gets a meaningful "not found" error.
    """
    settings = settings or get_settings()
    candidates = [explicit, settings.config_file, *CONFIG_SEARCH_PATHS]
    for candidate in candidates:
        if not candidate:
            continue
        path = Path(os.path.expanduser(candidate))
        if explicit and candidate == explicit:
            return path
        if path.is_file():
            return path
    return Path(CONFIG_SEARCH_PATHS[0])


def _apply_env_overrides(raw: dict[str, Any], settings: Settings) -> dict[str, Any]:
    app = dict(raw.get("app_options") or {})
    hass = dict(raw.get("hass_options") or {})

    if settings.log_level is not None:
        app["log_level"] = settings.log_level
    if settings.dry_run is not None:
        app["dry_run"] = settings.dry_run
    if settings.use_ai is not None:
        app["use_ai"] = settings.use_ai
    if settings.openai_api_key:
        app["openai_api_key"] = settings.openai_api_key
    if settings.home_assistant_url:
        hass["rest_url"] = settings.home_assistant_url
    if settings.home_assistant_token:
        hass["token"] = settings.home_assistant_token

    return {**raw, "app_options": app, "hass_options": hass}


def parse_config(raw: Any, settings: Settings | None = None, *, source: str = "<memory>") -> HagConfig:
    """Validate an already-parsed mapping into a :class:`HagConfig`."""
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration root must be a mapping", source=source)
    merged = _apply_env_overrides(raw, settings or get_settings())
    try:
        return HagConfig.model_validate(merged)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}", source=source) from exc


def load_config(path: str | Path | None = None, settings: Settings | None = None) -> HagConfig:
    """Load, merge and validate the YAML configuration file.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    settings = settings or get_settings()
    resolved = Path(path) if path is not None else find_config_file(settings=settings)
    logger.info("Loading configuration from %s", resolved)

    try:
        text = resolved.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Configuration file not found: {resolved}", source=str(resolved)
        ) from exc
    except OSError as exc:
        raise ConfigurationError(
            f"Failed to read configuration file: {exc}", source=str(resolved)
        ) from exc

    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {exc}", source=str(resolved)
        ) from exc

    config = parse_config(raw, settings, source=str(resolved))
    logger.info(
        "Configuration loaded: system_mode=%s, entities=%d, ai=%s, dry_run=%s",
        config.hvac_options.system_mode,
        len(config.hvac_options.hvac_entities),
        config.app_options.use_ai,
        config.app_options.dry_run,
    )
    return config


def validate_config_file(
    path: str | Path, settings: Settings | None = None
) -> tuple[bool, list[str], HagConfig | None]:
    """Validate a configuration file without starting anything."""
    try:
        config = load_config(path, settings)
    except ConfigurationError as exc:
        return False, [exc.message], None
    return True, [], config


__all__ = [
    "ActiveHours",
    "ApplicationOptions",
    "CoolingOptions",
    "DefrostOptions",
    "HagConfig",
    "HassOptions",
    "HeatingOptions",
    "HvacEntity",
    "HvacOptions",
    "Settings",
    "TemperatureThresholds",
    "find_config_file",
    "get_settings",
    "load_config",
    "parse_config",
    "validate_config_file",
]
