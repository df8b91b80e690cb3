"""Tests for hag.config - YAML loading, validation and environment overrides."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError as PydanticValidationError

from hag.config import (
    HvacOptions,
    Settings,
    find_config_file,
    load_config,
    parse_config,
    validate_config_file,
)
from hag.exceptions import ConfigurationError
from hag.models.enums import HVACMode, LogLevel, SystemMode

EXAMPLE_CONFIG = Path(__file__).resolve().parents[3] / "config" / "hvac_config.yaml"


def _settings(**values: Any) -> Settings:
    return Settings(_env_file=None, **values)


def _raw(**hvac_overrides: Any) -> dict[str, Any]:
    hvac: dict[str, Any] = {
        "temp_sensor": "sensor.indoor_temperature",
        "hvac_entities": [{"entity_id": "climate.living_room"}],
        "heating": {
            "temperature": 21.0,
            "temperature_thresholds": {
                "indoor_min": 20.0,
                "indoor_max": 22.0,
                "outdoor_min": -10.0,
                "outdoor_max": 15.0,
            },
        },
        "cooling": {
            "temperature": 24.0,
            "temperature_thresholds": {
                "indoor_min": 23.0,
                "indoor_max": 26.0,
                "outdoor_min": 10.0,
                "outdoor_max": 45.0,
            },
        },
    }
    hvac.update(hvac_overrides)
    return {"hass_options": {"token": "file-token"}, "hvac_options": hvac}


def _write(tmp_path: Path, data: Any) -> Path:
    path = tmp_path / "hvac_config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# ===================================================================
# Loading
# ===================================================================


class TestLoadConfig:
    def test_example_config_is_valid(self) -> None:
        config = load_config(EXAMPLE_CONFIG, _settings())
        assert config.hvac_options.system_mode == SystemMode.auto
        assert len(config.hvac_options.hvac_entities) == 2
        assert config.hvac_options.heating.defrost is not None
        assert config.hass_options.state_check_interval == 300_000

    def test_defaults_applied(self, tmp_path: Path) -> None:
        config = load_config(_write(tmp_path, _raw()), _settings())

        assert config.app_options.log_level == LogLevel.info
        assert config.app_options.use_ai is False
        assert config.app_options.dry_run is False
        assert config.hass_options.rest_url == "http://localhost:8123"
        assert config.hass_options.max_retries == 5
        assert config.hvac_options.outdoor_sensor == "sensor.openweathermap_temperature"
        assert config.hvac_options.heating.preset_mode == "comfort"
        assert config.hvac_options.cooling.preset_mode == "eco"
        assert config.hvac_options.active_hours is None

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml", _settings())

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("hvac_options: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="parse YAML"):
            load_config(path, _settings())

    def test_root_must_be_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="mapping"):
            parse_config(["not", "a", "mapping"], _settings())

    def test_missing_hvac_options(self) -> None:
        with pytest.raises(ConfigurationError, match="hvac_options"):
            parse_config({"app_options": {}}, _settings())

    def test_options_are_immutable(self, tmp_path: Path) -> None:
        config = load_config(_write(tmp_path, _raw()), _settings())
        with pytest.raises(PydanticValidationError):
            config.hvac_options.system_mode = SystemMode.off  # type: ignore[misc]


# ===================================================================
# Validation rules
# ===================================================================


class TestValidation:
    def test_indoor_min_must_be_below_max(self) -> None:
        raw = _raw()
        raw["hvac_options"]["heating"]["temperature_thresholds"]["indoor_min"] = 22.0
        with pytest.raises(ConfigurationError, match="Indoor min temperature"):
            parse_config(raw, _settings())

    def test_outdoor_min_must_be_below_max(self) -> None:
        raw = _raw()
        raw["hvac_options"]["cooling"]["temperature_thresholds"]["outdoor_min"] = 50.0
        with pytest.raises(ConfigurationError):
            parse_config(raw, _settings())

    def test_entity_id_format(self) -> None:
        with pytest.raises(ConfigurationError, match="domain.entity"):
            parse_config(_raw(hvac_entities=[{"entity_id": "living_room"}]), _settings())

    def test_entity_accepts_only_id_and_enabled(self) -> None:
        raw = _raw(hvac_entities=[{"entity_id": "climate.garage", "enabled": False}])
        entity = parse_config(raw, _settings()).hvac_options.hvac_entities[0]
        assert (entity.entity_id, entity.enabled) == ("climate.garage", False)

        with pytest.raises(ConfigurationError, match="defrost"):
            parse_config(
                _raw(hvac_entities=[{"entity_id": "climate.garage", "defrost": True}]),
                _settings(),
            )

    def test_sensor_must_be_sensor_entity(self) -> None:
        with pytest.raises(ConfigurationError, match="sensor entities"):
            parse_config(_raw(temp_sensor="climate.living_room"), _settings())

    def test_unknown_system_mode(self) -> None:
        with pytest.raises(ConfigurationError, match="system_mode"):
            parse_config(_raw(system_mode="turbo"), _settings())

    def test_heating_target_range(self) -> None:
        raw = _raw()
        raw["hvac_options"]["heating"]["temperature"] = 40
        with pytest.raises(ConfigurationError):
            parse_config(raw, _settings())

    def test_rest_url_scheme(self) -> None:
        raw = _raw()
        raw["hass_options"]["rest_url"] = "localhost:8123"
        with pytest.raises(ConfigurationError, match="http"):
            parse_config(raw, _settings())

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_config(_raw(fan_speed="high"), _settings())

    def test_validate_config_file(self, tmp_path: Path) -> None:
        valid, errors, config = validate_config_file(_write(tmp_path, _raw()), _settings())
        assert valid is True
        assert errors == []
        assert config is not None

        raw = _raw(system_mode="turbo")
        valid, errors, config = validate_config_file(_write(tmp_path, raw), _settings())
        assert valid is False
        assert len(errors) == 1
        assert config is None


# ===================================================================
# Environment overrides
# ===================================================================


class TestEnvironmentOverrides:
    def test_settings_override_file(self) -> None:
        settings = _settings(
            home_assistant_url="https://ha.example.com",
            home_assistant_token="env-token",
            log_level="debug",
            dry_run=True,
            use_ai=True,
            openai_api_key="sk-test",
        )
        config = parse_config(_raw(), settings)

        assert config.hass_options.rest_url == "https://ha.example.com"
        assert config.hass_options.token == "env-token"
        assert config.app_options.log_level == LogLevel.debug
        assert config.app_options.dry_run is True
        assert config.app_options.use_ai is True
        assert config.app_options.openai_api_key == "sk-test"

    def test_unset_settings_keep_file_values(self) -> None:
        config = parse_config(_raw(), _settings())
        assert config.hass_options.token == "file-token"

    def test_blank_token_is_unset(self) -> None:
        settings = _settings(home_assistant_token="  ")
        assert settings.home_assistant_token is None
        assert parse_config(_raw(), settings).hass_options.token == "file-token"

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HAG_HOME_ASSISTANT_TOKEN", "from-env")
        monkeypatch.setenv("HAG_DRY_RUN", "true")
        settings = _settings()
        assert settings.home_assistant_token == "from-env"
        assert settings.dry_run is True


# ===================================================================
# Config file discovery
# ===================================================================


class TestFindConfigFile:
    def test_explicit_path_wins(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        assert find_config_file(str(path), _settings()) == path

    def test_settings_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path, _raw())
        assert find_config_file(None, _settings(config_file=str(path))) == path


# ===================================================================
# Policy helpers
# ===================================================================


class TestPolicyHelpers:
    def test_enabled_entities(self, hvac_options: HvacOptions) -> None:
        ids = [entity.entity_id for entity in hvac_options.enabled_entities]
        assert ids == ["climate.living_room", "climate.bedroom"]

    def test_targets_and_presets(self, hvac_options: HvacOptions) -> None:
        assert hvac_options.target_temperature(HVACMode.heat) == 21.0
        assert hvac_options.target_temperature(HVACMode.cool) == 24.0
        assert hvac_options.preset_for(HVACMode.heat) == "comfort"
        assert hvac_options.preset_for(HVACMode.cool) == "eco"
