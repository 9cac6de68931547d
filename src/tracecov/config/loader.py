"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (TRACECOV__SECTION__KEY)
3. Project config (.tracecov/config.yaml)
4. Global config (~/.config/tracecov/config.yaml)
5. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from tracecov.config.models import (
    AnalysisConfig,
    LoggingConfig,
    TracecovConfig,
    TrackingConfig,
)
from tracecov.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/tracecov/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """The merged YAML layers, below env vars and kwargs."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Settings class closed over one load's YAML, so concurrent loads never share state."""

    class TracecovSettings(BaseSettings):
        """Root config. Env vars: TRACECOV__LOGGING__LEVEL, TRACECOV__TRACKING__TRACK_BLOCKS, etc."""

        model_config = SettingsConfigDict(
            env_prefix="TRACECOV__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        analysis: AnalysisConfig = AnalysisConfig()
        tracking: TrackingConfig = TrackingConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return TracecovSettings


def _yaml_layers(root: Path, config_file: Path | None) -> dict[str, Any]:
    """The user-wide YAML with the project YAML (or ``config_file``) merged over it."""
    if config_file is None:
        project = _load_yaml(root / ".tracecov" / "config.yaml")
    elif config_file.is_file():
        project = _load_yaml(config_file)
    else:
        raise ConfigError.file_not_found(str(config_file))
    return _deep_merge(_load_yaml(GLOBAL_CONFIG_PATH), project)


def load_config(
    root: Path | None = None, config_file: Path | None = None, **kwargs: Any
) -> TracecovConfig:
    """Resolve a ``TracecovConfig`` from every configuration layer.

    Later layers win: defaults, ``~/.config/tracecov/config.yaml``, the
    project YAML (``config_file`` when given, else
    ``<root>/.tracecov/config.yaml``), ``TRACECOV__*`` environment
    variables, then ``kwargs``. ``root`` defaults to the working directory.

    Raises:
        ConfigError: Malformed or non-mapping YAML, a missing
            ``config_file``, or a value that fails validation (reported
            with its dotted field name).
    """
    settings_cls = _make_settings_class(_yaml_layers(root or Path.cwd(), config_file))
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e

    return TracecovConfig.model_validate(settings.model_dump())
