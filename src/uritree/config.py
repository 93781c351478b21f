"""Pydantic configuration models and loading.

Configuration hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (URITREE__SECTION__KEY)
3. YAML file passed to load_config()
4. Built-in defaults (this file)

Examples:
    URITREE__LOGGING__LEVEL=DEBUG
    URITREE__RESOLVER__COLLECTION_RESULTS=uris
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from uritree.errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        URITREE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        URITREE__LOGGING__FORMAT: "console" or "json"
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. DEBUG logs every backing-store round trip.",
    )
    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or a file path


class ResolverConfig(BaseModel):
    """How specifiers resolve collections.

    Env vars:
        URITREE__RESOLVER__COLLECTION_RESULTS: "values" or "uris"
    """

    collection_results: Literal["values", "uris"] = Field(
        default="values",
        description="Resolve collections to element values or to element URIs.",
    )
    uri_key: str = Field(
        default="_uri",
        description="Key under which each resolved collection element carries its URI.",
    )
    strict_expand: bool = Field(
        default=False,
        description="Fail collection resolution when an expanded field cannot be resolved.",
    )


class UriTreeConfig(BaseModel):
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    class UriTreeSettings(BaseSettings):
        """Root config. Env vars: URITREE__LOGGING__LEVEL, URITREE__RESOLVER__..., etc."""

        model_config = SettingsConfigDict(
            env_prefix="URITREE__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        resolver: ResolverConfig = ResolverConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml file
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return UriTreeSettings


def load_config(path: Path | None = None, **kwargs: Any) -> UriTreeConfig:
    """Load config: defaults < YAML file < env vars < kwargs.

    Args:
        path: Optional YAML file with `logging` and `resolver` sections.
        **kwargs: Override values (highest precedence).

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    yaml_config = _load_yaml(path) if path is not None else {}
    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return UriTreeConfig(logging=settings.logging, resolver=settings.resolver)  # type: ignore[attr-defined]
