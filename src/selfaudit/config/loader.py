"""Configuration loading with pydantic-settings.

Precedence (first wins):
1. Direct kwargs
2. Environment variables (SELFAUDIT__SECTION__KEY)
3. Project config (<project>/.selfaudit/config.yaml)
4. Built-in defaults
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from selfaudit.config.models import (
    ContractsConfig,
    HarnessConfig,
    LinkageConfig,
    LoggingConfig,
    PathsConfig,
    ScanConfig,
    SelfAuditConfig,
)
from selfaudit.core.errors import ConfigError

CONFIG_DIR = ".selfaudit"
CONFIG_FILE = "config.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top-level value must be a mapping")
    return data


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

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
    """Create a Settings class bound to one project's YAML config."""

    class SelfAuditSettings(BaseSettings):
        """Root config. Env vars: SELFAUDIT__LOGGING__LEVEL, SELFAUDIT__SCAN__SOURCE_DIRS, etc."""

        model_config = SettingsConfigDict(
            env_prefix="SELFAUDIT__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        paths: PathsConfig = PathsConfig()
        scan: ScanConfig = ScanConfig()
        linkage: LinkageConfig = LinkageConfig()
        contracts: ContractsConfig = ContractsConfig()
        harness: HarnessConfig = HarnessConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return SelfAuditSettings


def load_config(project_root: Path | None = None, **kwargs: Any) -> SelfAuditConfig:
    """Load config: defaults < project YAML < env vars < kwargs.

    Args:
        project_root: Project to load config from. Defaults to cwd.
        **kwargs: Override values (highest precedence).

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    project_root = project_root or Path.cwd()
    yaml_config = _load_yaml(project_root / CONFIG_DIR / CONFIG_FILE)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return SelfAuditConfig.model_validate(settings.model_dump())
