"""
config/settings.py — reversetk Runtime Settings

Merges config.yaml (defaults/structure) with environment variables.
Pydantic-powered — all fields are validated and typed.

  - InterceptorConfig.capabilities_override is checked with the same
    decimal-digit rule as the operator text field
  - InterceptorConfig.guild_property_fields rejects empty lists and
    duplicate names at parse time
  - validate_all() performs cross-field validation and raises ConfigError
    with a human-readable message listing every problem found
  - load_settings() respects REVERSETK_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
import threading as _threading
from collections import Counter
from contextvars import ContextVar
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from reversetk.exceptions import CapabilityValidationError, ConfigError
from reversetk.gateway.capabilities import parse_capabilities
from reversetk.gateway.normalizer import DEFAULT_GUILD_PROPERTY_FIELDS, VERSIONED_FIELDS


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class InterceptorConfig(BaseModel):
    fix_ready: bool = True
    guild_property_fields: List[str] = Field(
        default_factory=lambda: list(DEFAULT_GUILD_PROPERTY_FIELDS)
    )
    capabilities_override: Optional[str] = None

    @field_validator("guild_property_fields")
    @classmethod
    def _valid_guild_fields(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError(
                "interceptor.guild_property_fields must not be empty. "
                "Remove the key to use the built-in list."
            )
        dupes = sorted(name for name, count in Counter(v).items() if count > 1)
        if dupes:
            raise ValueError(
                f"interceptor.guild_property_fields has duplicate entries: {dupes}"
            )
        return v

    @field_validator("capabilities_override", mode="before")
    @classmethod
    def _valid_override(cls, v: Any) -> Optional[str]:
        if v in (None, ""):
            return None
        text = str(v)
        try:
            parse_capabilities(text)
        except CapabilityValidationError as e:
            raise ValueError(f"interceptor.capabilities_override: {e}") from e
        return text

    @property
    def capabilities_value(self) -> Optional[int]:
        if self.capabilities_override is None:
            return None
        return parse_capabilities(self.capabilities_override)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: Optional[str] = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = True
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper

    @field_validator("max_file_size_mb", "backup_count")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("logging.max_file_size_mb and logging.backup_count must be >= 1")
        return v


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"interceptor", "logging"}

# Sections of the config.yaml being loaded; set only while load_settings()
# constructs Settings.
_yaml_sections: ContextVar[dict] = ContextVar("reversetk_yaml_sections", default={})


class YamlSectionsSource(PydanticBaseSettingsSource):
    """Feeds the known config.yaml sections in below env vars and .env."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return _yaml_sections.get().get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {k: v for k, v in _yaml_sections.get().items() if k in _KNOWN_SECTIONS}


class Settings(BaseSettings):
    """
    reversetk runtime settings.

    Priority (highest to lowest):
      0. Keyword arguments to Settings(...)
      1. Environment variables (e.g. INTERCEPTOR__FIX_READY=false)
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    interceptor: InterceptorConfig = Field(default_factory=InterceptorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSectionsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("interceptor", mode="before")
    @classmethod
    def _coerce_interceptor(cls, v: Any) -> Any:
        return InterceptorConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def fix_ready(self) -> bool:
        return self.interceptor.fix_ready

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Field validators catch type/value errors at parse time; this catches
        combinations that only matter once the interceptor is wired up.
        """
        errors: list[str] = []

        # ── Allowlist must keep the guild id ────────────────────────────────
        if self.interceptor.fix_ready and "id" not in self.interceptor.guild_property_fields:
            errors.append(
                "interceptor.guild_property_fields does not contain 'id'; "
                "normalized guilds would have no properties.id."
            )

        # ── Allowlist must not swallow the envelope key itself ──────────────
        if "properties" in self.interceptor.guild_property_fields:
            errors.append(
                "interceptor.guild_property_fields may not contain 'properties'."
            )

        clash = sorted(set(VERSIONED_FIELDS) & set(self.interceptor.guild_property_fields))
        if clash:
            errors.append(
                f"interceptor.guild_property_fields contains top-level READY fields {clash}."
            )

        # ── Log directory must be a directory ───────────────────────────────
        if self.logging.log_dir is not None:
            log_dir = Path(self.logging.log_dir).expanduser()
            if log_dir.exists() and not log_dir.is_dir():
                errors.append(f"logging.log_dir '{log_dir}' exists and is not a directory.")

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nreversetk startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your environment.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a YAML mapping at the top level.")
    return data


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. REVERSETK_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("REVERSETK_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    resolved_path = _resolve_config_path(config_path)
    token = _yaml_sections.set(_load_yaml(resolved_path))
    try:
        instance = Settings()
    finally:
        _yaml_sections.reset(token)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading the default config on
    first use. Guarded by _singleton_lock against double initialisation.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is not None:
            return _singleton
    return load_settings()


def reset_settings() -> None:
    """Drop the cached singleton (tests, config reload)."""
    global _singleton
    with _singleton_lock:
        _singleton = None
