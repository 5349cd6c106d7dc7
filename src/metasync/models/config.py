"""Pydantic configuration models for metasync."""

import os
import re
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..scheduler import parse_schedule

DEFAULT_DOCUMENT_FIELDS = ["id", "title", "modified", "tags", "correspondent", "document_type"]


def _expand_env_var(value: Optional[str]) -> Optional[str]:
    """Expand $VAR and ${VAR} references; unset variables are left as written."""
    if value is None:
        return None

    pattern = r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)"

    def replace(match: re.Match) -> str:
        var_name = match.group(1) or match.group(2)
        return os.environ.get(var_name, match.group(0))

    return re.sub(pattern, replace, value)


def _check_schedule(value: str) -> str:
    parse_schedule(value)
    return value


class PaperlessConfig(BaseModel):
    """Connection settings for the upstream Paperless-ngx API."""

    url: str = Field("http://localhost:8000", description="Paperless base URL")
    token: Optional[str] = Field(None, description="API token (supports $VAR expansion)")
    page_size: int = Field(100, ge=1, le=100000, description="Page size for listing endpoints")
    max_retries: int = Field(3, ge=0, description="Maximum retry attempts for failed requests")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")

    model_config = {"extra": "forbid"}

    def model_post_init(self, __context: object) -> None:
        """Expand environment variables in the token after init."""
        if self.token:
            object.__setattr__(self, "token", _expand_env_var(self.token))


class CacheConfig(BaseModel):
    """Configuration for the metadata cache."""

    ttl_ms: int = Field(
        1_800_000,
        ge=0,
        description="Metadata cache TTL in milliseconds (0 = always refresh)",
    )
    refresh_interval: str = Field(
        "*/15 * * * *",
        description="Cron-style schedule for the periodic cache refresh",
    )

    model_config = {"extra": "forbid"}

    @field_validator("refresh_interval")
    @classmethod
    def _valid_schedule(cls, v: str) -> str:
        return _check_schedule(v)


class ScanConfig(BaseModel):
    """Configuration for incremental document scans."""

    incremental: bool = Field(True, description="Scan only documents modified since the last scan")
    interval: str = Field("*/30 * * * *", description="Cron-style schedule for document scans")
    fields: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DOCUMENT_FIELDS),
        description="Default document field projection",
    )
    tags: list[Union[int, str]] = Field(
        default_factory=list,
        description="Only scan documents carrying one of these tag ids",
    )
    watermark_file: Path = Field(Path(".metasync/state.json"), description="Scan watermark state file")

    model_config = {"extra": "forbid"}

    @field_validator("interval")
    @classmethod
    def _valid_schedule(cls, v: str) -> str:
        return _check_schedule(v)


class EnvSettings(BaseSettings):
    """
    Settings read from environment variables (and an optional ``.env`` file).

    Every variable is optional; unset or blank variables leave the value from
    the config file or the model default in place.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Upstream
    PAPERLESS_API_URL: Optional[str] = None
    PAPERLESS_API_TOKEN: Optional[str] = None

    # Metadata cache
    METADATA_CACHE_TTL: Optional[int] = None  # milliseconds
    CACHE_REFRESH_INTERVAL: Optional[str] = None

    # Document scans
    ENABLE_INCREMENTAL_SCAN: Optional[bool] = None
    SCAN_INTERVAL: Optional[str] = None
    METASYNC_STATE_FILE: Optional[Path] = None

    # Logging
    LOG_LEVEL: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    def overrides(self) -> dict[str, Any]:
        """Set variables as nested ``SyncConfig`` data."""
        sections: dict[str, dict[str, Any]] = {
            "paperless": {"url": self.PAPERLESS_API_URL, "token": self.PAPERLESS_API_TOKEN},
            "cache": {"ttl_ms": self.METADATA_CACHE_TTL, "refresh_interval": self.CACHE_REFRESH_INTERVAL},
            "scan": {
                "incremental": self.ENABLE_INCREMENTAL_SCAN,
                "interval": self.SCAN_INTERVAL,
                "watermark_file": self.METASYNC_STATE_FILE,
            },
        }
        data: dict[str, Any] = {}
        for section, values in sections.items():
            set_values = {k: v for k, v in values.items() if v is not None}
            if set_values:
                data[section] = set_values
        if self.LOG_LEVEL is not None:
            data["log_level"] = self.LOG_LEVEL
        return data


class SyncConfig(BaseModel):
    """
    Root configuration model for metasync.

    Example:
        config = SyncConfig(
            paperless=PaperlessConfig(url="http://paperless:8000", token="$PAPERLESS_TOKEN"),
            cache=CacheConfig(ttl_ms=600_000),
        )

    YAML format:
        paperless:
          url: http://paperless:8000
          token: ${PAPERLESS_TOKEN}
        cache:
          ttl_ms: 600000
          refresh_interval: "*/15 * * * *"
        scan:
          incremental: true
          fields: [id, title, modified]
    """

    paperless: PaperlessConfig = Field(default_factory=PaperlessConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO",
        description="Logging level",
    )
    log_file: Optional[Path] = Field(None, description="Log file path")

    model_config = {"extra": "forbid"}

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @classmethod
    def from_env(
        cls,
        base: Optional[dict[str, Any]] = None,
        env: Optional[EnvSettings] = None,
    ) -> "SyncConfig":
        """
        Build config from environment variables, layered over ``base``.

        Blank variables are ignored. Values are validated, so
        ``METADATA_CACHE_TTL=abc`` raises a ValidationError.

        Args:
            base: Config data the environment overrides (e.g. from YAML)
            env: Pre-loaded settings (defaults to reading the environment)
        """
        settings = env if env is not None else EnvSettings()
        data: dict[str, Any] = {k: (dict(v) if isinstance(v, dict) else v) for k, v in (base or {}).items()}

        for key, value in settings.overrides().items():
            if isinstance(value, dict):
                data.setdefault(key, {}).update(value)
            else:
                data[key] = value

        return cls.model_validate(data)

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        import yaml

        return yaml.dump(self.model_dump(mode="json", exclude_none=True), default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "SyncConfig":
        """Load config from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> "SyncConfig":
        """Load config from YAML file."""
        return cls.from_yaml(path.read_text())
