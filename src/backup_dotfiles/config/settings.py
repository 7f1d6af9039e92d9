"""
Configuration management using Pydantic.

Per-call backup policy is an explicit model validated before any I/O;
process-wide defaults load from environment variables via Pydantic Settings.
"""

import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from backup_dotfiles.utils.exceptions import ConfigurationError

BackupFormat = Literal["timestamped", "numbered", "git_style"]

RETENTION_POLICY_PATTERN = re.compile(r"^(\d+)([dwmy])$")

# Days per retention unit
RETENTION_UNITS = {"d": 1, "w": 7, "m": 30, "y": 365}


class RetentionPolicy(BaseModel):
    """
    Declarative limit on backup lifetime and count.

    Only ``max_count`` drives eviction. The age and tier fields are parsed and
    validated so they can be reported, but nothing deletes backups by age.
    """

    model_config = ConfigDict(frozen=True)

    max_count: int = Field(default=0, ge=0)
    max_age: timedelta | None = None
    keep_daily: int | None = Field(default=None, ge=0)
    keep_weekly: int | None = Field(default=None, ge=0)
    keep_monthly: int | None = Field(default=None, ge=0)

    @property
    def is_age_based(self) -> bool:
        """Whether any age or tier limit is declared."""
        return any(
            value is not None
            for value in (self.max_age, self.keep_daily, self.keep_weekly, self.keep_monthly)
        )


def parse_retention_policy(policy: str) -> timedelta | None:
    """
    Parse a retention string such as "30d", "4w", "6m" or "1y".

    Args:
        policy: Retention string; empty means no age limit

    Returns:
        Maximum backup age, or None for an empty policy

    Raises:
        ConfigurationError: If the string does not match <integer><d|w|m|y>
    """
    if policy == "":
        return None

    match = RETENTION_POLICY_PATTERN.match(policy)
    if not match:
        raise ConfigurationError(f"Invalid retention policy format: {policy}")

    value, unit = match.groups()
    return timedelta(days=int(value) * RETENTION_UNITS[unit])


class EnhancedBackupConfig(BaseModel):
    """Caller-supplied policy for one backup operation."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    directory: Path = Field(default=Path("~/.dotfiles-backups"), validate_default=True)
    retention_policy: str = "30d"
    compression: bool = False
    incremental: bool = True
    max_backups: int = Field(default=50, ge=0)
    backup_format: BackupFormat = "timestamped"
    backup_metadata: bool = False
    backup_index: bool = True
    keep_daily: int | None = Field(default=None, ge=0)
    keep_weekly: int | None = Field(default=None, ge=0)
    keep_monthly: int | None = Field(default=None, ge=0)

    @field_validator("directory")
    @classmethod
    def expand_directory(cls, v: Path) -> Path:
        """Expand a leading ~ in the backup directory."""
        return v.expanduser()

    @field_validator("retention_policy")
    @classmethod
    def validate_retention_policy(cls, v: str) -> str:
        """Validate retention policy syntax."""
        if v and not RETENTION_POLICY_PATTERN.match(v):
            raise ValueError(f"invalid retention policy format: {v}")
        return v

    def retention(self) -> RetentionPolicy:
        """Build the retention policy this configuration describes."""
        return RetentionPolicy(
            max_count=self.max_backups,
            max_age=parse_retention_policy(self.retention_policy),
            keep_daily=self.keep_daily,
            keep_weekly=self.keep_weekly,
            keep_monthly=self.keep_monthly,
        )


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def load_backup_config(**options: Any) -> EnhancedBackupConfig:
    """
    Build a backup configuration from recognized options.

    Raises:
        ConfigurationError: If any option is unknown or invalid
    """
    try:
        return EnhancedBackupConfig(**options)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid backup configuration: {_describe(e)}") from e


def ensure_valid_config(config: EnhancedBackupConfig) -> EnhancedBackupConfig:
    """
    Re-validate a configuration before it is used.

    Models built with ``model_construct`` or mutated after construction skip
    validation, so every backup call runs this first.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    try:
        return EnhancedBackupConfig.model_validate(dict(config))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid backup configuration: {_describe(e)}") from e


class BackupSettings(BaseSettings):
    """Backup defaults loaded from the environment."""

    enabled: bool = Field(default=True, alias="BACKUP_ENABLED")
    directory: Path = Field(default=Path("~/.dotfiles-backups"), alias="BACKUP_DIR")
    retention_policy: str = Field(default="30d", alias="BACKUP_RETENTION_POLICY")
    compression: bool = Field(default=False, alias="BACKUP_COMPRESSION")
    incremental: bool = Field(default=True, alias="BACKUP_INCREMENTAL")
    max_backups: int = Field(default=50, alias="BACKUP_MAX_BACKUPS")
    backup_format: str = Field(default="timestamped", alias="BACKUP_FORMAT")
    backup_metadata: bool = Field(default=False, alias="BACKUP_METADATA")
    backup_index: bool = Field(default=True, alias="BACKUP_INDEX")
    dry_run: bool = Field(default=False, alias="BACKUP_DRY_RUN")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def to_backup_config(self, **overrides: Any) -> EnhancedBackupConfig:
        """
        Build a per-call configuration from these defaults.

        Args:
            **overrides: Options that replace the environment values

        Raises:
            ConfigurationError: If the merged options are invalid
        """
        options = self.model_dump(exclude={"dry_run"})
        options.update({k: v for k, v in overrides.items() if v is not None})
        return load_backup_config(**options)


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    log_file: Path | None = Field(default=None, alias="LOG_FILE")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class Settings:
    """
    Main settings container.

    Aggregates all configuration sections and provides validation.
    """

    def __init__(self) -> None:
        """Initialize settings from environment variables."""
        self.backup = BackupSettings()
        self.logging = LoggingConfig()
        self._validate()

    def _validate(self) -> None:
        """Validate that the backup defaults form a usable configuration."""
        self.backup.to_backup_config()


def load_settings() -> Settings:
    """
    Load settings from environment variables.

    Returns:
        Settings: Validated settings instance

    Raises:
        ConfigurationError: If backup settings are invalid
    """
    return Settings()
