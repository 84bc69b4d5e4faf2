"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PatternLibraryConfig(BaseSettings):
    """Pattern rule files.

    Empty paths resolve to the YAML bundled in ``freight_extract/resources``.
    """

    patterns_file: str = ""
    sender_categories_file: str = ""


class ConfigProviderConfig(BaseSettings):
    """Sender extraction configuration lookup."""

    cache_ttl_seconds: float = 300.0
    rules_file: str = ""
    fallback_category: str = "other"

    @field_validator("cache_ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: float) -> float:
        """Validate TTL is not negative."""
        if v < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        return v


class ValidationConfig(BaseSettings):
    """Candidate scanning and validation settings."""

    context_window: int = 30
    date_min_year: int = 2020
    date_max_year: int = 2030
    subject_boost: int = 3
    apply_confidence_thresholds: bool = False

    @field_validator("context_window")
    @classmethod
    def validate_context_window(cls, v: int) -> int:
        """Validate context window is positive."""
        if v <= 0:
            raise ValueError("context_window must be positive")
        return v


class DocumentExtractionConfig(BaseSettings):
    """Schema-driven document extraction settings."""

    schemas_file: str = ""
    extract_parties: bool = True
    extract_tables: bool = True
    min_confidence: float = 0.5

    @field_validator("min_confidence")
    @classmethod
    def validate_min_confidence(cls, v: float) -> float:
        """Validate min_confidence is between 0 and 1."""
        if not 0 <= v <= 1:
            raise ValueError("min_confidence must be between 0 and 1")
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "text"] = "text"
    file: str | None = None
    max_size_mb: int = 10
    backup_count: int = 3


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
        env_prefix="FREIGHT_",
    )

    patterns: PatternLibraryConfig = Field(default_factory=PatternLibraryConfig)
    config_provider: ConfigProviderConfig = Field(default_factory=ConfigProviderConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    documents: DocumentExtractionConfig = Field(default_factory=DocumentExtractionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts, with override taking precedence."""
        merged: Dict[str, Any] = dict(base)
        for key, value in override.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            ValueError: If the YAML root is not a mapping
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        # Only non-default env values override YAML.
        env_overrides = cls().model_dump(exclude_defaults=True)
        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    def validate_config(self) -> None:
        """Validate cross-field settings and referenced files.

        Raises:
            ValueError: If configuration is invalid
            FileNotFoundError: If an explicitly configured rules file is missing
        """
        if self.validation.date_min_year > self.validation.date_max_year:
            raise ValueError(
                f"date_min_year ({self.validation.date_min_year}) must not exceed "
                f"date_max_year ({self.validation.date_max_year})"
            )

        for path_value in (
            self.patterns.patterns_file,
            self.patterns.sender_categories_file,
            self.config_provider.rules_file,
            self.documents.schemas_file,
        ):
            if path_value and not Path(path_value).exists():
                raise FileNotFoundError(f"Configured rules file not found: {path_value}")


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get global configuration instance.

    Returns:
        Global Config instance

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(yaml_path: str | Path = "config/config.yaml") -> Config:
    """Load and validate configuration.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        Loaded and validated Config instance
    """
    global _config
    _config = Config.from_yaml(yaml_path)
    _config.validate_config()
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
