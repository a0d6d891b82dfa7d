"""
CivicPulse settings.

Each concern has its own pydantic-settings section with an environment prefix
(`STORAGE_`, `GEOCODING_`, `LOG_`, `API_`, `INCIDENTS_`). A YAML file can
supply overrides for any of them.
"""

import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from civicpulse.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Application environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageConfig(BaseSettings):
    """JSON-file persistence configuration."""
    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")

    data_dir: str = "./data"
    incidents_file: str = "incidents.json"
    polls_file: str = "poll_responses.json"
    users_file: str = "users.json"
    flush_delay_seconds: float = Field(0.35, ge=0)  # debounce window

    def path_for(self, filename: str) -> Path:
        return Path(self.data_dir) / filename


class GeocodingConfig(BaseSettings):
    """Geocoding (Nominatim) configuration."""
    model_config = SettingsConfigDict(env_prefix="GEOCODING_", extra="ignore")

    enabled: bool = True
    base_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "CivicPulse/1.0"
    email: Optional[str] = None
    timeout_seconds: float = 8.0
    retry_attempts: int = Field(2, ge=1)
    cache_ttl_seconds: int = 86400  # 24 hours
    cache_max_entries: int = 2048


class SecurityConfig(BaseSettings):
    """Security configuration."""
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    secret_key: str = Field(..., validation_alias="SECRET_KEY")
    algorithm: str = Field("HS256", validation_alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    cors_origins: List[str] = Field(["*"], validation_alias="CORS_ORIGINS")

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v):
        if len(v) < 32:
            raise ValueError("Secret key must be at least 32 characters long")
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration."""
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_path: Optional[str] = None
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5
    json_format: bool = False


class APIConfig(BaseSettings):
    """API configuration."""
    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore")

    title: str = "CivicPulse API"
    version: str = "1.0.0"
    description: str = "Crowd-sourced civic incident reporting board"
    docs_url: str = "/docs"
    api_prefix: str = "/api"
    polling_recommended_ms: int = 4000


class IncidentRulesConfig(BaseSettings):
    """Incident lifecycle behaviour switches."""
    model_config = SettingsConfigDict(env_prefix="INCIDENTS_", extra="ignore")

    # Reject unknown status values instead of coercing them to "unverified".
    strict_enums: bool = False


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Core
    app_name: str = Field("CivicPulse", validation_alias="APP_NAME")
    environment: Environment = Field(Environment.DEVELOPMENT, validation_alias="ENVIRONMENT")
    debug: bool = Field(False, validation_alias="DEBUG")

    # Server
    host: str = Field("0.0.0.0", validation_alias="HOST")
    port: int = Field(5050, validation_alias="PORT")

    # Components
    storage: StorageConfig = Field(default_factory=StorageConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    incidents: IncidentRulesConfig = Field(default_factory=IncidentRulesConfig)

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, v):
        if isinstance(v, str):
            return v.lower()
        return v

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


def _read_yaml(config_file: str) -> Dict[str, Any]:
    """Settings from a YAML file; a missing file contributes nothing."""
    path = Path(config_file)
    if not path.is_file():
        logger.warning(f"Config file {config_file} not found, using environment only")
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read config file {config_file}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")
    logger.info(f"Loaded configuration overrides from {config_file}")
    return data


@lru_cache()
def get_config(config_file: Optional[str] = None) -> Config:
    """
    Build the process-wide configuration.

    Values come from the YAML file (when given), then environment variables
    and ``.env``. The result is cached; call ``load_config`` to rebuild it.

    Raises:
        ConfigurationError: If the file is unreadable or a setting is invalid
    """
    overrides = _read_yaml(config_file) if config_file else {}
    try:
        config = Config(**overrides)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False)},
        ) from e

    logger.info(f"Configuration loaded for {config.app_name} ({config.environment.value})")
    return config


def load_config(config_file: Optional[str] = None) -> Config:
    """Drop the cached configuration and build it again."""
    get_config.cache_clear()
    return get_config(config_file)
