"""
Configuration management for chatdesk.

This module implements hierarchical configuration loading with validation,
following the pattern: overrides > env vars > user config file > defaults.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class EndpointsConfig(BaseModel):
    """Base URLs of the OpenAI-compatible providers."""

    deepseek_base_url: str = Field(
        default="https://api.deepseek.com", description="DeepSeek API base URL"
    )
    moonshot_base_url: str = Field(
        default="https://api.moonshot.cn/v1", description="Moonshot API base URL"
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )

    @field_validator("deepseek_base_url", "moonshot_base_url", "openrouter_base_url")
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("Endpoint must be an http(s) URL")
        return v.rstrip("/")


class APIConfig(BaseModel):
    """API configuration."""

    timeout: int = Field(
        default=60, ge=1, le=600, description="Connect/read timeout in seconds"
    )
    retries: int = Field(
        default=2, ge=0, le=10, description="Retries while opening a stream"
    )
    base_delay: float = Field(
        default=1.0, ge=0.0, description="Initial backoff delay in seconds"
    )
    max_delay: float = Field(
        default=30.0, ge=1.0, description="Maximum backoff delay in seconds"
    )


class GenerationConfig(BaseModel):
    """Knobs applied to every generation."""

    default_model: str = Field(
        default="gemini-3-flash-preview", description="Model for new sessions"
    )
    thinking_budget: int = Field(
        default=16000, ge=0, description="Reasoning budget when thinking is toggled on"
    )
    execute_thinking_budget: int = Field(
        default=32768, ge=0, description="Reasoning budget in execute mode"
    )
    title_max_length: int = Field(
        default=40, ge=8, le=200, description="Max length of a provisional title"
    )
    title_history_window: int = Field(
        default=8, ge=1, le=50, description="Turns sent when regenerating a title"
    )

    @model_validator(mode="after")
    def validate_budgets(self):
        if self.execute_thinking_budget < self.thinking_budget:
            raise ValueError(
                "execute_thinking_budget must not be lower than thinking_budget"
            )
        return self


class ProfileConfig(BaseModel):
    """User profile injected into the system instruction."""

    user_name: str = Field(default="User", description="How the model addresses the user")
    workspace_name: str = Field(default="Workspace", description="Workspace display name")
    base_knowledge: str = Field(
        default="", description="Knowledge prepended to every system instruction"
    )

    @field_validator("user_name")
    @classmethod
    def validate_user_name(cls, v):
        if not v or not v.strip():
            raise ValueError("User name cannot be empty")
        return v.strip()


class StorageConfig(BaseModel):
    """Key-value persistence configuration."""

    database_path: str = Field(
        default="data/chatdesk.db", description="SQLite database file path"
    )
    encryption_enabled: bool = Field(
        default=False, description="Encrypt stored values"
    )
    encryption_key: str | None = Field(
        default=None, description="Master key for value encryption", repr=False
    )


class AppSettings(BaseSettings):
    """Main application settings using environment variables."""

    app_name: str = Field(default="chatdesk", description="Application name")
    environment: str = Field(
        default="development",
        description="Environment (development/staging/production)",
    )
    log_level: str = Field(default="INFO", description="Logging level")

    # API Keys
    gemini_api_key: str | None = Field(
        default=None, description="Google Gemini API key", repr=False
    )
    openrouter_api_key: str | None = Field(
        default=None, description="OpenRouter API key", repr=False
    )
    deepseek_api_key: str | None = Field(
        default=None, description="DeepSeek API key", repr=False
    )
    moonshot_api_key: str | None = Field(
        default=None, description="Moonshot API key", repr=False
    )

    # Configuration sections
    endpoints: EndpointsConfig = Field(default_factory=EndpointsConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        valid_environments = {"development", "staging", "production"}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_encryption_key(self):
        """Validate the encryption key is present when encryption is enabled."""
        if (
            self.storage.encryption_enabled
            and not self.storage.encryption_key
            and self.environment == "production"
        ):
            raise ValueError(
                "Storage encryption key is required when encryption is enabled in production"
            )

        return self

    def get_api_key(self, provider: str) -> str | None:
        """Get API key for a provider family ("gemini", "deepseek", ...)."""
        key = {
            "gemini": self.gemini_api_key,
            "google": self.gemini_api_key,
            "openrouter": self.openrouter_api_key,
            "deepseek": self.deepseek_api_key,
            "moonshot": self.moonshot_api_key,
        }.get(provider.lower())
        # empty strings from .env files count as unset
        return key or None

    def has_api_key(self, provider: str) -> bool:
        """Check if API key is configured for provider."""
        return self.get_api_key(provider) is not None

    def get_base_url(self, provider: str) -> str | None:
        """Get the REST endpoint for an OpenAI-compatible provider."""
        return {
            "deepseek": self.endpoints.deepseek_base_url,
            "moonshot": self.endpoints.moonshot_base_url,
            "openrouter": self.endpoints.openrouter_base_url,
        }.get(provider.lower())

    def get_data_path(self) -> Path:
        """Get full path of the storage database."""
        return Path(self.storage.database_path)


class ConfigurationManager:
    """Manages hierarchical configuration loading and validation."""

    def __init__(self):
        self._settings: AppSettings | None = None
        self._user_config: dict[str, Any] = {}

    def load_configuration(
        self,
        config_path: Path | None = None,
        override_env: dict[str, str] | None = None,
    ) -> AppSettings:
        """
        Load configuration with hierarchy: override > env vars > user config > defaults.

        Args:
            config_path: Path to user configuration file
            override_env: Environment variable overrides

        Returns:
            Validated AppSettings instance
        """
        if config_path and config_path.exists():
            self._user_config = self._load_yaml_config(config_path)

        if override_env:
            for key, value in override_env.items():
                os.environ[key] = value

        # Init kwargs beat env vars in pydantic-settings, so only pass the file
        # values that the environment does not override.
        init_kwargs = {
            key: value
            for key, value in self._user_config.items()
            if key.upper() not in os.environ
        }

        self._settings = AppSettings(**init_kwargs)
        logger.debug(
            f"Loaded configuration (environment={self._settings.environment}, "
            f"file={'yes' if self._user_config else 'no'})"
        )
        return self._settings

    def _load_yaml_config(self, config_path: Path) -> dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
                return config or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML configuration: {e}") from e
        except FileNotFoundError:
            return {}

    @property
    def settings(self) -> AppSettings:
        """Get current settings (load default if not loaded)."""
        if self._settings is None:
            self._settings = self.load_configuration()
        return self._settings

    def reset(self):
        """Reset the configuration manager (useful for testing)."""
        self._settings = None
        self._user_config = {}

    def update_setting(self, path: str, value: Any):
        """Update a specific setting using dot notation (e.g., 'profile.user_name')."""
        if not self._settings:
            raise ValueError("Configuration not loaded")

        parts = path.split(".")
        obj = self._settings

        for part in parts[:-1]:
            obj = getattr(obj, part)

        setattr(obj, parts[-1], value)

    def export_config_template(self, output_path: Path):
        """Export a configuration template file."""
        template = {
            "environment": "development",
            "log_level": "INFO",
            "endpoints": EndpointsConfig().model_dump(),
            "api": {"timeout": 60, "retries": 2},
            "generation": {
                "default_model": "gemini-3-flash-preview",
                "thinking_budget": 16000,
                "execute_thinking_budget": 32768,
                "title_max_length": 40,
            },
            "profile": {"user_name": "User", "base_knowledge": ""},
            "storage": {"database_path": "data/chatdesk.db", "encryption_enabled": False},
        }

        with open(output_path, "w", encoding="utf-8") as f:
            yaml.dump(template, f, default_flow_style=False, indent=2)


# Global configuration manager instance
config_manager = ConfigurationManager()


def get_settings() -> AppSettings:
    """Get the current application settings."""
    return config_manager.settings


def load_config(config_path: Path | None = None) -> AppSettings:
    """Load configuration from file and environment."""
    return config_manager.load_configuration(config_path)
