"""
Model catalog configuration.

This module lists the model identifiers known for each provider family,
the execute-mode upgrade target of the native family and the model used
for title regeneration. The catalog can be overridden from a YAML file.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class ModelCatalog(BaseModel):
    """Known models per provider family."""

    version: str = Field(default="1.0", description="Catalog version")
    gemini: list[str] = Field(
        default_factory=lambda: [
            "gemini-3-flash-preview",
            "gemini-3-pro-preview",
            "gemini-2.5-flash",
            "gemini-2.0-flash",
        ],
        description="Native SDK family",
    )
    openrouter: list[str] = Field(
        default_factory=lambda: [
            "meta-llama/llama-3.3-70b-instruct:free",
            "mistralai/mistral-small-3.1-24b-instruct:free",
            "qwen/qwen3-coder:free",
            "google/gemma-3-27b-it:free",
        ],
        description="Free-tier aggregator models",
    )
    deepseek: list[str] = Field(
        default_factory=lambda: ["deepseek-chat", "deepseek-reasoner"]
    )
    moonshot: list[str] = Field(
        default_factory=lambda: ["moonshot-v1-8k", "moonshot-v1-32k", "moonshot-v1-128k"]
    )
    execute_upgrade_model: str = Field(
        default="gemini-3-pro-preview",
        description="Native model used instead of any native model in execute mode",
    )
    title_model: str = Field(
        default="gemini-3-flash-preview", description="Model used to regenerate titles"
    )

    @field_validator("gemini", "openrouter", "deepseek", "moonshot")
    @classmethod
    def validate_model_lists(cls, v):
        return [model.strip() for model in v if model and model.strip()]

    def all_models(self) -> list[str]:
        """Every catalogued model id, native family first."""
        return [*self.gemini, *self.openrouter, *self.deepseek, *self.moonshot]

    def is_openrouter_model(self, model: str) -> bool:
        return model.lower() in {m.lower() for m in self.openrouter}


class ModelCatalogManager:
    """Loads and caches the model catalog."""

    def __init__(self):
        self._catalog: ModelCatalog | None = None

    def load_catalog(self, config_path: Path) -> ModelCatalog:
        """Load the catalog from a YAML file, falling back to defaults."""
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)

            self._catalog = ModelCatalog.model_validate(data or {})
            return self._catalog

        except FileNotFoundError:
            self._catalog = ModelCatalog()
            return self._catalog
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in model catalog: {e}") from e

    @property
    def catalog(self) -> ModelCatalog:
        """Get current catalog (defaults if not loaded)."""
        if self._catalog is None:
            self._catalog = ModelCatalog()
        return self._catalog

    def reset(self):
        """Reset the catalog manager (useful for testing)."""
        self._catalog = None


# Global catalog manager instance
model_catalog_manager = ModelCatalogManager()


def get_model_catalog() -> ModelCatalog:
    """Get the current model catalog."""
    return model_catalog_manager.catalog


def load_model_catalog(config_path: Path) -> ModelCatalog:
    """Load the model catalog from file."""
    return model_catalog_manager.load_catalog(config_path)
