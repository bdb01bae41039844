"""
Configuration for chatdesk: application settings and the model catalog.
"""

from .model_configs import ModelCatalog, get_model_catalog, load_model_catalog
from .settings import AppSettings, config_manager, get_settings, load_config

__all__ = [
    "AppSettings",
    "ModelCatalog",
    "config_manager",
    "get_model_catalog",
    "get_settings",
    "load_config",
    "load_model_catalog",
]
