"""Configuration module for the Apartment Feed."""

from .app_config import (
    APP_CONFIG,
    AppSettings,
    FilterDefaults,
    RetryConfig,
    StorageConfig,
    SessionConfig,
    get_app_settings,
    load_app_config,
)

__all__ = [
    'APP_CONFIG',
    'AppSettings',
    'FilterDefaults',
    'RetryConfig',
    'StorageConfig',
    'SessionConfig',
    'get_app_settings',
    'load_app_config',
]
