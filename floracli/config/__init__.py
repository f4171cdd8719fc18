"""Configuration management package.

Provides immutable configuration models, defaults, YAML/environment/CLI
layering, schema validation and password encryption.
"""

from floracli.config.config_manager import ConfigManager
from floracli.config.config_models import (
    Config,
    ProvisioningConfig,
    SerialConfig,
    FlashConfig,
    FlashImage,
    LoggingConfig,
    EncryptionConfig,
    LogLevel,
    SensorType,
)

__all__ = [
    'ConfigManager',
    'Config',
    'ProvisioningConfig',
    'SerialConfig',
    'FlashConfig',
    'FlashImage',
    'LoggingConfig',
    'EncryptionConfig',
    'LogLevel',
    'SensorType',
]
