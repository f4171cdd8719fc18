"""Configuration loading for Flora CLI.

Builds one immutable Config from layered sources, lowest precedence first:

1. Built-in defaults
2. YAML config file (``--config``, ``./flora.yaml`` or ``~/.flora-cli/config.yaml``)
3. Environment variables ``FLORA_CLI_<SECTION>_<KEY>``
4. Command-line overrides

The result is validated against the JSON schema and encrypted values are
decrypted before the Config is constructed.
"""

from copy import deepcopy
from dataclasses import fields
from pathlib import Path
from typing import Optional, Dict, Any, List, Mapping
import os

import yaml

from floracli.config.config_models import (
    Config,
    ProvisioningConfig,
    SerialConfig,
    FlashConfig,
    FlashImage,
    LoggingConfig,
    EncryptionConfig,
    LogLevel,
)
from floracli.config.defaults import get_default_config
from floracli.config.config_schema import ConfigSchema
from floracli.config.config_encryption import ConfigEncryption
from floracli.core.exceptions import ConfigurationError


class ConfigManager:
    """Loads, validates and describes the application configuration.

    Example:
        >>> manager = ConfigManager(config_path=Path("flora.yaml"))
        >>> config = manager.load({"device": {"ssid": "home"}})
        >>> config.device.ssid
        'home'
    """

    ENV_PREFIX = "FLORA_CLI_"

    def __init__(self,
                 config_path: Optional[Path] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """Initialize manager.

        Args:
            config_path: Explicit config file; searched for when None
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_path = Path(config_path).expanduser() if config_path else None
        self.environ = environ if environ is not None else os.environ
        self._config: Optional[Config] = None
        self._config_source: Dict[str, str] = {}
        self._loaded_path: Optional[Path] = None

    @property
    def loaded_path(self) -> Optional[Path]:
        """Config file that contributed to the current configuration."""
        return self._loaded_path

    def load(self,
             overrides: Optional[Dict[str, Any]] = None,
             skip_validation: bool = False) -> Config:
        """Build the configuration from all sources.

        Args:
            overrides: Section dictionaries from the command line
            skip_validation: Skip schema validation

        Returns:
            Config: Frozen configuration

        Raises:
            ConfigurationError: Config file unreadable or validation failed
            ConfigEncryptionError: Encrypted value cannot be decrypted
        """
        self._config_source = {}

        config_dict = get_default_config().to_dict()
        self._mark_source(config_dict, "default")

        path = self.config_path or self._search_config_paths()
        self._loaded_path = None
        if path is not None:
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            try:
                file_config = self._load_from_file(path)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config from {path}: {e}")
            config_dict = self._merge_configs(config_dict, file_config)
            self._mark_source(file_config, "file")
            self._loaded_path = path

        env_overrides = self._env_overrides(config_dict)
        if env_overrides:
            config_dict = self._merge_configs(config_dict, env_overrides)
            self._mark_source(env_overrides, "env")

        if overrides:
            cleaned = {
                section: {k: v for k, v in values.items() if v is not None}
                for section, values in overrides.items()
            }
            config_dict = self._merge_configs(config_dict, cleaned)
            self._mark_source(cleaned, "cli")

        if not skip_validation:
            is_valid, errors = ConfigSchema.validate_config(config_dict, strict=False)
            if not is_valid:
                raise ConfigurationError(
                    "Configuration validation failed:\n" +
                    "\n".join(f"  - {error}" for error in errors)
                )

        encryption = config_dict.get('encryption', {})
        if encryption.get('enabled'):
            key_path = encryption.get('key_path')
            decryptor = ConfigEncryption(enabled=True, key_path=Path(key_path) if key_path else None)
            config_dict = decryptor.decrypt_sensitive_fields(config_dict)

        self._config = self._dict_to_config(config_dict)
        return self._config

    def get_config(self) -> Config:
        """Return the configuration built by the last ``load()``.

        Raises:
            RuntimeError: If ``load()`` has not been called
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def validate(self) -> List[str]:
        """Validate the loaded configuration strictly; returns error messages."""
        if self._config is None:
            return ["Configuration not loaded"]
        _, errors = ConfigSchema.validate_config(self._config.to_dict(), strict=True)
        return errors

    def show_config(self, mask_sensitive: bool = True) -> Dict[str, Any]:
        """Current configuration with the source of each value.

        Example:
            {
                "device": {
                    "ssid": {"value": "home", "source": "cli"},
                    "password": {"value": "****word", "source": "file"}
                }
            }
        """
        config = self.get_config()
        if mask_sensitive:
            config = config.mask_sensitive()

        result: Dict[str, Any] = {}
        for section, section_values in config.to_dict().items():
            result[section] = {
                key: {
                    "value": value,
                    "source": self._config_source.get(f"{section}.{key}", "unknown")
                }
                for key, value in section_values.items()
            }
        return result

    @staticmethod
    def _search_config_paths() -> Optional[Path]:
        """Search for a config file in the current and home directories."""
        search_paths = [
            Path("./flora.yaml"),
            Path.home() / ".flora-cli" / "config.yaml"
        ]
        for path in search_paths:
            if path.is_file():
                return path
        return None

    @staticmethod
    def _load_from_file(path: Path) -> Dict[str, Any]:
        """Load a YAML config file; an empty file yields an empty dict."""
        with open(path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            return {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return config_dict

    def _env_overrides(self, current: Dict[str, Any]) -> Dict[str, Any]:
        """Collect FLORA_CLI_<SECTION>_<KEY> variables.

        Examples:
            FLORA_CLI_DEVICE_SSID=home
            FLORA_CLI_DEVICE_MQTT_PORT=1884
            FLORA_CLI_SERIAL_PORT=/dev/ttyACM0
            FLORA_CLI_DEVICE_HAS_RAIN_SENSOR=yes

        Values are converted to the type of the value they replace.
        """
        overrides: Dict[str, Any] = {}

        for env_name, env_value in self.environ.items():
            if not env_name.startswith(self.ENV_PREFIX):
                continue

            parts = env_name[len(self.ENV_PREFIX):].lower().split('_', 1)
            if len(parts) != 2:
                continue
            section, key = parts

            section_values = current.get(section)
            existing = section_values.get(key) if isinstance(section_values, dict) else None
            overrides.setdefault(section, {})[key] = self._parse_env_value(env_value, existing)

        return overrides

    @staticmethod
    def _parse_env_value(value: str, existing: Any = None) -> Any:
        """Convert an environment string to the type of ``existing``."""
        if isinstance(existing, bool):
            lowered = value.lower()
            if lowered in ('true', '1', 'yes', 'on'):
                return True
            if lowered in ('false', '0', 'no', 'off'):
                return False
            return value
        if isinstance(existing, int):
            try:
                return int(value)
            except ValueError:
                return value
        return value

    @staticmethod
    def _merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge section dictionaries; ``override`` wins key by key."""
        merged = deepcopy(base)

        for section, section_values in override.items():
            if isinstance(section_values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(section_values)
            else:
                merged[section] = section_values

        return merged

    def _mark_source(self, config: Dict[str, Any], source: str) -> None:
        for section, section_values in config.items():
            if isinstance(section_values, dict):
                for key in section_values.keys():
                    self._config_source[f"{section}.{key}"] = source

    @staticmethod
    def _dict_to_config(config_dict: Dict[str, Any]) -> Config:
        """Convert a validated configuration dictionary to Config."""
        def section(cls, name: str) -> Dict[str, Any]:
            values = config_dict.get(name) or {}
            known = {f.name for f in fields(cls)}
            return {k: v for k, v in values.items() if k in known}

        flash_values = section(FlashConfig, 'flash')
        if 'images' in flash_values:
            flash_values['images'] = [
                FlashImage(address=str(image['address']), path=image['path'])
                for image in flash_values['images']
            ]

        logging_values = section(LoggingConfig, 'logging')
        if 'level' in logging_values:
            try:
                logging_values['level'] = LogLevel(str(logging_values['level']).upper())
            except ValueError:
                logging_values['level'] = LogLevel.INFO

        return Config(
            device=ProvisioningConfig(**section(ProvisioningConfig, 'device')),
            serial=SerialConfig(**section(SerialConfig, 'serial')),
            flash=FlashConfig(**flash_values),
            logging=LoggingConfig(**logging_values),
            encryption=EncryptionConfig(**section(EncryptionConfig, 'encryption'))
        )
