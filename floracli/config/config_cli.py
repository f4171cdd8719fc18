"""Configuration management CLI commands.

Each command prints its result and returns a process exit code.
"""

from pathlib import Path
from typing import Optional
import json
import sys

import yaml

from floracli.config.config_encryption import ConfigEncryption, ConfigEncryptionError
from floracli.config.config_manager import ConfigManager
from floracli.config.config_models import EncryptionConfig
from floracli.config.config_schema import ConfigSchema
from floracli.config.defaults import get_default_config
from floracli.core.exceptions import ConfigurationError

_SECTION_TITLES = (
    ("device", "Device Settings"),
    ("serial", "Serial Settings"),
    ("flash", "Flash Settings"),
    ("logging", "Logging Settings"),
    ("encryption", "Encryption Settings"),
)


def show_config_command(manager: ConfigManager, mask_sensitive: bool = True) -> int:
    """Display the loaded configuration and where each value came from."""
    try:
        config_dict = manager.show_config(mask_sensitive=mask_sensitive)
    except RuntimeError as e:
        print(f"Error showing configuration: {e}", file=sys.stderr)
        return 1

    print("\n" + "=" * 70)
    print("  Current Configuration")
    if manager.loaded_path:
        print(f"  File: {manager.loaded_path}")
    print("=" * 70)

    for key, title in _SECTION_TITLES:
        print(f"\n{title}:")
        for name, entry in config_dict.get(key, {}).items():
            print(f"  {name}: {entry['value']} (source: {entry['source']})")

    print()
    return 0


def validate_config_command(config_path: Optional[str] = None,
                            manager: Optional[ConfigManager] = None) -> int:
    """Validate a config file, or the loaded configuration, strictly.

    Returns:
        0 if valid, 1 if invalid or unreadable
    """
    try:
        if config_path:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_dict = yaml.safe_load(f) or {}
            _, errors = ConfigSchema.validate_config(config_dict, strict=True)
        elif manager is not None:
            errors = manager.validate()
        else:
            print("Error: nothing to validate", file=sys.stderr)
            return 1
    except FileNotFoundError:
        print(f"Error: Configuration file not found: {config_path}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in {config_path}: {e}", file=sys.stderr)
        return 1

    print("\n" + "=" * 70)
    print("  Configuration Validation")
    print("=" * 70)

    if not errors:
        print("\n[OK] Configuration is valid\n")
        return 0

    print(f"\n[ERROR] Configuration has {len(errors)} error(s):\n")
    for i, error in enumerate(errors, 1):
        print(f"{i}. {error}")
    print()
    return 1


def generate_config_command(output_path: str = "./flora.yaml", force: bool = False) -> int:
    """Write the default configuration to a YAML file.

    Returns:
        0 on success, 1 if the file exists (without ``force``) or cannot be written
    """
    output_file = Path(output_path)
    if output_file.exists() and not force:
        print(f"Error: File already exists: {output_path}", file=sys.stderr)
        print("Use --force to overwrite", file=sys.stderr)
        return 1

    try:
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write("# Flora CLI Configuration\n")
            f.write("# Fill in device.ssid, device.password and device.mqtt_ip\n\n")
            yaml.safe_dump(get_default_config().to_dict(), f,
                           default_flow_style=False, sort_keys=False)
    except OSError as e:
        print(f"Error writing configuration: {e}", file=sys.stderr)
        return 1

    print(f"\n[OK] Default configuration generated: {output_file}")
    print("\nNext steps:")
    print("  1. Fill in the device section")
    print("  2. Run 'flora-cli --validate-config' to validate")
    print()
    return 0


def encrypt_value_command(value: str, encryption_config: EncryptionConfig) -> int:
    """Print the encrypted form of ``value`` for use as device.password."""
    key_path = Path(encryption_config.key_path) if encryption_config.key_path else None
    try:
        encryption = ConfigEncryption(enabled=True, key_path=key_path)
        encrypted = encryption.encrypt_value(value)
    except ConfigEncryptionError as e:
        print(f"Error encrypting value: {e}", file=sys.stderr)
        return 1

    print(encrypted)
    print(f"\nKey file: {encryption.key_path}", file=sys.stderr)
    print("Set encryption.enabled: true in the config file to use it.", file=sys.stderr)
    return 0


def config_schema_command() -> int:
    """Print the configuration JSON schema."""
    print(json.dumps(ConfigSchema.get_schema(), indent=2))
    return 0


def load_config_or_report(manager: ConfigManager, overrides=None):
    """Load configuration, printing the error and returning None on failure."""
    try:
        return manager.load(overrides)
    except (ConfigurationError, ConfigEncryptionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return None
