"""JSON Schema validation for Flora CLI configuration.

Provides the schema definition and turns jsonschema errors into messages
that name the section, the field and an example value.
"""

import copy
import re
from typing import List, Tuple, Dict, Any

import jsonschema
from jsonschema import Draft7Validator

from floracli.config.config_models import SensorType, LogLevel


class ConfigSchema:
    """Configuration schema validator using JSON Schema Draft 7.

    Example:
        >>> is_valid, errors = ConfigSchema.validate_config(config_dict)
        >>> if not is_valid:
        ...     for error in errors:
        ...         print(error)
    """

    VALID_BAUD_RATES = [9600, 19200, 38400, 57600, 115200, 230400, 460800, 921600]

    # esptool accepts these in addition to plain numbers
    _ADDRESS_PATTERN = re.compile(r'^(0x[0-9a-fA-F]+|[0-9]+)$')

    @staticmethod
    def get_schema() -> Dict[str, Any]:
        """Get the JSON Schema Draft 7 document for the configuration."""
        return {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "title": "Flora CLI Configuration",
            "description": "Configuration schema for provisioning twESP32Flora devices",
            "type": "object",
            "properties": {
                "device": {
                    "type": "object",
                    "description": "Values sent to the device during configuration",
                    "properties": {
                        "ssid": {"type": "string", "description": "Wi-Fi network name"},
                        "password": {"type": "string", "description": "Wi-Fi password"},
                        "mqtt_ip": {"type": "string", "description": "MQTT broker address"},
                        "mqtt_port": {
                            "type": "integer",
                            "description": "MQTT broker port",
                            "minimum": 1,
                            "maximum": 65535
                        },
                        "interval": {
                            "type": "integer",
                            "description": "Report interval in seconds",
                            "minimum": 1,
                            "maximum": 86400
                        },
                        "sensor_type": {
                            "type": "string",
                            "description": "Temperature and humidity sensor type",
                            "enum": [s.value for s in SensorType]
                        },
                        "has_rain_sensor": {
                            "type": "boolean",
                            "description": "Whether a rain sensor is attached"
                        }
                    },
                    "additionalProperties": False
                },
                "serial": {
                    "type": "object",
                    "description": "Serial port and dialog timing",
                    "properties": {
                        "port": {"type": "string", "description": "Serial port device"},
                        "baud_rate": {
                            "type": "integer",
                            "description": "Console baud rate",
                            "enum": ConfigSchema.VALID_BAUD_RATES
                        },
                        "read_timeout": {
                            "type": "integer",
                            "description": "Per-read timeout in seconds",
                            "minimum": 1,
                            "maximum": 3600
                        },
                        "reset_settle_ms": {"type": "integer", "minimum": 0, "maximum": 10000},
                        "boot_wait_ms": {"type": "integer", "minimum": 0, "maximum": 60000},
                        "answer_delay_ms": {"type": "integer", "minimum": 0, "maximum": 10000},
                        "reset_pulse_ms": {"type": "integer", "minimum": 1, "maximum": 10000},
                        "idle_read_limit": {
                            "type": "integer",
                            "description": "Consecutive empty reads before giving up (0 = never)",
                            "minimum": 0
                        }
                    },
                    "additionalProperties": False
                },
                "flash": {
                    "type": "object",
                    "description": "esptool invocation",
                    "properties": {
                        "esptool": {"type": "string", "description": "Path to esptool"},
                        "chip": {"type": "string", "minLength": 1},
                        "baud_rate": {
                            "type": "integer",
                            "enum": ConfigSchema.VALID_BAUD_RATES
                        },
                        "before": {"type": "string", "minLength": 1},
                        "after": {"type": "string", "minLength": 1},
                        "flash_mode": {
                            "type": "string",
                            "enum": ["qio", "qout", "dio", "dout", "keep"]
                        },
                        "flash_freq": {"type": "string", "minLength": 1},
                        "flash_size": {"type": "string", "minLength": 1},
                        "images": {
                            "type": "array",
                            "minItems": 1,
                            "items": {
                                "type": "object",
                                "properties": {
                                    "address": {"type": "string", "minLength": 1},
                                    "path": {"type": "string", "minLength": 1}
                                },
                                "required": ["address", "path"],
                                "additionalProperties": False
                            }
                        }
                    },
                    "additionalProperties": False
                },
                "logging": {
                    "type": "object",
                    "description": "Communication logging settings",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "level": {
                            "type": "string",
                            "enum": [level.value for level in LogLevel]
                        },
                        "log_to_file": {"type": "boolean"},
                        "log_to_console": {"type": "boolean"},
                        "log_file_path": {"type": ["string", "null"]},
                        "max_file_size_mb": {"type": "integer", "minimum": 1, "maximum": 1000},
                        "backup_count": {"type": "integer", "minimum": 0, "maximum": 100}
                    },
                    "additionalProperties": False
                },
                "encryption": {
                    "type": "object",
                    "description": "Encryption of the Wi-Fi password",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "key_path": {"type": ["string", "null"]}
                    },
                    "additionalProperties": False
                }
            },
            "additionalProperties": False
        }

    @staticmethod
    def validate_config(config: Dict[str, Any], strict: bool = True) -> Tuple[bool, List[str]]:
        """Validate a configuration dictionary.

        Args:
            config: Configuration dictionary to validate
            strict: If False, unknown fields are accepted

        Returns:
            Tuple of (is_valid, error_messages)
        """
        schema = ConfigSchema.get_schema()
        if not strict:
            schema = ConfigSchema._make_permissive(schema)

        validator = Draft7Validator(schema)
        errors = [ConfigSchema._format_error(error) for error in validator.iter_errors(config)]
        errors.extend(ConfigSchema._custom_validation(config))

        return len(errors) == 0, errors

    @staticmethod
    def _make_permissive(schema: Dict[str, Any]) -> Dict[str, Any]:
        """Copy of ``schema`` with every ``additionalProperties: false`` removed."""
        permissive_schema = copy.deepcopy(schema)

        def remove_additional_properties(obj):
            if isinstance(obj, dict):
                obj.pop("additionalProperties", None)
                for value in obj.values():
                    remove_additional_properties(value)

        remove_additional_properties(permissive_schema)
        return permissive_schema

    @staticmethod
    def _format_error(error: jsonschema.exceptions.ValidationError) -> str:
        """Format a validation error as "Section 's', field 'f': ...".

        Example:
            "Section 'serial', field 'baud_rate': Expected one of [9600, ...],
             got 12345. Example: baud_rate: 9600"
        """
        path_parts = list(error.path)
        if len(path_parts) == 0:
            section = "root"
            field = "configuration"
        elif len(path_parts) == 1:
            section = str(path_parts[0])
            field = "section"
        else:
            section = str(path_parts[0])
            field = ".".join(str(p) for p in path_parts[1:])

        if error.validator == "type":
            expected_type = error.validator_value
            actual_type = type(error.instance).__name__
            return (f"Section '{section}', field '{field}': Expected type {expected_type}, "
                    f"got {actual_type} (value: {error.instance}). "
                    f"Example: {field}: <{expected_type} value>")

        elif error.validator == "enum":
            expected_values = error.validator_value
            example_value = expected_values[0] if expected_values else "N/A"
            return (f"Section '{section}', field '{field}': Expected one of {expected_values}, "
                    f"got {error.instance}. Example: {field}: {example_value}")

        elif error.validator in ("minimum", "maximum"):
            op = ">=" if error.validator == "minimum" else "<="
            return (f"Section '{section}', field '{field}': Value must be {op} "
                    f"{error.validator_value}, got {error.instance}. "
                    f"Example: {field}: {error.validator_value}")

        elif error.validator == "minLength":
            return (f"Section '{section}', field '{field}': String must be at least "
                    f"{error.validator_value} characters, got {len(error.instance)}.")

        elif error.validator == "additionalProperties":
            extra_props = set(error.instance.keys()) - set(error.schema.get('properties', {}).keys())
            return (f"Section '{section}': Unknown fields {sorted(extra_props)} not allowed. "
                    f"Remove unknown fields or use permissive validation mode.")

        return f"Section '{section}', field '{field}': {error.message}"

    @staticmethod
    def _custom_validation(config: Dict[str, Any]) -> List[str]:
        """Checks that JSON Schema cannot express cleanly."""
        errors = []

        flash = config.get("flash")
        if isinstance(flash, dict):
            for index, image in enumerate(flash.get("images") or []):
                if not isinstance(image, dict):
                    continue
                address = image.get("address")
                if isinstance(address, str) and not ConfigSchema.validate_address(address):
                    errors.append(
                        f"Section 'flash', field 'images.{index}.address': '{address}' is not "
                        f"a flash offset. Example: address: '0x10000'"
                    )

        logging_section = config.get("logging")
        if isinstance(logging_section, dict):
            path = logging_section.get("log_file_path")
            if path is not None and not ConfigSchema.validate_path(path):
                errors.append(
                    f"Section 'logging', field 'log_file_path': Path '{path}' "
                    f"contains invalid characters. Example: log_file_path: './logs/comm.log'"
                )

        return errors

    @staticmethod
    def validate_address(address: str) -> bool:
        """True for decimal or 0x-prefixed hexadecimal flash offsets.

        Example:
            >>> ConfigSchema.validate_address("0x8000")
            True
            >>> ConfigSchema.validate_address("8k")
            False
        """
        return bool(ConfigSchema._ADDRESS_PATTERN.match(address))

    @staticmethod
    def validate_path(path: str) -> bool:
        """Reject empty paths and paths containing control characters."""
        if not path or path.strip() == "":
            return False
        return not any(char in path for char in ('\0', '\r', '\n'))
