"""Flora CLI - provisioning tool for twESP32Flora sensor devices.

This package provides:
- Serial configuration dialog driver (Wi-Fi, MQTT, sensor setup and calibration)
- Device reset and serial monitor
- Firmware flashing through esptool
- Layered configuration with validation and password encryption
"""

from floracli.core import (
    SerialHandler,
    PortInfo,
    LineReader,
    DialogState,
    ProvisioningSession,
    ProvisioningResult,
    SessionOutcome,
    FirmwareFlasher,
    FloraCliError,
    ConfigurationError,
    SerialPortError,
    DeviceDisconnectedError,
)
from floracli.config import ConfigManager, Config, ProvisioningConfig

__version__ = "0.1.0"

__all__ = [
    "SerialHandler",
    "PortInfo",
    "LineReader",
    "DialogState",
    "ProvisioningSession",
    "ProvisioningResult",
    "SessionOutcome",
    "FirmwareFlasher",
    "FloraCliError",
    "ConfigurationError",
    "SerialPortError",
    "DeviceDisconnectedError",
    "ConfigManager",
    "Config",
    "ProvisioningConfig",
]
