"""Core provisioning components.

This package provides the serial transport, the line reader, the prompt
table and provisioning session, device reset, the serial monitor and the
firmware flasher.
"""

from floracli.core.exceptions import (
    FloraCliError,
    ConfigurationError,
    SerialPortError,
    SerialPortBusyError,
    ConnectionTimeoutError,
    DeviceDisconnectedError,
    DeviceResetError,
    DialogTimeoutError,
    FlashToolError,
    FlashToolNotFoundError,
)
from floracli.core.serial_handler import SerialHandler, PortInfo
from floracli.core.line_reader import LineReader
from floracli.core.prompts import DialogState, PromptRule, DEFAULT_PROMPTS, match_prompt
from floracli.core.provisioning_session import (
    ProvisioningSession,
    ProvisioningResult,
    SessionOutcome,
    SentAnswer,
)
from floracli.core.device_control import pulse_reset, reset_device
from floracli.core.monitor import monitor_device
from floracli.core.flasher import FirmwareFlasher, build_command, find_esptool

__all__ = [
    'FloraCliError',
    'ConfigurationError',
    'SerialPortError',
    'SerialPortBusyError',
    'ConnectionTimeoutError',
    'DeviceDisconnectedError',
    'DeviceResetError',
    'DialogTimeoutError',
    'FlashToolError',
    'FlashToolNotFoundError',
    'SerialHandler',
    'PortInfo',
    'LineReader',
    'DialogState',
    'PromptRule',
    'DEFAULT_PROMPTS',
    'match_prompt',
    'ProvisioningSession',
    'ProvisioningResult',
    'SessionOutcome',
    'SentAnswer',
    'pulse_reset',
    'reset_device',
    'monitor_device',
    'FirmwareFlasher',
    'build_command',
    'find_esptool',
]
