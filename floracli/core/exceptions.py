"""Custom exception hierarchy for Flora CLI.

This module defines the exceptions raised by the serial transport, the
provisioning session and the firmware flasher, carrying enough context
(port, underlying error, dialog state) to report failures clearly.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from floracli.core.prompts import DialogState


class FloraCliError(Exception):
    """Base exception for all Flora CLI errors.

    All custom exceptions inherit from this base class so the command-line
    layer can report any tool-specific failure with a single except clause.
    """
    pass


class ConfigurationError(FloraCliError):
    """Required configuration is missing or invalid.

    Raised before any I/O is attempted (e.g. no ssid, no MQTT broker
    address, no serial port).
    """
    pass


class SerialPortError(FloraCliError):
    """Serial port communication error.

    Raised when serial port operations fail (open, read, write, control
    lines). Captures port identifier and underlying OS error.

    Attributes:
        port: Serial port identifier (e.g., '/dev/ttyUSB0', 'COM3')
        os_error: Original exception from pyserial or OS (if available)
    """

    def __init__(self, message: str, port: str, os_error: Optional[Exception] = None):
        super().__init__(message)
        self.port = port
        self.os_error = os_error

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.os_error:
            return f"{base_msg} (port: {self.port}, cause: {self.os_error})"
        return f"{base_msg} (port: {self.port})"


class SerialPortBusyError(SerialPortError):
    """Port is already in use by another process."""
    pass


class ConnectionTimeoutError(SerialPortError):
    """Opening the serial port timed out."""
    pass


class DeviceDisconnectedError(SerialPortError):
    """The device closed the link (end of stream).

    Usually the device rebooted or was unplugged. During the provisioning
    dialog this is an expected way for the session to end.
    """
    pass


class DeviceResetError(SerialPortError):
    """Toggling the reset control line failed."""
    pass


class DialogTimeoutError(FloraCliError):
    """The device stayed silent for too many consecutive reads.

    Attributes:
        state: Dialog state the session was in when it gave up
        idle_reads: Number of consecutive empty reads observed
    """

    def __init__(self, message: str, state: 'DialogState', idle_reads: int):
        super().__init__(message)
        self.state = state
        self.idle_reads = idle_reads

    def __str__(self) -> str:
        base_msg = super().__str__()
        return f"{base_msg} (state: {self.state.value}, idle reads: {self.idle_reads})"


class FlashToolError(FloraCliError):
    """Firmware flashing tool could not be prepared or started."""
    pass


class FlashToolNotFoundError(FlashToolError):
    """No flashing tool was configured and none was found on PATH."""

    def __init__(self, tool: str = "esptool"):
        super().__init__(f"{tool} not found")
        self.tool = tool
