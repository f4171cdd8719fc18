"""Serial port I/O handler for device provisioning.

This module provides the byte-level serial transport used by the
provisioning session, the monitor and the reset command. It wraps pyserial
and converts its exceptions into the Flora CLI exception hierarchy.
"""

from dataclasses import dataclass
from typing import List, Optional, TYPE_CHECKING
import threading
import time

import serial
from serial.tools import list_ports

from floracli.core.exceptions import (
    SerialPortError,
    SerialPortBusyError,
    ConnectionTimeoutError,
    DeviceDisconnectedError,
)

# Avoid circular import for type hints
if TYPE_CHECKING:
    from floracli.logging.communication_logger import CommunicationLogger


# Fragments of pyserial error messages that mean the other end went away
_DISCONNECT_MARKERS = (
    'returned no data',
    'device disconnected',
    'no such device',
    'input/output error',
)


@dataclass
class PortInfo:
    """Serial port information from discovery.

    Attributes:
        device: Port device path (e.g., '/dev/ttyUSB0', 'COM3')
        description: Human-readable port description
        hwid: Hardware identifier string
        vid: USB vendor id as 4-digit hex, or None for non-USB ports
        pid: USB product id as 4-digit hex, or None for non-USB ports
        serial_number: USB serial number, if reported
    """
    device: str
    description: str
    hwid: str
    vid: Optional[str] = None
    pid: Optional[str] = None
    serial_number: Optional[str] = None

    @property
    def is_usb(self) -> bool:
        """True when the port belongs to a USB adapter."""
        return self.vid is not None

    def summary(self) -> str:
        """One-line listing: ``device (VID/PID:SERIAL)``."""
        if self.is_usb:
            return f"{self.device} ({self.vid}/{self.pid}:{self.serial_number or ''})"
        return f"{self.device} ({self.description})"


class SerialHandler:
    """Manages the serial connection lifecycle and raw byte I/O.

    The handler is opened with DTR and RTS asserted so that a subsequent
    DTR pulse resets the ESP32. Reads are byte oriented and return an empty
    bytes object when the read timeout elapses.

    Example:
        >>> with SerialHandler('/dev/ttyUSB0') as handler:
        ...     handler.set_dtr(False)
        ...     handler.set_dtr(True)
        ...     handler.set_read_timeout(60)
        ...     data = handler.read(1)
        ...     handler.write(b'myssid\\n')
    """

    def __init__(self,
                 port: str,
                 baud_rate: int = 115200,
                 timeout: Optional[float] = None,
                 dtr: bool = True,
                 rts: bool = True,
                 logger: Optional['CommunicationLogger'] = None):
        """Initialize handler with port configuration.

        Args:
            port: Serial port device path
            baud_rate: Baud rate (default 115200)
            timeout: Read timeout in seconds, None blocks (default None)
            dtr: Initial DTR level applied when the port opens
            rts: Initial RTS level applied when the port opens
            logger: Optional CommunicationLogger for port events
        """
        self.port = port
        self.baud_rate = baud_rate
        self.timeout = timeout
        self.dtr = dtr
        self.rts = rts
        self.logger = logger
        self._serial: Optional[serial.Serial] = None
        self._lock = threading.Lock()
        self._open_time: Optional[float] = None

    def open(self) -> None:
        """Open the serial port with the configured initial line states.

        Raises:
            SerialPortError: Port doesn't exist or permission denied
            SerialPortBusyError: Port already in use
            ConnectionTimeoutError: Open timeout exceeded
        """
        with self._lock:
            if self._serial is not None and self._serial.is_open:
                return

            try:
                # Configure before opening so DTR/RTS are applied on open
                port = serial.Serial()
                port.port = self.port
                port.baudrate = self.baud_rate
                port.timeout = self.timeout
                port.dtr = self.dtr
                port.rts = self.rts
                port.open()
                self._serial = port
                self._open_time = time.time()

                if self.logger:
                    self.logger.log_port_event(
                        event="Port opened",
                        port=self.port,
                        details={
                            "baud_rate": self.baud_rate,
                            "timeout": self.timeout,
                            "dtr": self.dtr,
                            "rts": self.rts,
                        },
                        level="INFO"
                    )

            except serial.SerialException as e:
                error_msg = str(e).lower()

                if self.logger:
                    self.logger.log_error(
                        source="SerialHandler",
                        error=f"Failed to open port: {e}",
                        details={"port": self.port, "error_type": type(e).__name__}
                    )

                if 'permission denied' in error_msg or 'access denied' in error_msg:
                    raise SerialPortError(
                        f"Permission denied accessing port {self.port}",
                        self.port,
                        e
                    )
                elif 'busy' in error_msg or 'in use' in error_msg:
                    raise SerialPortBusyError(
                        f"Port {self.port} is already in use",
                        self.port,
                        e
                    )
                elif 'timeout' in error_msg:
                    raise ConnectionTimeoutError(
                        f"Timeout opening port {self.port}",
                        self.port,
                        e
                    )
                else:
                    raise SerialPortError(
                        f"Failed to open port {self.port}: {e}",
                        self.port,
                        e
                    )
            except (OSError, ValueError) as e:
                if self.logger:
                    self.logger.log_error(
                        source="SerialHandler",
                        error=f"Unexpected error opening port: {e}",
                        details={"port": self.port, "error_type": type(e).__name__}
                    )

                raise SerialPortError(
                    f"Unexpected error opening port {self.port}: {e}",
                    self.port,
                    e
                )

    def close(self) -> None:
        """Close serial port and release resources.

        Safe to call multiple times; does nothing if port is already closed.
        """
        with self._lock:
            if self._serial is not None and self._serial.is_open:
                try:
                    self._serial.close()

                    if self.logger:
                        session_duration = None
                        if self._open_time:
                            session_duration = time.time() - self._open_time

                        self.logger.log_port_event(
                            event="Port closed",
                            port=self.port,
                            details={
                                "session_duration_seconds": session_duration
                            } if session_duration else None,
                            level="INFO"
                        )
                except (serial.SerialException, OSError) as e:
                    if self.logger:
                        self.logger.log_error(
                            source="SerialHandler",
                            error=f"Error closing port: {e}",
                            details={"port": self.port}
                        )
                finally:
                    self._open_time = None

    def set_dtr(self, level: bool) -> None:
        """Drive the DTR control line.

        Raises:
            SerialPortError: Port not open or the line could not be set
        """
        with self._lock:
            port = self._require_open("set DTR on")
            try:
                port.dtr = level
            except (serial.SerialException, OSError) as e:
                raise SerialPortError(
                    f"Failed to set DTR on port {self.port}: {e}",
                    self.port,
                    e
                )

    def set_rts(self, level: bool) -> None:
        """Drive the RTS control line.

        Raises:
            SerialPortError: Port not open or the line could not be set
        """
        with self._lock:
            port = self._require_open("set RTS on")
            try:
                port.rts = level
            except (serial.SerialException, OSError) as e:
                raise SerialPortError(
                    f"Failed to set RTS on port {self.port}: {e}",
                    self.port,
                    e
                )

    def set_read_timeout(self, timeout: Optional[float]) -> None:
        """Change the per-read timeout of the open port.

        Args:
            timeout: Seconds to wait for data; None blocks forever
        """
        with self._lock:
            port = self._require_open("set timeout on")
            try:
                port.timeout = timeout
                self.timeout = timeout
            except (serial.SerialException, ValueError) as e:
                raise SerialPortError(
                    f"Failed to set read timeout on port {self.port}: {e}",
                    self.port,
                    e
                )

    def read(self, size: int = 1) -> bytes:
        """Read up to ``size`` bytes.

        Returns:
            The bytes read; empty when the read timeout elapsed with no data

        Raises:
            DeviceDisconnectedError: The device closed the link
            SerialPortError: Port not open or read failed
        """
        with self._lock:
            port = self._require_open("read from")
            try:
                return port.read(size)
            except (serial.SerialException, OSError) as e:
                if any(marker in str(e).lower() for marker in _DISCONNECT_MARKERS):
                    raise DeviceDisconnectedError(
                        f"Device disconnected from port {self.port}",
                        self.port,
                        e
                    )
                raise SerialPortError(
                    f"Failed to read from port {self.port}: {e}",
                    self.port,
                    e
                )

    def write(self, data: bytes) -> int:
        """Write raw bytes to the serial port and flush.

        Returns:
            Number of bytes written

        Raises:
            SerialPortError: Port not open or write failed
        """
        with self._lock:
            port = self._require_open("write to")
            try:
                bytes_written = port.write(data)
                port.flush()
                return bytes_written
            except (serial.SerialException, OSError) as e:
                raise SerialPortError(
                    f"Failed to write to port {self.port}: {e}",
                    self.port,
                    e
                )

    def is_connected(self) -> bool:
        """Check if port is currently open."""
        with self._lock:
            return self._serial is not None and self._serial.is_open

    def _require_open(self, action: str) -> serial.Serial:
        """Return the open pyserial port. Caller must hold self._lock."""
        if self._serial is None or not self._serial.is_open:
            raise SerialPortError(
                f"Cannot {action} closed port",
                self.port,
                None
            )
        return self._serial

    @staticmethod
    def discover_ports(usb_only: bool = True) -> List[PortInfo]:
        """Enumerate available serial ports.

        Args:
            usb_only: Only report USB adapters (default True)

        Returns:
            List of PortInfo objects

        Example:
            >>> for port in SerialHandler.discover_ports():
            ...     print(port.summary())
            /dev/ttyACM0 (303A/1001:F4:12:FA:6B:2C:10)
        """
        ports = []
        for port_info in list_ports.comports():
            vid = f"{port_info.vid:04X}" if port_info.vid is not None else None
            pid = f"{port_info.pid:04X}" if port_info.pid is not None else None
            if usb_only and vid is None:
                continue
            ports.append(PortInfo(
                device=port_info.device,
                description=port_info.description or "Unknown",
                hwid=port_info.hwid or "Unknown",
                vid=vid,
                pid=pid,
                serial_number=port_info.serial_number
            ))
        return ports

    def __enter__(self):
        """Context manager entry: open port."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit: close port."""
        self.close()
        return False

    def __repr__(self) -> str:
        status = "open" if self.is_connected() else "closed"
        return f"SerialHandler(port='{self.port}', baud={self.baud_rate}, status={status})"
