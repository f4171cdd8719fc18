"""Log data models for communication logging.

Defines the immutable record written for every serial event: lines received
from the device, answers sent to it, dialog state changes, port events and
errors.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, Optional


@dataclass(frozen=True)
class LogEntry:
    """Immutable log entry for communication logging.

    Attributes:
        timestamp: When the event occurred
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        source: Component name (SerialHandler, ProvisioningSession, ...)
        message: Human-readable message describing the event
        details: Additional structured data
        port: Serial port name
        direction: "RX" for device output, "TX" for data sent to the device
        line: Text of the line received or sent
        state: Dialog state at the time of the event
        error: Error message if applicable

    Example:
        >>> entry = LogEntry(
        ...     timestamp=datetime(2025, 1, 12, 10, 30, 15, 234000),
        ...     level="INFO",
        ...     source="ProvisioningSession",
        ...     message="Line received",
        ...     port="/dev/ttyACM0",
        ...     direction="RX",
        ...     line="enter ssid:",
        ...     state="answering"
        ... )
        >>> entry.to_string()
        '2025-01-12 10:30:15.234 | INFO    | ProvisioningSession | Line received | RX: enter ssid: | STATE: answering'
    """

    timestamp: datetime
    level: str
    source: str
    message: str
    details: Optional[Dict[str, Any]] = None

    port: Optional[str] = None
    direction: Optional[str] = None
    line: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None

    def to_string(self) -> str:
        """Format log entry as a single human-readable line.

        Format: "YYYY-MM-DD HH:MM:SS.mmm | LEVEL | SOURCE | MESSAGE" followed
        by the optional line, state and error parts.
        """
        timestamp_str = self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        base = f"{timestamp_str} | {self.level:7} | {self.source:15} | {self.message}"

        if self.line is not None:
            base += f" | {self.direction or 'LINE'}: {self.line}"
        if self.state:
            base += f" | STATE: {self.state}"
        if self.error:
            base += f" | ERROR: {self.error}"

        return base
