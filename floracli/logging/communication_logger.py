"""Communication logger for serial provisioning sessions.

This module provides the CommunicationLogger class, which records the
traffic between Flora CLI and the device: port events, lines received,
answers sent and dialog state changes. Entries go to a rotating file, the
console (stderr), or both, filtered by log level.
"""

from datetime import datetime
from threading import Lock
from typing import Optional, Dict, Any, Union
import sys

from floracli.logging.log_models import LogEntry
from floracli.logging.file_handler import FileHandler
from floracli.config.config_models import LogLevel, LoggingConfig


class CommunicationLogger:
    """Central coordinator for communication logging.

    Attributes:
        log_level: Current log level name (DEBUG, INFO, WARNING, ERROR)
        enable_file: Whether file logging is enabled
        enable_console: Whether console logging is enabled
        log_file_path: Path to log file (if file logging enabled)

    Example:
        >>> logger = CommunicationLogger(
        ...     log_level=LogLevel.DEBUG,
        ...     enable_file=True,
        ...     log_file_path="~/.flora-cli/logs/comm.log"
        ... )
        >>> logger.log_line_received(port="/dev/ttyACM0", line="enter ssid:", state="answering")
        >>> logger.log_line_sent(port="/dev/ttyACM0", line="myssid", prompt="enter ssid:")
        >>> logger.close()
    """

    _LEVEL_PRIORITY = {
        "DEBUG": 0,
        "INFO": 1,
        "WARNING": 2,
        "ERROR": 3
    }

    def __init__(
        self,
        log_level: Union[LogLevel, str] = LogLevel.INFO,
        enable_file: bool = False,
        enable_console: bool = True,
        log_file_path: Optional[str] = None,
        max_file_size_mb: int = 10,
        backup_count: int = 5
    ):
        """Initialize logger destinations and level.

        Raises:
            ValueError: If enable_file=True but log_file_path is None
        """
        self.log_level = log_level.value if isinstance(log_level, LogLevel) else log_level
        self.enable_file = enable_file
        self.enable_console = enable_console
        self.log_file_path = log_file_path

        self._lock = Lock()

        self._file_handler: Optional[FileHandler] = None
        if self.enable_file:
            if not log_file_path:
                raise ValueError("log_file_path required when enable_file=True")
            try:
                self._file_handler = FileHandler(
                    log_file_path=log_file_path,
                    max_size_mb=max_file_size_mb,
                    backup_count=backup_count
                )
            except OSError as e:
                print(f"WARNING: Failed to initialize file logging: {e}", file=sys.stderr)
                self._file_handler = None

    @classmethod
    def from_config(cls,
                    config: LoggingConfig,
                    log_file_path: Optional[str] = None) -> 'CommunicationLogger':
        """Build a logger from the ``logging`` config section.

        Args:
            config: Logging section
            log_file_path: Resolved log file path, overrides config.log_file_path
        """
        path = log_file_path or config.log_file_path
        return cls(
            log_level=config.level,
            enable_file=config.log_to_file and path is not None,
            enable_console=config.log_to_console,
            log_file_path=path,
            max_file_size_mb=config.max_file_size_mb,
            backup_count=config.backup_count
        )

    def log(self, entry: LogEntry) -> None:
        """Log an entry to all enabled destinations, subject to level filtering."""
        if not self._should_log(entry.level):
            return

        with self._lock:
            if self._file_handler:
                self._file_handler.write(entry)

            if self.enable_console:
                print(entry.to_string(), file=sys.stderr)

    def _should_log(self, entry_level: str) -> bool:
        entry_priority = self._LEVEL_PRIORITY.get(entry_level, 0)
        current_priority = self._LEVEL_PRIORITY.get(self.log_level, 0)
        return entry_priority >= current_priority

    def log_line_received(self, port: str, line: str, state: Optional[str] = None) -> None:
        """Log a line read from the device (DEBUG)."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="DEBUG",
            source="ProvisioningSession",
            message="Line received",
            port=port,
            direction="RX",
            line=line,
            state=state
        ))

    def log_line_sent(self,
                      port: str,
                      line: str,
                      prompt: Optional[str] = None,
                      sensitive: bool = False) -> None:
        """Log an answer written to the device (INFO).

        Args:
            port: Serial port name
            line: Text sent, without terminator
            prompt: Prompt prefix that triggered the answer
            sensitive: Replace the text with asterisks
        """
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="INFO",
            source="ProvisioningSession",
            message="Answer sent",
            port=port,
            direction="TX",
            line='*' * len(line) if sensitive else line,
            details={"prompt": prompt} if prompt else None
        ))

    def log_state_change(self, port: str, old_state: str, new_state: str) -> None:
        """Log a dialog state transition (INFO)."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="INFO",
            source="ProvisioningSession",
            message=f"State {old_state} -> {new_state}",
            port=port,
            state=new_state
        ))

    def log_port_event(
        self,
        event: str,
        port: str,
        details: Optional[Dict[str, Any]] = None,
        level: str = "INFO"
    ) -> None:
        """Log a serial port event such as "Port opened" or "Device reset"."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level=level,
            source="SerialHandler",
            message=event,
            port=port,
            details=details
        ))

    def log_info(self,
                 source: str,
                 message: str,
                 details: Optional[Dict[str, Any]] = None,
                 level: str = "INFO") -> None:
        """Log a free-form message from any component."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level=level,
            source=source,
            message=message,
            details=details
        ))

    def log_error(
        self,
        source: str,
        error: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log an error event."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="ERROR",
            source=source,
            message="Error occurred",
            error=error,
            details=details
        ))

    def close(self) -> None:
        """Close the file handler. Safe to call more than once."""
        if self._file_handler:
            self._file_handler.close()
            self._file_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
