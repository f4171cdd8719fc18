"""Reset sequencing over the DTR control line.

On ESP32 development boards DTR is wired to the EN (reset) pin through the
auto-program circuit, so dropping and re-asserting DTR reboots the chip.
The firmware only serves its configuration dialog right after boot.
"""

from typing import Callable, Optional, TYPE_CHECKING
import time

from floracli.core.exceptions import DeviceResetError, SerialPortError
from floracli.core.serial_handler import SerialHandler

if TYPE_CHECKING:
    from floracli.logging.communication_logger import CommunicationLogger


def pulse_reset(handler: SerialHandler,
                settle_seconds: float,
                boot_seconds: float = 0.0,
                sleep: Callable[[float], None] = time.sleep) -> None:
    """Reboot the device with a DTR low/high pulse.

    Args:
        handler: Open serial handler
        settle_seconds: Time DTR is held low
        boot_seconds: Time to wait after DTR is raised again
        sleep: Sleep function (injectable for tests)

    Raises:
        DeviceResetError: The control line could not be driven
    """
    try:
        handler.set_dtr(False)
        sleep(settle_seconds)
        handler.set_dtr(True)
    except SerialPortError as e:
        raise DeviceResetError(
            f"Failed to reset device on port {handler.port}",
            handler.port,
            e
        )
    if boot_seconds > 0:
        sleep(boot_seconds)


def reset_device(handler: SerialHandler,
                 pulse_ms: int = 100,
                 logger: Optional['CommunicationLogger'] = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
    """Open the port, reboot the device and close the port again."""
    with handler:
        pulse_reset(handler, pulse_ms / 1000.0, sleep=sleep)
        if logger:
            logger.log_port_event(
                event="Device reset",
                port=handler.port,
                details={"pulse_ms": pulse_ms}
            )
