"""Serial monitor: print every line the device emits."""

from typing import Callable, Optional, TYPE_CHECKING

from floracli.core.line_reader import LineReader
from floracli.core.serial_handler import SerialHandler

if TYPE_CHECKING:
    from floracli.logging.communication_logger import CommunicationLogger


def monitor_device(handler: SerialHandler,
                   echo: Callable[[str], None] = print,
                   logger: Optional['CommunicationLogger'] = None,
                   max_lines: Optional[int] = None) -> int:
    """Echo device output until the connection fails.

    The handler must already be open. Runs until a read raises (the error
    propagates), the caller interrupts, or ``max_lines`` lines were shown.

    Returns:
        Number of lines echoed
    """
    reader = LineReader(handler)
    count = 0
    while max_lines is None or count < max_lines:
        line = reader.read_line()
        if not line:
            continue
        echo(line)
        count += 1
        if logger:
            logger.log_line_received(handler.port, line)
    return count
