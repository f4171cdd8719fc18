"""Line assembly from a byte-oriented serial read primitive.

The device firmware terminates its prompts with an ad hoc mix of ``\\n`` and
``\\r\\n``. Reading one byte at a time and collapsing runs of terminators
keeps the parser independent of which variant a given prompt uses.
"""

from typing import Protocol

LINE_TERMINATORS = (b'\r', b'\n')
DEVICE_ENCODING = 'utf-8'


class ByteSource(Protocol):
    """Anything with a pyserial-style ``read(size) -> bytes``."""

    def read(self, size: int = 1) -> bytes:
        ...


class LineReader:
    """Turns single-byte reads into text lines.

    ``read_line`` blocks until one of three things happens:

    - a terminator (CR or LF) follows at least one non-terminator byte: the
      accumulated text is returned without the terminator;
    - a read returns no data (the read timeout elapsed): whatever has been
      accumulated is returned, possibly an empty string, which callers treat
      as "nothing happened";
    - the source raises: the exception propagates unchanged.

    Terminators seen while the buffer is empty are skipped, so ``\\r\\n``
    pairs and blank lines never produce empty lines.

    Example:
        >>> reader = LineReader(handler)
        >>> reader.read_line()
        'setup start'
    """

    def __init__(self, source: ByteSource, encoding: str = DEVICE_ENCODING):
        """Initialize reader.

        Args:
            source: Byte source, usually a SerialHandler
            encoding: Text encoding of device output, the same one answers are written in
        """
        self.source = source
        self.encoding = encoding

    def read_line(self) -> str:
        """Read the next line from the source.

        Returns:
            The line without terminator; empty if a read timed out first

        Raises:
            DeviceDisconnectedError: The device closed the link
            SerialPortError: Any other read failure
        """
        buffer = bytearray()
        while True:
            byte = self.source.read(1)
            if not byte:
                return self._decode(buffer)
            if byte in LINE_TERMINATORS:
                if buffer:
                    return self._decode(buffer)
                continue
            buffer += byte

    def _decode(self, buffer: bytearray) -> str:
        return buffer.decode(self.encoding, errors='replace')
