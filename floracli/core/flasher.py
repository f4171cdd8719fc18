"""Firmware flashing through Espressif's esptool.

The flashing itself is delegated to the external ``esptool`` executable;
this module only locates it, builds the ``write-flash`` command line for the
configured image layout and streams the tool's output while it runs.
"""

from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, TextIO, TYPE_CHECKING
import os
import shutil
import subprocess
import sys
import threading

from floracli.config.config_models import FlashConfig
from floracli.core.exceptions import (
    ConfigurationError,
    FlashToolError,
    FlashToolNotFoundError,
)

if TYPE_CHECKING:
    from floracli.logging.communication_logger import CommunicationLogger

Which = Callable[[str], Optional[str]]


def find_esptool(which: Which = shutil.which) -> Optional[str]:
    """Locate esptool on PATH, falling back to ``./esptool``."""
    for name in ("esptool", "esptool.py"):
        path = which(name)
        if path:
            return path
    local = Path("./esptool")
    if local.is_file() and os.access(local, os.X_OK):
        return str(local)
    return None


def find_python(which: Which = shutil.which) -> Optional[str]:
    """Locate a Python interpreter for running ``esptool.py`` scripts."""
    for name in ("python", "python3"):
        path = which(name)
        if path:
            return path
    return None


def build_command(esptool: str,
                  port: str,
                  flash_config: FlashConfig,
                  which: Which = shutil.which) -> List[str]:
    """Build the esptool ``write-flash`` command line.

    Args:
        esptool: Path to the esptool executable or ``esptool.py`` script
        port: Serial port of the device
        flash_config: Chip, speeds and image layout

    Returns:
        Argument vector suitable for subprocess

    Raises:
        FlashToolError: esptool is a script and no Python interpreter was found
    """
    command: List[str] = []
    if esptool.endswith(".py"):
        python = find_python(which)
        if python is None:
            raise FlashToolError("python not found")
        command.append(python)
    command.append(esptool)

    command += [
        "--chip", flash_config.chip,
        "--port", port,
        "--baud", str(flash_config.baud_rate),
        "--before", flash_config.before,
        "--after", flash_config.after,
        "write-flash", "-z",
        "--flash-mode", flash_config.flash_mode,
        "--flash-freq", flash_config.flash_freq,
        "--flash-size", flash_config.flash_size,
    ]
    for image in flash_config.images:
        command += [image.address, image.path]
    return command


class FirmwareFlasher:
    """Runs esptool and relays its stdout and stderr as they arrive.

    Example:
        >>> flasher = FirmwareFlasher('/dev/ttyACM0', FlashConfig())
        >>> exit_code = flasher.flash()
    """

    def __init__(self,
                 port: str,
                 flash_config: FlashConfig,
                 output: TextIO = sys.stdout,
                 logger: Optional['CommunicationLogger'] = None,
                 which: Which = shutil.which,
                 popen: Callable[..., subprocess.Popen] = subprocess.Popen):
        self.port = port
        self.flash_config = flash_config
        self.output = output
        self.logger = logger
        self.which = which
        self.popen = popen
        self._output_lock = threading.Lock()

    def resolve_command(self) -> List[str]:
        """Find esptool and build the full command line.

        Raises:
            ConfigurationError: No serial port configured
            FlashToolNotFoundError: esptool not configured and not found
            FlashToolError: No interpreter for an esptool.py script
        """
        if not self.port:
            raise ConfigurationError("no serial port")
        esptool = self.flash_config.esptool or find_esptool(self.which)
        if not esptool:
            raise FlashToolNotFoundError("esptool")
        return build_command(esptool, self.port, self.flash_config, self.which)

    def flash(self) -> int:
        """Run the flashing tool to completion.

        Returns:
            Exit code of the tool
        """
        command = self.resolve_command()
        if self.logger:
            self.logger.log_info("FirmwareFlasher", "Starting flash tool",
                                 details={"command": command})

        try:
            process = self.popen(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            raise FlashToolError(f"Failed to start {command[0]}: {e}")

        readers = [
            threading.Thread(target=self._drain, args=(stream,), daemon=True)
            for stream in (process.stdout, process.stderr)
        ]
        for reader in readers:
            reader.start()

        returncode = process.wait()
        for reader in readers:
            reader.join()

        if self.logger:
            level = "INFO" if returncode == 0 else "ERROR"
            self.logger.log_info("FirmwareFlasher", f"Flash tool exited with {returncode}",
                                 level=level)
        return returncode

    def _drain(self, stream: BinaryIO) -> None:
        """Copy one output stream of the tool until it closes."""
        while True:
            chunk = stream.read1(1024)
            if not chunk:
                break
            with self._output_lock:
                self.output.write(chunk.decode('utf-8', errors='replace'))
                self.output.flush()
