"""Communication logging module.

Records the serial traffic of provisioning, monitor and reset sessions for
debugging devices that do not complete their configuration dialog.
"""

from floracli.logging.log_models import LogEntry
from floracli.logging.file_handler import FileHandler
from floracli.logging.communication_logger import CommunicationLogger

__all__ = ['LogEntry', 'FileHandler', 'CommunicationLogger']
