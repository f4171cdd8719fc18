"""Serial provisioning dialog driver.

A session reboots the device into its configuration mode, waits for the
start banner, then answers each recognized prompt with a value from the
provisioning config until the device echoes its stored configuration or
drops the link.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING
import sys
import time

from floracli.config.config_models import ProvisioningConfig, SerialConfig
from floracli.core.device_control import pulse_reset
from floracli.core.exceptions import (
    ConfigurationError,
    DeviceDisconnectedError,
    DialogTimeoutError,
)
from floracli.core.line_reader import DEVICE_ENCODING, LineReader
from floracli.core.prompts import (
    DEFAULT_PROMPTS,
    START_BANNER,
    SUCCESS_MARKER,
    ConfigAnswer,
    DialogState,
    OperatorAction,
    PromptRule,
    SuccessMarker,
    match_prompt,
)
from floracli.core.serial_handler import SerialHandler

if TYPE_CHECKING:
    from floracli.logging.communication_logger import CommunicationLogger


class SessionOutcome(Enum):
    """How a completed session ended."""
    CONFIGURED = "configured"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class SentAnswer:
    """One reply written to the device.

    Attributes:
        prompt: Prefix of the prompt that was answered
        value: Text sent before the terminator (empty for acknowledgements)
    """
    prompt: str
    value: str


@dataclass(frozen=True)
class ProvisioningResult:
    """Summary of a finished provisioning session.

    Attributes:
        state: Final dialog state (always DONE)
        outcome: Success marker seen, or device disconnected
        answers: Replies written, in the order the prompts arrived
        confirmed_ssid: ssid echoed in the success marker, if seen
    """
    state: DialogState
    outcome: SessionOutcome
    answers: Tuple[SentAnswer, ...]
    confirmed_ssid: Optional[str] = None

    @property
    def configured(self) -> bool:
        return self.outcome is SessionOutcome.CONFIGURED


def _read_operator_line() -> str:
    return sys.stdin.readline()


class ProvisioningSession:
    """Drives one configuration dialog over one serial connection.

    The session is single threaded and strictly sequential: read a line,
    act on it, write at most one answer. It owns the handler for the
    duration of ``run()`` and closes it on every exit path.

    Example:
        >>> handler = SerialHandler('/dev/ttyACM0')
        >>> session = ProvisioningSession(
        ...     handler,
        ...     ProvisioningConfig(ssid='home', password='secret', mqtt_ip='192.168.1.10')
        ... )
        >>> result = session.run()
        >>> result.configured
        True
    """

    def __init__(self,
                 handler: SerialHandler,
                 config: ProvisioningConfig,
                 serial_config: Optional[SerialConfig] = None,
                 prompts: Sequence[PromptRule] = DEFAULT_PROMPTS,
                 echo: Callable[[str], None] = print,
                 operator_input: Callable[[], str] = _read_operator_line,
                 logger: Optional['CommunicationLogger'] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize session.

        Args:
            handler: Serial handler, not yet opened
            config: Values to send to the device
            serial_config: Timing and timeout settings (defaults if None)
            prompts: Ordered prompt table, first match wins
            echo: Receives every device line and operator instruction
            operator_input: Blocks until the operator acknowledges an action
            logger: Optional CommunicationLogger
            sleep: Sleep function (injectable for tests)
        """
        self.handler = handler
        self.config = config
        self.serial_config = serial_config or SerialConfig()
        self.prompts = tuple(prompts)
        self.echo = echo
        self.operator_input = operator_input
        self.logger = logger
        self.sleep = sleep
        self.state = DialogState.AWAITING_START
        self._answers: List[SentAnswer] = []

    def validate(self) -> None:
        """Check required values before touching the port.

        Raises:
            ConfigurationError: ssid or MQTT broker address is missing
        """
        missing = self.config.missing_fields()
        if "ssid" in missing:
            raise ConfigurationError("no ssid")
        if "mqtt_ip" in missing:
            raise ConfigurationError("no mqtt ip")

    def run(self) -> ProvisioningResult:
        """Open the port, reset the device and run the dialog to completion.

        Returns:
            ProvisioningResult describing how the dialog ended

        Raises:
            ConfigurationError: Required values missing (no I/O attempted)
            DeviceResetError: DTR could not be toggled
            DialogTimeoutError: Idle read limit exceeded
            SerialPortError: Open, read or write failure
        """
        self.validate()
        self.state = DialogState.AWAITING_START
        self._answers = []

        with self.handler:
            pulse_reset(
                self.handler,
                self.serial_config.reset_settle_ms / 1000.0,
                self.serial_config.boot_wait_ms / 1000.0,
                sleep=self.sleep
            )
            # Long timeout: the operator may take a while at the calibration steps
            self.handler.set_read_timeout(self.serial_config.read_timeout)
            return self._converse()

    def _converse(self) -> ProvisioningResult:
        reader = LineReader(self.handler)
        idle_reads = 0

        while True:
            try:
                line = reader.read_line()
            except DeviceDisconnectedError:
                self._log("Readline EOF, assuming config finished or device disconnected.")
                self._transition(DialogState.DONE)
                return self._result(SessionOutcome.DISCONNECTED)

            if not line:
                idle_reads += 1
                limit = self.serial_config.idle_read_limit
                if limit and idle_reads >= limit:
                    raise DialogTimeoutError(
                        "Device stopped responding",
                        self.state,
                        idle_reads
                    )
                continue
            idle_reads = 0

            self.echo(line)
            if self.logger:
                self.logger.log_line_received(self.handler.port, line, self.state.value)

            if self.state is DialogState.AWAITING_START:
                if line.startswith(START_BANNER):
                    self._transition(DialogState.ANSWERING)
                continue

            rule = match_prompt(line, self.prompts)
            if rule is None:
                continue

            if isinstance(rule.action, SuccessMarker):
                confirmed, matches = self._confirmed_ssid(line)
                if not matches:
                    self._log(
                        f"Device reported ssid '{confirmed}', expected '{self.config.ssid}'",
                        level="WARNING"
                    )
                self._log("Config successful.")
                self._transition(DialogState.DONE)
                return self._result(SessionOutcome.CONFIGURED, confirmed)

            self.sleep(self.serial_config.answer_delay_ms / 1000.0)
            self._answer(rule)

    def _answer(self, rule: PromptRule) -> None:
        action = rule.action
        if isinstance(action, ConfigAnswer):
            value = action.answer(self.config)
            self._send(rule.prefix, value, sensitive=action.field == "password")
        elif isinstance(action, OperatorAction):
            self.echo(f"ACTION: {action.instruction}")
            self.operator_input()
            self._send(rule.prefix, "")

    def _send(self, prompt: str, value: str, sensitive: bool = False) -> None:
        self.handler.write(f"{value}\n".encode(DEVICE_ENCODING))
        self._answers.append(SentAnswer(prompt=prompt, value=value))
        if self.logger:
            self.logger.log_line_sent(self.handler.port, value, prompt=prompt, sensitive=sensitive)

    def _transition(self, new_state: DialogState) -> None:
        old_state = self.state
        self.state = new_state
        if self.logger and old_state is not new_state:
            self.logger.log_state_change(self.handler.port, old_state.value, new_state.value)

    def _result(self,
                outcome: SessionOutcome,
                confirmed_ssid: Optional[str] = None) -> ProvisioningResult:
        return ProvisioningResult(
            state=self.state,
            outcome=outcome,
            answers=tuple(self._answers),
            confirmed_ssid=confirmed_ssid
        )

    def _confirmed_ssid(self, line: str) -> Tuple[str, bool]:
        """Extract the echoed ssid and whether it is the configured one.

        The marker is ``Config ssid=<ssid>`` optionally followed by
        comma-separated fields. The ssid itself may contain spaces, so the
        configured value is matched first and must end at the line end or
        at a comma.
        """
        rest = line[len(SUCCESS_MARKER):].rstrip()
        ssid = self.config.ssid
        if rest.startswith(ssid) and rest[len(ssid):len(ssid) + 1] in ('', ','):
            return ssid, True
        return rest.split(',', 1)[0], False

    def _log(self, message: str, level: str = "INFO") -> None:
        if self.logger:
            self.logger.log_info("ProvisioningSession", message, level=level)
