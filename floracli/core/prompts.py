"""Device prompts recognized during the configuration dialog.

The firmware asks for one value per line. Each known prompt is a
``PromptRule`` pairing a line prefix with the action that answers it; the
table is searched in order and the first matching prefix wins.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple, Union

from floracli.config.config_models import ProvisioningConfig

START_BANNER = "setup start"
SUCCESS_MARKER = "Config ssid="


class DialogState(Enum):
    """Provisioning dialog state.

    - AWAITING_START: ignore everything until the start banner
    - ANSWERING: reply to recognized prompts
    - DONE: success marker seen or device disconnected
    """
    AWAITING_START = "awaiting_start"
    ANSWERING = "answering"
    DONE = "done"


@dataclass(frozen=True)
class ConfigAnswer:
    """Reply with a value taken from the provisioning config.

    Attributes:
        field: Name of the config value, used in logs
        render: Produces the reply text (without terminator)
    """
    field: str
    render: Callable[[ProvisioningConfig], str]

    def answer(self, config: ProvisioningConfig) -> str:
        return self.render(config)


@dataclass(frozen=True)
class OperatorAction:
    """Ask the local operator to do something, then acknowledge with a bare newline."""
    instruction: str


@dataclass(frozen=True)
class SuccessMarker:
    """The device echoed its stored configuration; the dialog is complete."""
    pass


PromptAction = Union[ConfigAnswer, OperatorAction, SuccessMarker]


@dataclass(frozen=True)
class PromptRule:
    """A prompt prefix and the action taken when a line starts with it."""
    prefix: str
    action: PromptAction

    def matches(self, line: str) -> bool:
        return line.startswith(self.prefix)


DEFAULT_PROMPTS: Tuple[PromptRule, ...] = (
    PromptRule("enter ssid:", ConfigAnswer("ssid", lambda c: c.ssid)),
    PromptRule("enter password:", ConfigAnswer("password", lambda c: c.password)),
    PromptRule("enter mqtt ip:", ConfigAnswer("mqtt_ip", lambda c: c.mqtt_ip)),
    PromptRule("enter mqtt port", ConfigAnswer("mqtt_port", lambda c: str(c.mqtt_port))),
    PromptRule("enter monitor interval", ConfigAnswer("interval", lambda c: str(c.interval))),
    PromptRule("enter sensor type", ConfigAnswer("sensor_type", lambda c: c.sensor_type)),
    PromptRule(
        "Has rain sensor?",
        ConfigAnswer("has_rain_sensor", lambda c: "yes" if c.has_rain_sensor else "no")
    ),
    PromptRule(
        "Prepare for calibration",
        OperatorAction(
            "Remove the soil moisture sensor from the soil and dry it. "
            "Then press the <Enter> key."
        )
    ),
    PromptRule(
        "Place the soil moisture sensor in water",
        OperatorAction("Place the soil moisture sensor in water, then press the <Enter> key.")
    ),
    PromptRule(
        "Dry the rain sensor",
        OperatorAction("Dry the rain sensor, then press the <Enter> key.")
    ),
    PromptRule(
        "Drop water on the rain sensor",
        OperatorAction("Drop water on the rain sensor, then press the <Enter> key.")
    ),
    PromptRule(SUCCESS_MARKER, SuccessMarker()),
)


def match_prompt(line: str,
                 prompts: Sequence[PromptRule] = DEFAULT_PROMPTS) -> Optional[PromptRule]:
    """Return the first rule whose prefix starts ``line``, or None."""
    for rule in prompts:
        if rule.matches(line):
            return rule
    return None
