"""Unit tests for ProvisioningSession with a scripted serial handler."""

import pytest
from unittest.mock import Mock

from floracli.config.config_models import ProvisioningConfig, SerialConfig
from floracli.core.exceptions import (
    ConfigurationError,
    DeviceDisconnectedError,
    DeviceResetError,
    DialogTimeoutError,
    SerialPortError,
)
from floracli.core.prompts import DialogState
from floracli.core.provisioning_session import (
    ProvisioningSession,
    SentAnswer,
    SessionOutcome,
)


class FakeHandler:
    """Replays device output byte by byte and records everything written.

    ``None`` in the script stands for a read that timed out and an exception
    instance is raised by the read that reaches it. When the script is
    exhausted the handler behaves like an unplugged device.
    """

    def __init__(self, *script, port="/dev/ttyACM0"):
        self.port = port
        self._bytes = []
        for chunk in script:
            if chunk is None:
                self._bytes.append(b'')
            elif isinstance(chunk, Exception):
                self._bytes.append(chunk)
            else:
                self._bytes.extend(chunk[i:i + 1] for i in range(len(chunk)))
        self.events = []
        self.written = []
        self.is_open = False

    def open(self):
        self.is_open = True
        self.events.append("open")

    def close(self):
        self.is_open = False
        self.events.append("close")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def set_dtr(self, level):
        self.events.append(("dtr", level))

    def set_read_timeout(self, timeout):
        self.events.append(("timeout", timeout))

    def read(self, size=1):
        if not self._bytes:
            raise DeviceDisconnectedError("Device disconnected", self.port)
        item = self._bytes.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def write(self, data):
        self.written.append(data)
        return len(data)


ALL_PROMPTS = (
    b"enter ssid:\r\n"
    b"enter password:\r\n"
    b"enter mqtt ip:\r\n"
    b"enter mqtt port (1883):\r\n"
    b"enter monitor interval (60):\r\n"
    b"enter sensor type (DHT22/BME280):\r\n"
    b"Has rain sensor? (yes/no)\r\n"
)


@pytest.fixture
def config():
    return ProvisioningConfig(
        ssid="home",
        password="secret",
        mqtt_ip="192.168.1.10",
        mqtt_port=1883,
        interval=60,
        sensor_type="DHT22",
        has_rain_sensor=False
    )


def make_session(handler, config, **kwargs):
    kwargs.setdefault("echo", Mock())
    kwargs.setdefault("sleep", lambda seconds: None)
    return ProvisioningSession(handler, config, **kwargs)


class TestValidation:
    """Test required values are checked before any I/O."""

    def test_missing_ssid(self, config):
        """Test an empty ssid fails without opening the port."""
        handler = FakeHandler(b"setup start\n")
        session = make_session(handler, ProvisioningConfig(mqtt_ip="192.168.1.10"))

        with pytest.raises(ConfigurationError) as exc_info:
            session.run()

        assert str(exc_info.value) == "no ssid"
        assert handler.events == []
        assert handler.written == []

    def test_missing_mqtt_ip(self):
        """Test an empty MQTT broker address fails without opening the port."""
        handler = FakeHandler(b"setup start\n")
        session = make_session(handler, ProvisioningConfig(ssid="home"))

        with pytest.raises(ConfigurationError) as exc_info:
            session.run()

        assert str(exc_info.value) == "no mqtt ip"
        assert handler.events == []

    def test_ssid_checked_first(self):
        """Test ssid is reported when both values are missing."""
        session = make_session(FakeHandler(), ProvisioningConfig())

        with pytest.raises(ConfigurationError, match="no ssid"):
            session.validate()


class TestResetSequence:
    """Test the port is opened and the device reset before reading."""

    def test_open_reset_then_timeout(self, config):
        """Test open, DTR low, DTR high, then the long read timeout."""
        handler = FakeHandler()
        session = make_session(handler, config, serial_config=SerialConfig(read_timeout=60))

        session.run()

        assert handler.events == [
            "open",
            ("dtr", False),
            ("dtr", True),
            ("timeout", 60),
            "close",
        ]

    def test_reset_waits(self, config):
        """Test settle and boot waits come from the serial config."""
        sleeps = []
        handler = FakeHandler()
        session = make_session(
            handler,
            config,
            serial_config=SerialConfig(reset_settle_ms=500, boot_wait_ms=1000),
            sleep=sleeps.append
        )

        session.run()

        assert sleeps == [0.5, 1.0]

    def test_reset_failure(self, config):
        """Test a control line failure surfaces as DeviceResetError and closes the port."""
        handler = FakeHandler()
        handler.set_dtr = Mock(side_effect=SerialPortError("Failed to set DTR", handler.port))
        session = make_session(handler, config)

        with pytest.raises(DeviceResetError):
            session.run()

        assert handler.events[-1] == "close"


class TestTransportErrors:
    """Test I/O failures other than end-of-stream end the session."""

    def test_read_error_is_fatal(self, config):
        """Test a read failure after the banner propagates and closes the port."""
        handler = FakeHandler(
            b"setup start\n",
            SerialPortError("Failed to read from port", "/dev/ttyACM0")
        )
        session = make_session(handler, config)

        with pytest.raises(SerialPortError, match="Failed to read"):
            session.run()

        assert session.state is DialogState.ANSWERING
        assert handler.events[-1] == "close"

    def test_write_error_is_fatal(self, config):
        """Test a write failure while answering propagates and closes the port."""
        handler = FakeHandler(b"setup start\n", b"enter ssid:\n")
        handler.write = Mock(
            side_effect=SerialPortError("Failed to write to port", handler.port)
        )
        session = make_session(handler, config)

        with pytest.raises(SerialPortError, match="Failed to write"):
            session.run()

        handler.write.assert_called_once_with(b"home\n")
        assert handler.events[-1] == "close"


class TestDialog:
    """Test the conversation with the device."""

    def test_full_dialog(self, config):
        """Test seven prompts are answered in order, then the success marker ends the dialog."""
        handler = FakeHandler(
            b"ESP-ROM:esp32c3-api1-20210207\r\n",
            b"setup start\r\n",
            ALL_PROMPTS,
            b"Config ssid=home\r\n",
        )
        session = make_session(handler, config)

        result = session.run()

        assert handler.written == [
            b"home\n",
            b"secret\n",
            b"192.168.1.10\n",
            b"1883\n",
            b"60\n",
            b"DHT22\n",
            b"no\n",
        ]
        assert result.configured
        assert result.outcome is SessionOutcome.CONFIGURED
        assert result.state is DialogState.DONE
        assert result.confirmed_ssid == "home"
        assert result.answers[0] == SentAnswer(prompt="enter ssid:", value="home")
        assert len(result.answers) == 7
        assert handler.events[-1] == "close"

    def test_no_banner_no_writes(self, config):
        """Test prompts before the start banner are never answered."""
        handler = FakeHandler(ALL_PROMPTS, b"Config ssid=home\n")
        session = make_session(handler, config)

        result = session.run()

        assert handler.written == []
        assert result.outcome is SessionOutcome.DISCONNECTED

    def test_eof_after_banner(self, config):
        """Test a disconnect right after the banner is a completed session with no answers."""
        handler = FakeHandler(b"setup start\n")
        session = make_session(handler, config)

        result = session.run()

        assert result.outcome is SessionOutcome.DISCONNECTED
        assert result.state is DialogState.DONE
        assert result.answers == ()
        assert not result.configured
        assert handler.written == []

    def test_unknown_line_ignored(self, config):
        """Test an unknown line between prompts produces no write."""
        handler = FakeHandler(
            b"setup start\n",
            b"enter ssid:\n",
            b"I (312) wifi: mode : sta\n",
            b"enter password:\n",
        )
        session = make_session(handler, config)

        session.run()

        assert handler.written == [b"home\n", b"secret\n"]

    def test_interval_answer(self, config):
        """Test the interval is written as decimal text."""
        handler = FakeHandler(b"setup start\n", b"enter monitor interval (60):\n")
        session = make_session(
            handler,
            ProvisioningConfig(ssid="home", mqtt_ip="192.168.1.10", interval=120)
        )

        session.run()

        assert handler.written == [b"120\n"]

    def test_rain_sensor_yes(self):
        """Test the rain sensor answer is 'yes' when fitted."""
        handler = FakeHandler(b"setup start\n", b"Has rain sensor?\n")
        session = make_session(
            handler,
            ProvisioningConfig(ssid="home", mqtt_ip="10.0.0.1", has_rain_sensor=True)
        )

        session.run()

        assert handler.written == [b"yes\n"]

    def test_empty_password(self):
        """Test an empty password is sent as a bare newline."""
        handler = FakeHandler(b"setup start\n", b"enter password:\n")
        session = make_session(handler, ProvisioningConfig(ssid="open", mqtt_ip="10.0.0.1"))

        session.run()

        assert handler.written == [b"\n"]

    def test_answers_after_success_marker_stop(self, config):
        """Test nothing is read or written after the success marker."""
        handler = FakeHandler(
            b"setup start\n",
            b"Config ssid=home\n",
            b"enter ssid:\n",
        )
        session = make_session(handler, config)

        result = session.run()

        assert result.configured
        assert handler.written == []

    def test_lines_echoed(self, config):
        """Test every non-empty device line is echoed."""
        echo = Mock()
        handler = FakeHandler(b"boot\r\n\r\nsetup start\r\nenter ssid:\r\n")
        session = make_session(handler, config, echo=echo)

        session.run()

        echoed = [call.args[0] for call in echo.call_args_list]
        assert echoed == ["boot", "setup start", "enter ssid:"]

    def test_answer_delay(self, config):
        """Test the pacing delay is applied before each answer."""
        sleeps = []
        handler = FakeHandler(b"setup start\n", b"enter ssid:\n", b"enter password:\n")
        session = make_session(
            handler,
            config,
            serial_config=SerialConfig(reset_settle_ms=0, boot_wait_ms=0, answer_delay_ms=100),
            sleep=sleeps.append
        )

        session.run()

        assert sleeps == [0.0, 0.1, 0.1]

    def test_rerun_resets_state(self, config):
        """Test a second run starts again from AWAITING_START."""
        session = make_session(FakeHandler(b"setup start\n", b"enter ssid:\n"), config)
        session.run()

        session.handler = FakeHandler(b"enter ssid:\n")
        result = session.run()

        assert result.answers == ()
        assert session.handler.written == []


class TestOperatorActions:
    """Test calibration prompts wait for the operator."""

    def test_operator_prompt(self, config):
        """Test the instruction is shown and a bare newline sent after acknowledgement."""
        echo = Mock()
        operator_input = Mock(return_value="\n")
        handler = FakeHandler(
            b"setup start\n",
            b"Prepare for calibration of the soil moisture sensor\n",
        )
        session = make_session(handler, config, echo=echo, operator_input=operator_input)

        result = session.run()

        operator_input.assert_called_once_with()
        echo.assert_any_call(
            "ACTION: Remove the soil moisture sensor from the soil and dry it. "
            "Then press the <Enter> key."
        )
        assert handler.written == [b"\n"]
        assert result.answers == (
            SentAnswer(prompt="Prepare for calibration", value=""),
        )

    def test_write_waits_for_operator(self, config):
        """Test nothing is written before the operator acknowledges."""
        handler = FakeHandler(b"setup start\n", b"Dry the rain sensor\n")

        def acknowledge():
            assert handler.written == []
            return "\n"

        session = make_session(handler, config, operator_input=acknowledge)
        session.run()

        assert handler.written == [b"\n"]


class TestSuccessMarker:
    """Test the success marker handling."""

    def test_confirmed_ssid_with_trailing_fields(self, config):
        """Test the confirmed ssid stops at the field separator."""
        handler = FakeHandler(b"setup start\n", b"Config ssid=home, mqtt=192.168.1.10\n")
        session = make_session(handler, config)

        result = session.run()

        assert result.confirmed_ssid == "home"

    def test_ssid_with_space(self):
        """Test an ssid containing a space is reported whole without a warning."""
        logger = Mock()
        handler = FakeHandler(b"setup start\n", b"Config ssid=My Home, mqtt=10.0.0.1:1883\n")
        session = make_session(
            handler, ProvisioningConfig(ssid="My Home", mqtt_ip="10.0.0.1"), logger=logger
        )

        result = session.run()

        assert result.confirmed_ssid == "My Home"
        levels = [call.kwargs.get("level") for call in logger.log_info.call_args_list]
        assert "WARNING" not in levels

    def test_longer_ssid_with_same_prefix_warns(self, config):
        """Test 'home2' is not accepted as the configured 'home'."""
        logger = Mock()
        handler = FakeHandler(b"setup start\n", b"Config ssid=home2, mqtt=192.168.1.10\n")
        session = make_session(handler, config, logger=logger)

        result = session.run()

        assert result.configured
        assert result.confirmed_ssid == "home2"
        warnings = [
            call.args[1] for call in logger.log_info.call_args_list
            if call.kwargs.get("level") == "WARNING"
        ]
        assert warnings == ["Device reported ssid 'home2', expected 'home'"]

    def test_non_ascii_ssid_matches(self):
        """Test an ssid written as UTF-8 matches its UTF-8 echo."""
        logger = Mock()
        handler = FakeHandler(
            b"setup start\n",
            b"enter ssid:\n",
            "Config ssid=Café\n".encode('utf-8')
        )
        session = make_session(
            handler, ProvisioningConfig(ssid="Café", mqtt_ip="10.0.0.1"), logger=logger
        )

        result = session.run()

        assert handler.written == ["Café\n".encode('utf-8')]
        assert result.confirmed_ssid == "Café"
        levels = [call.kwargs.get("level") for call in logger.log_info.call_args_list]
        assert "WARNING" not in levels

    def test_mismatched_ssid_warns(self, config):
        """Test a different ssid in the marker is logged as a warning but still succeeds."""
        logger = Mock()
        handler = FakeHandler(b"setup start\n", b"Config ssid=other\n")
        session = make_session(handler, config, logger=logger)

        result = session.run()

        assert result.configured
        assert result.confirmed_ssid == "other"
        levels = [call.kwargs.get("level") for call in logger.log_info.call_args_list]
        assert "WARNING" in levels

    def test_matching_ssid_no_warning(self, config):
        """Test no warning when the ssid matches."""
        logger = Mock()
        handler = FakeHandler(b"setup start\n", b"Config ssid=home\n")
        session = make_session(handler, config, logger=logger)

        session.run()

        levels = [call.kwargs.get("level") for call in logger.log_info.call_args_list]
        assert "WARNING" not in levels


class TestIdleReads:
    """Test handling of timed-out reads."""

    def test_idle_reads_unlimited_by_default(self, config):
        """Test timed-out reads are ignored when no limit is configured."""
        handler = FakeHandler(None, None, None, b"setup start\n", None, b"enter ssid:\n")
        session = make_session(handler, config)

        result = session.run()

        assert handler.written == [b"home\n"]
        assert result.outcome is SessionOutcome.DISCONNECTED

    def test_idle_read_limit(self, config):
        """Test consecutive empty reads beyond the limit raise DialogTimeoutError."""
        handler = FakeHandler(b"setup start\n", None, None, None)
        session = make_session(handler, config, serial_config=SerialConfig(idle_read_limit=2))

        with pytest.raises(DialogTimeoutError) as exc_info:
            session.run()

        assert exc_info.value.state is DialogState.ANSWERING
        assert exc_info.value.idle_reads == 2
        assert handler.events[-1] == "close"

    def test_idle_count_resets_on_line(self, config):
        """Test a received line resets the idle counter."""
        handler = FakeHandler(b"setup start\n", None, b"enter ssid:\n", None, b"x\n")
        session = make_session(handler, config, serial_config=SerialConfig(idle_read_limit=2))

        result = session.run()

        assert result.outcome is SessionOutcome.DISCONNECTED


class TestLogging:
    """Test session events reach the communication logger."""

    def test_password_masked(self, config):
        """Test the password answer is logged as sensitive."""
        logger = Mock()
        handler = FakeHandler(b"setup start\n", b"enter ssid:\n", b"enter password:\n")
        session = make_session(handler, config, logger=logger)

        session.run()

        calls = logger.log_line_sent.call_args_list
        assert calls[0].kwargs["sensitive"] is False
        assert calls[1].kwargs["sensitive"] is True

    def test_state_changes_logged(self, config):
        """Test state transitions are logged once each."""
        logger = Mock()
        handler = FakeHandler(b"setup start\n", b"Config ssid=home\n")
        session = make_session(handler, config, logger=logger)

        session.run()

        transitions = [call.args[1:] for call in logger.log_state_change.call_args_list]
        assert transitions == [
            ("awaiting_start", "answering"),
            ("answering", "done"),
        ]
