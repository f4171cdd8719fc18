"""Unit tests for ConfigManager source layering."""

from pathlib import Path

import pytest
import yaml

from floracli.config.config_encryption import ConfigEncryption
from floracli.config.config_manager import ConfigManager
from floracli.config.config_models import LogLevel
from floracli.core.exceptions import ConfigurationError


@pytest.fixture
def config_file(tmp_path):
    def write(content):
        path = tmp_path / "flora.yaml"
        path.write_text(yaml.safe_dump(content) if isinstance(content, dict) else content)
        return path
    return write


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Keep a developer's ./flora.yaml and ~/.flora-cli out of the tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path / "home"))


class TestLoadLayers:
    """Test precedence: defaults < file < environment < command line."""

    def test_defaults_only(self):
        """Test loading with no sources gives the defaults."""
        manager = ConfigManager(environ={})

        config = manager.load()

        assert config.device.mqtt_port == 1883
        assert config.serial.baud_rate == 115200
        assert manager.loaded_path is None

    def test_file_overrides_defaults(self, config_file):
        """Test file values replace defaults key by key."""
        path = config_file({"device": {"ssid": "home", "interval": 300}})

        config = ConfigManager(config_path=path, environ={}).load()

        assert config.device.ssid == "home"
        assert config.device.interval == 300
        assert config.device.mqtt_port == 1883

    def test_env_overrides_file(self, config_file):
        """Test environment variables replace file values with type conversion."""
        path = config_file({"device": {"ssid": "home", "mqtt_port": 1884}})
        environ = {
            "FLORA_CLI_DEVICE_MQTT_PORT": "1885",
            "FLORA_CLI_DEVICE_HAS_RAIN_SENSOR": "yes",
            "FLORA_CLI_SERIAL_PORT": "/dev/ttyACM0",
        }

        config = ConfigManager(config_path=path, environ=environ).load()

        assert config.device.mqtt_port == 1885
        assert config.device.has_rain_sensor is True
        assert config.serial.port == "/dev/ttyACM0"

    def test_cli_overrides_env(self):
        """Test command-line values win and None values are ignored."""
        environ = {"FLORA_CLI_DEVICE_SSID": "env-ssid", "FLORA_CLI_DEVICE_INTERVAL": "90"}
        overrides = {"device": {"ssid": "cli-ssid", "interval": None}}

        config = ConfigManager(environ=environ).load(overrides)

        assert config.device.ssid == "cli-ssid"
        assert config.device.interval == 90

    def test_search_path(self, tmp_path):
        """Test ./flora.yaml is found without --config."""
        (tmp_path / "flora.yaml").write_text("device:\n  ssid: found\n")
        manager = ConfigManager(environ={})

        config = manager.load()

        assert config.device.ssid == "found"
        assert manager.loaded_path == Path("./flora.yaml")

    def test_home_search_path(self, tmp_path):
        """Test ~/.flora-cli/config.yaml is used when there is no local file."""
        home_config = tmp_path / "home" / ".flora-cli" / "config.yaml"
        home_config.parent.mkdir(parents=True)
        home_config.write_text("device:\n  ssid: home-file\n")

        config = ConfigManager(environ={}).load()

        assert config.device.ssid == "home-file"

    def test_empty_file(self, config_file):
        """Test an empty file is the same as no file."""
        path = config_file("")

        config = ConfigManager(config_path=path, environ={}).load()

        assert config.device.ssid == ""

    def test_logging_level(self, config_file):
        """Test the log level string becomes a LogLevel."""
        path = config_file({"logging": {"level": "DEBUG"}})

        config = ConfigManager(config_path=path, environ={}).load()

        assert config.logging.level is LogLevel.DEBUG

    def test_flash_images(self, config_file):
        """Test image lists become FlashImage objects."""
        path = config_file({"flash": {"images": [{"address": "0x10000", "path": "app.bin"}]}})

        config = ConfigManager(config_path=path, environ={}).load()

        assert len(config.flash.images) == 1
        assert config.flash.images[0].address == "0x10000"
        assert config.flash.images[0].path == "app.bin"


class TestLoadErrors:
    """Test load failures."""

    def test_missing_explicit_file(self, tmp_path):
        """Test an explicit path that does not exist is an error."""
        manager = ConfigManager(config_path=tmp_path / "nope.yaml", environ={})

        with pytest.raises(ConfigurationError, match="Config file not found"):
            manager.load()

    def test_invalid_yaml(self, config_file):
        """Test malformed YAML is reported as a configuration error."""
        path = config_file("device: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Failed to load config"):
            ConfigManager(config_path=path, environ={}).load()

    def test_not_a_mapping(self, config_file):
        """Test a YAML list is rejected."""
        path = config_file("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            ConfigManager(config_path=path, environ={}).load()

    def test_validation_failure(self, config_file):
        """Test schema errors are listed in the exception."""
        path = config_file({"serial": {"baud_rate": 12345}})

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(config_path=path, environ={}).load()

        assert "Configuration validation failed" in str(exc_info.value)
        assert "baud_rate" in str(exc_info.value)

    def test_unknown_fields_tolerated(self, config_file):
        """Test unknown file keys are ignored when loading."""
        path = config_file({"device": {"ssid": "home", "colour": "green"}})

        config = ConfigManager(config_path=path, environ={}).load()

        assert config.device.ssid == "home"

    def test_skip_validation(self, config_file):
        """Test validation can be skipped."""
        path = config_file({"serial": {"baud_rate": 12345}})

        config = ConfigManager(config_path=path, environ={}).load(skip_validation=True)

        assert config.serial.baud_rate == 12345


class TestEncryptedValues:
    """Test encrypted passwords in config files."""

    def test_decrypts_password(self, tmp_path, config_file):
        """Test an encrypted password is decrypted when encryption is enabled."""
        key_path = tmp_path / "flora.key"
        token = ConfigEncryption(key_path=key_path).encrypt_value("hunter2")
        path = config_file({
            "device": {"ssid": "home", "password": token},
            "encryption": {"enabled": True, "key_path": str(key_path)},
        })

        config = ConfigManager(config_path=path, environ={}).load()

        assert config.device.password == "hunter2"


class TestIntrospection:
    """Test get_config, validate and show_config."""

    def test_get_config_before_load(self):
        """Test get_config requires load()."""
        with pytest.raises(RuntimeError):
            ConfigManager(environ={}).get_config()

    def test_validate_loaded(self):
        """Test the loaded defaults validate strictly."""
        manager = ConfigManager(environ={})
        manager.load()

        assert manager.validate() == []

    def test_show_config_sources(self, config_file):
        """Test each value is reported with where it came from."""
        path = config_file({"device": {"ssid": "home", "password": "supersecret"}})
        manager = ConfigManager(config_path=path, environ={"FLORA_CLI_DEVICE_INTERVAL": "90"})
        manager.load({"serial": {"port": "COM3"}})

        shown = manager.show_config()

        assert shown["device"]["ssid"] == {"value": "home", "source": "file"}
        assert shown["device"]["password"]["value"] == "*******cret"
        assert shown["device"]["interval"]["source"] == "env"
        assert shown["serial"]["port"]["source"] == "cli"
        assert shown["serial"]["baud_rate"]["source"] == "default"

    def test_show_config_unmasked(self, config_file):
        """Test masking can be turned off."""
        path = config_file({"device": {"password": "supersecret"}})
        manager = ConfigManager(config_path=path, environ={})
        manager.load()

        assert manager.show_config(mask_sensitive=False)["device"]["password"]["value"] == (
            "supersecret"
        )


class TestParseEnvValue:
    """Test environment value conversion."""

    @pytest.mark.parametrize("value,existing,expected", [
        ("true", False, True),
        ("0", True, False),
        ("off", True, False),
        ("42", 1, 42),
        ("abc", 1, "abc"),
        ("text", "", "text"),
        ("5", None, "5"),
    ])
    def test_parse(self, value, existing, expected):
        assert ConfigManager._parse_env_value(value, existing) == expected
