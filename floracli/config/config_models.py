"""Configuration data models for Flora CLI.

This module defines immutable configuration dataclasses with defaults that
match the device firmware expectations. All dataclasses are frozen; a
configuration is built once at startup and handed to the components that
need it.
"""

from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import List, Optional, Dict, Any


class LogLevel(Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class SensorType(Enum):
    """Temperature and humidity sensor fitted to the device."""
    DHT22 = "DHT22"
    BME280 = "BME280"


@dataclass(frozen=True)
class ProvisioningConfig:
    """Values written to the device during the configuration dialog.

    Attributes:
        ssid: Wi-Fi network name (required)
        password: Wi-Fi password
        mqtt_ip: MQTT broker address (required)
        mqtt_port: MQTT broker port
        interval: Report interval in seconds
        sensor_type: Sensor type tag sent verbatim to the device
        has_rain_sensor: Whether a rain sensor is attached
    """
    ssid: str = ""
    password: str = ""
    mqtt_ip: str = ""
    mqtt_port: int = 1883
    interval: int = 60
    sensor_type: str = SensorType.DHT22.value
    has_rain_sensor: bool = False

    def missing_fields(self) -> List[str]:
        """Names of required fields that are empty."""
        missing = []
        if not self.ssid:
            missing.append("ssid")
        if not self.mqtt_ip:
            missing.append("mqtt_ip")
        return missing


@dataclass(frozen=True)
class SerialConfig:
    """Serial port and dialog pacing configuration."""
    port: str = ""
    baud_rate: int = 115200
    read_timeout: int = 60  # seconds
    reset_settle_ms: int = 500
    boot_wait_ms: int = 1000
    answer_delay_ms: int = 100
    reset_pulse_ms: int = 100
    idle_read_limit: int = 0  # 0 disables the limit


@dataclass(frozen=True)
class FlashImage:
    """One binary written by the flashing tool."""
    address: str
    path: str


def _default_images() -> List[FlashImage]:
    return [
        FlashImage("0x0", "./twESP32Flora.ino.bootloader.bin"),
        FlashImage("0x8000", "./twESP32Flora.ino.partitions.bin"),
        FlashImage("0xe000", "./boot_app0.bin"),
        FlashImage("0x10000", "./twESP32Flora.ino.bin"),
    ]


@dataclass(frozen=True)
class FlashConfig:
    """Firmware flashing tool configuration (XIAO ESP32C3 layout)."""
    esptool: str = ""
    chip: str = "esp32c3"
    baud_rate: int = 921600
    before: str = "default-reset"
    after: str = "hard-reset"
    flash_mode: str = "dio"
    flash_freq: str = "80m"
    flash_size: str = "4MB"
    images: List[FlashImage] = field(default_factory=_default_images)


@dataclass(frozen=True)
class LoggingConfig:
    """Communication logging configuration."""
    enabled: bool = False
    level: LogLevel = LogLevel.INFO
    log_to_file: bool = False
    log_to_console: bool = True
    log_file_path: Optional[str] = None
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass(frozen=True)
class EncryptionConfig:
    """Encryption of sensitive values (the Wi-Fi password)."""
    enabled: bool = False
    key_path: Optional[str] = None


@dataclass(frozen=True)
class Config:
    """Complete configuration object with all sections."""
    device: ProvisioningConfig = field(default_factory=ProvisioningConfig)
    serial: SerialConfig = field(default_factory=SerialConfig)
    flash: FlashConfig = field(default_factory=FlashConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    encryption: EncryptionConfig = field(default_factory=EncryptionConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary.

        Enums become their values and nested dataclasses become dicts, so
        the result can be dumped to YAML or validated against the schema.
        """
        def convert_value(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, list):
                return [convert_value(item) for item in obj]
            elif isinstance(obj, dict):
                return {k: convert_value(v) for k, v in obj.items()}
            return obj

        return convert_value(asdict(self))

    def mask_sensitive(self) -> 'Config':
        """Return copy with the Wi-Fi password masked.

        Only the last 4 characters stay visible.
        """
        password = self.device.password
        if password and len(password) > 4:
            password = '*' * (len(password) - 4) + password[-4:]
        return replace(self, device=replace(self.device, password=password))
