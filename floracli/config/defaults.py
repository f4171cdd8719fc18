"""Default configuration values.

The defaults match the stock twESP32Flora firmware on a XIAO ESP32C3, so
only the Wi-Fi and broker settings have to be supplied.
"""

from floracli.config.config_models import (
    Config,
    ProvisioningConfig,
    SerialConfig,
    FlashConfig,
    FlashImage,
    LoggingConfig,
    EncryptionConfig,
    LogLevel,
    SensorType,
)


def get_default_config() -> Config:
    """Get the default configuration.

    Returns:
        Config: Complete configuration with all defaults populated.
    """
    return Config(
        device=ProvisioningConfig(
            ssid="",  # Required, no sensible default
            password="",
            mqtt_ip="",  # Required, no sensible default
            mqtt_port=1883,  # Standard unencrypted MQTT port
            interval=60,  # Seconds between reports
            sensor_type=SensorType.DHT22.value,
            has_rain_sensor=False
        ),
        serial=SerialConfig(
            port="",
            baud_rate=115200,  # Firmware console speed
            read_timeout=60,  # Seconds; covers operator calibration steps
            reset_settle_ms=500,  # DTR low time before re-assertion
            boot_wait_ms=1000,  # Boot time before the first read
            answer_delay_ms=100,  # Pause between prompt and answer
            reset_pulse_ms=100,  # DTR low time for the reset command
            idle_read_limit=0  # Unlimited
        ),
        flash=FlashConfig(
            esptool="",  # Auto-detect on PATH
            chip="esp32c3",
            baud_rate=921600,
            before="default-reset",
            after="hard-reset",
            flash_mode="dio",
            flash_freq="80m",
            flash_size="4MB",
            images=[
                FlashImage("0x0", "./twESP32Flora.ino.bootloader.bin"),
                FlashImage("0x8000", "./twESP32Flora.ino.partitions.bin"),
                FlashImage("0xe000", "./boot_app0.bin"),
                FlashImage("0x10000", "./twESP32Flora.ino.bin"),
            ]
        ),
        logging=LoggingConfig(
            enabled=False,  # Opt-in
            level=LogLevel.INFO,
            log_to_file=False,
            log_to_console=True,
            log_file_path=None,  # Auto-generated: ~/.flora-cli/logs/comm_{timestamp}.log
            max_file_size_mb=10,
            backup_count=5
        ),
        encryption=EncryptionConfig(
            enabled=False,  # Opt-in
            key_path=None  # Default: ~/.flora-cli/.key
        )
    )
