"""Flora CLI - provisioning tool for twESP32Flora devices.

Commands:
  list     list USB serial ports
  monitor  print device output
  config   run the configuration dialog
  write    flash firmware with esptool
  reset    reset the device
  version  show version
"""

import argparse
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from floracli import __version__
from floracli.config import Config, ConfigManager, LogLevel
from floracli.config import config_cli
from floracli.core import (
    FirmwareFlasher,
    FloraCliError,
    ProvisioningSession,
    SerialHandler,
    monitor_device,
    reset_device,
)
from floracli.logging import CommunicationLogger

COMMANDS = ("list", "monitor", "config", "write", "reset", "version")


def list_ports() -> int:
    """Print the USB serial ports."""
    ports = SerialHandler.discover_ports(usb_only=True)
    if not ports:
        print("No serial ports found.")
        return 0
    for port in ports:
        print(port.summary())
    return 0


def _require_port(config: Config) -> Optional[str]:
    if not config.serial.port:
        print("Error: --port is required for this command", file=sys.stderr)
        return None
    return config.serial.port


def run_monitor(config: Config, logger: Optional[CommunicationLogger] = None) -> int:
    """Print device output until interrupted or disconnected."""
    port = _require_port(config)
    if port is None:
        return 1
    handler = SerialHandler(port, baud_rate=config.serial.baud_rate, logger=logger)
    with handler:
        monitor_device(handler, logger=logger)
    return 0


def run_config(config: Config, logger: Optional[CommunicationLogger] = None) -> int:
    """Run the configuration dialog against the device."""
    port = config.serial.port
    handler = SerialHandler(port, baud_rate=config.serial.baud_rate, logger=logger)
    session = ProvisioningSession(
        handler,
        config.device,
        serial_config=config.serial,
        logger=logger
    )
    session.validate()
    if _require_port(config) is None:
        return 1

    result = session.run()
    if result.configured:
        print("Config successful.")
    else:
        print("Device disconnected, assuming config finished.")
    return 0


def run_write(config: Config, logger: Optional[CommunicationLogger] = None) -> int:
    """Flash firmware; returns the flashing tool's exit status."""
    flasher = FirmwareFlasher(config.serial.port, config.flash, logger=logger)
    return 0 if flasher.flash() == 0 else 1


def run_reset(config: Config, logger: Optional[CommunicationLogger] = None) -> int:
    """Pulse DTR to reboot the device."""
    port = _require_port(config)
    if port is None:
        return 1
    handler = SerialHandler(port, baud_rate=config.serial.baud_rate, logger=logger)
    reset_device(handler, pulse_ms=config.serial.reset_pulse_ms, logger=logger)
    return 0


def build_overrides(args: argparse.Namespace) -> Dict[str, Dict[str, Any]]:
    """Map command-line options onto config sections (None means not given)."""
    return {
        "device": {
            "ssid": args.ssid,
            "password": args.password,
            "mqtt_ip": args.mqtt_ip,
            "mqtt_port": args.mqtt_port,
            "interval": args.interval,
            "sensor_type": args.sensor,
            "has_rain_sensor": args.rain,
        },
        "serial": {
            "port": args.port,
            "baud_rate": args.baud,
            "read_timeout": args.timeout,
        },
        "flash": {
            "esptool": args.esptool,
        },
    }


def create_logger(args: argparse.Namespace, config: Config) -> Optional[CommunicationLogger]:
    """Create the communication logger if logging was requested."""
    if not (args.log or config.logging.enabled):
        return None

    log_file_path = args.log_file or config.logging.log_file_path
    if not log_file_path:
        log_dir = Path.home() / ".flora-cli" / "logs"
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file_path = str(log_dir / f"comm_{timestamp}.log")

    # --log always writes a file; console output is opt-in on the command line
    if args.log:
        logging_config = replace(
            config.logging, log_to_file=True, log_to_console=args.log_to_console
        )
    else:
        logging_config = replace(
            config.logging,
            log_to_console=args.log_to_console or config.logging.log_to_console
        )
    if args.log_level:
        logging_config = replace(logging_config, level=LogLevel(args.log_level))

    return CommunicationLogger.from_config(logging_config, log_file_path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flora-cli",
        description="Flora CLI - provision twESP32Flora devices over USB serial",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s list
  %(prog)s --port /dev/ttyACM0 write
  %(prog)s --port /dev/ttyACM0 --ssid home --password secret --mqtt-ip 192.168.1.10 config
  %(prog)s --port COM3 --sensor BME280 --rain --interval 300 config
  %(prog)s --port COM3 monitor

  # Configuration file examples:
  %(prog)s --generate-config
  %(prog)s --config flora.yaml --show-config
  %(prog)s --encrypt-value "wifi-password"
        """
    )

    parser.add_argument('command', nargs='?', choices=COMMANDS, help='Command to run')

    parser.add_argument('--port', type=str, help='Serial port device (e.g., COM3, /dev/ttyACM0)')
    parser.add_argument('--baud', type=int, help='Baud rate (default: 115200)')
    parser.add_argument('--timeout', type=int, metavar='SECONDS',
                        help='Read timeout during configuration (default: 60)')

    parser.add_argument('--ssid', type=str, help='Wi-Fi SSID')
    parser.add_argument('--password', type=str, help='Wi-Fi password')
    parser.add_argument('--mqtt-ip', dest='mqtt_ip', type=str, help='MQTT broker IP address')
    parser.add_argument('--mqtt-port', dest='mqtt_port', type=int,
                        help='MQTT broker port (default: 1883)')
    parser.add_argument('--interval', type=int, help='MQTT send interval in seconds (default: 60)')
    parser.add_argument('--sensor', type=str, choices=['DHT22', 'BME280'],
                        help='Temperature and humidity sensor type (default: DHT22)')
    parser.add_argument('--rain', action='store_true', default=None, help='Has rain sensor')
    parser.add_argument('--no-rain', dest='rain', action='store_false', default=None,
                        help='No rain sensor (overrides the config file)')

    parser.add_argument('--esptool', type=str, metavar='PATH', help='Path to esptool')

    parser.add_argument('--config', type=str, metavar='PATH', help='Configuration file')
    parser.add_argument('--verbose', action='store_true', help='Enable verbose output')

    parser.add_argument('--log', action='store_true', help='Enable communication logging')
    parser.add_argument('--log-file', type=str, metavar='PATH',
                        help='Log file (default: ~/.flora-cli/logs/comm_YYYYMMDD_HHMMSS.log)')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Log level (default: INFO)')
    parser.add_argument('--log-to-console', action='store_true',
                        help='Also write log entries to stderr')

    parser.add_argument('--show-config', action='store_true',
                        help='Show current configuration with sources')
    parser.add_argument('--validate-config', action='store_true',
                        help='Validate configuration file')
    parser.add_argument('--generate-config', action='store_true',
                        help='Write a default configuration file (flora.yaml)')
    parser.add_argument('--force', action='store_true',
                        help='Overwrite existing file (use with --generate-config)')
    parser.add_argument('--encrypt-value', type=str, metavar='VALUE',
                        help='Encrypt a value for use as device.password')
    parser.add_argument('--config-schema', action='store_true',
                        help='Output JSON schema for configuration')

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.config_schema:
        return config_cli.config_schema_command()

    if args.generate_config:
        return config_cli.generate_config_command(args.config or "./flora.yaml", args.force)

    if args.validate_config and args.config:
        return config_cli.validate_config_command(config_path=args.config)

    if args.command == "version":
        print(f"flora-cli {__version__}")
        return 0

    if args.command == "list":
        return list_ports()

    manager = ConfigManager(config_path=Path(args.config) if args.config else None)
    config = config_cli.load_config_or_report(manager, build_overrides(args))
    if config is None:
        return 1

    if args.verbose and manager.loaded_path:
        print(f"Configuration loaded from {manager.loaded_path}")

    if args.show_config:
        return config_cli.show_config_command(manager)

    if args.validate_config:
        return config_cli.validate_config_command(manager=manager)

    if args.encrypt_value:
        return config_cli.encrypt_value_command(args.encrypt_value, config.encryption)

    if args.command is None:
        parser.print_help()
        return 0

    handlers = {
        "monitor": run_monitor,
        "config": run_config,
        "write": run_write,
        "reset": run_reset,
    }

    logger = None
    try:
        logger = create_logger(args, config)
        if logger and logger.enable_file and args.verbose:
            print(f"Logging enabled: {logger.log_file_path}")
        return handlers[args.command](config, logger)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1
    except FloraCliError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1
    finally:
        if logger:
            logger.close()


if __name__ == '__main__':
    sys.exit(main())
