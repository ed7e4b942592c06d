#!/usr/bin/env python3
"""Main entry point for BP Monitor Bridge.

This module provides the command line interface that:
1. Scans for Bluetooth blood pressure monitors
2. Connects to a monitor and receives its measurements as they are taken
3. Classifies each reading and optionally publishes it to an MQTT broker

Usage:
    # List nearby devices
    python -m src.main scan

    # Wait for measurements from the strongest monitor in range
    python -m src.main monitor

    # Pick the monitor interactively, reconnect if the link drops
    python -m src.main monitor --choose --auto-reconnect

    # Decode a captured payload
    python -m src.main decode 00b0f420f3a2f3
"""

from __future__ import annotations

import argparse
import asyncio
import copy
import json
import logging
import signal
import sys
from pathlib import Path

import yaml

from src.bp_ble.bleak_transport import BleakTransport, choose_strongest, scan_devices
from src.bp_ble.client import ConnectionManager
from src.bp_ble.events import DisconnectedEvent
from src.bp_ble.exceptions import DecodeError
from src.bp_ble.parser import parse_measurement
from src.bp_ble.transport import BP_SERVICE_UUID, VENDOR_SERVICE_UUID
from src.clinical import check_device_compatibility, status_messages
from src.models import format_pressure
from src.mqtt_publisher import MQTTPublisher, create_mqtt_publisher
from src.session import MeasurementSession, SessionReading

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    "bluetooth": {
        "scan_timeout": 10.0,
        "connect_timeout": 15.0,
    },
    "monitor": {
        "auto_reconnect": False,
        "reconnect_delay": 3.0,
        "history_size": 10,
        "member_id": None,
    },
    "mqtt": {
        "enabled": False,
        "host": "localhost",
        "port": 1883,
        "username": None,
        "password": None,
        "base_topic": "bp_monitor",
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


def prompt_chooser(devices):
    """Interactive device chooser. Empty input cancels."""
    print("\nBlood pressure monitors in range:\n")
    for idx, device in enumerate(devices, 1):
        print(f"  {idx}. {device.address:<20} {device.name or '(unknown)'}")

    answer = input("\nSelect device number (Enter to cancel): ").strip()
    if not answer:
        return None
    try:
        return devices[int(answer) - 1]
    except (ValueError, IndexError):
        print(f"Invalid selection: {answer}")
        return None


def format_reading(reading: SessionReading) -> str:
    """One-line summary of a reading for console output."""
    m = reading.measurement
    flags = [msg.message for msg in reading.messages]
    if not reading.is_valid:
        flags.extend(reading.validation.errors)

    pulse = f"{m.heart_rate} bpm" if m.heart_rate is not None else "-- bpm"
    return (
        f"{m.reading_time:%Y-%m-%d %H:%M:%S} | "
        f"{format_pressure(m.systolic)}/{format_pressure(m.diastolic)} mmHg | "
        f"{pulse} | {reading.htn_stage.value}"
        f"{' [' + '; '.join(flags) + ']' if flags else ''}"
    )


class BPMonitorBridge:
    """Wires the connection manager, session and MQTT sink together."""

    def __init__(self, config: dict, chooser=choose_strongest):
        """Initialize the bridge with configuration.

        Args:
            config: Configuration dictionary
            chooser: Device chooser handed to the bleak transport
        """
        self.config = config
        self._running = False

        bt_config = config.get("bluetooth", {})
        monitor_config = config.get("monitor", {})

        self.transport = BleakTransport(
            scan_timeout=bt_config.get("scan_timeout", 10.0),
            connect_timeout=bt_config.get("connect_timeout", 15.0),
            chooser=chooser,
        )
        self.manager = ConnectionManager(self.transport)
        self.session = MeasurementSession(
            self.manager,
            history_size=monitor_config.get("history_size", 10),
            on_measurement=self._on_reading,
            on_disconnect=self._on_disconnect,
            auto_reconnect=monitor_config.get("auto_reconnect", False),
            reconnect_delay=monitor_config.get("reconnect_delay", 3.0),
        )
        self.member_id = monitor_config.get("member_id")
        self.mqtt: MQTTPublisher | None = None
        self.readings_received = 0

    def _init_mqtt(self) -> bool:
        """Initialize MQTT publisher.

        Returns:
            True if connection successful
        """
        mqtt_config = self.config.get("mqtt", {})
        if not mqtt_config.get("enabled", False):
            logger.info("MQTT publishing disabled in config")
            return False

        try:
            self.mqtt = create_mqtt_publisher(
                host=mqtt_config.get("host", "localhost"),
                port=mqtt_config.get("port", 1883),
                username=mqtt_config.get("username"),
                password=mqtt_config.get("password"),
                base_topic=mqtt_config.get("base_topic", "bp_monitor"),
            )
        except ConnectionError as e:
            logger.error(f"MQTT disabled: {e}")
            return False

        self.mqtt.attach(self.manager.hub)
        self.mqtt.publish_status("online", "Bridge started")
        return True

    def _on_reading(self, reading: SessionReading) -> None:
        self.readings_received += 1
        print(f"  {self.readings_received}. {format_reading(reading)}")
        if self.member_id:
            try:
                payload = self.session.format_for_api(reading, self.member_id)
                print(f"     API: {json.dumps(payload)}")
            except ValueError as e:
                logger.warning(f"Reading not exportable: {e}")

    def _on_disconnect(self, event: DisconnectedEvent) -> None:
        if event.unexpected and not self.config.get("monitor", {}).get("auto_reconnect"):
            logger.info("Monitor went away, stopping")
            self._running = False

    async def run(self, count: int | None = None) -> int:
        """Connect and print readings until count is reached or interrupted.

        Args:
            count: Stop after this many readings (None = run until Ctrl+C)

        Returns:
            Exit code
        """
        self._init_mqtt()

        if not await self.session.connect():
            logger.error(f"Could not connect: {self.session.error}")
            return 1

        device = self.session.device
        if device:
            print(f"\nConnected to {device.name} ({device.id})")
            print("Take a measurement on the monitor, Ctrl+C to stop.\n")
        if self.mqtt and self.mqtt.is_connected:
            self.mqtt.publish_status("connected", f"Connected to {device.name if device else '?'}")

        self._running = True

        def handle_signal(_signum, _frame):
            logger.info("Shutdown signal received")
            self._running = False

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

        while self._running:
            if count is not None and self.readings_received >= count:
                break
            await asyncio.sleep(0.5)

        return 0

    async def cleanup(self) -> None:
        """Clean up resources."""
        self.session.close()
        await self.session.disconnect()

        if self.mqtt:
            self.mqtt.detach(self.manager.hub)
            self.mqtt.publish_status("offline", "Bridge stopped")
            self.mqtt.disconnect()


def load_config(config_path: str | None = None) -> dict:
    """Load configuration from file or use defaults.

    Args:
        config_path: Path to YAML config file

    Returns:
        Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
            if user_config and isinstance(user_config, dict):
                # Merge user config into defaults section by section
                for section, values in user_config.items():
                    section_config = config.get(section)
                    if (
                        section_config is not None
                        and isinstance(section_config, dict)
                        and isinstance(values, dict)
                    ):
                        section_config.update(values)
                    else:
                        config[section] = values

    return config


def setup_logging(config: dict) -> None:
    """Setup logging based on configuration.

    Args:
        config: Configuration dictionary
    """
    log_config = config.get("logging", {})
    level = getattr(logging, log_config.get("level", "INFO").upper())
    format_str = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=format_str, handlers=handlers)


async def cmd_scan(args: argparse.Namespace, config: dict) -> int:
    """Handle scan command."""
    timeout = args.timeout or config.get("bluetooth", {}).get("scan_timeout", 10.0)
    devices = await scan_devices(timeout)

    if not devices:
        print("No devices found.")
        return 1

    bp_services = {BP_SERVICE_UUID, VENDOR_SERVICE_UUID}
    print(f"\n{'MAC Address':<20} {'Name':<30} {'BP service':<12} {'Confidence':<10}")
    print("-" * 74)
    for device, service_uuids in devices:
        has_service = "yes" if bp_services.intersection(service_uuids) else "no"
        confidence = check_device_compatibility(device.name).confidence
        name = device.name or "(unknown)"
        print(f"{device.address:<20} {name:<30} {has_service:<12} {confidence:<10}")
    print()
    return 0


async def cmd_monitor(args: argparse.Namespace, config: dict) -> int:
    """Handle monitor command."""
    monitor_config = config["monitor"]
    if args.auto_reconnect:
        monitor_config["auto_reconnect"] = True
    if args.member_id:
        monitor_config["member_id"] = args.member_id

    bridge = BPMonitorBridge(config, chooser=prompt_chooser if args.choose else choose_strongest)
    try:
        return await bridge.run(count=args.count)
    finally:
        await bridge.cleanup()


def cmd_decode(args: argparse.Namespace) -> int:
    """Handle decode command."""
    try:
        data = bytes.fromhex(args.payload)
    except ValueError as e:
        print(f"Invalid hex payload: {e}")
        return 1

    try:
        measurement = parse_measurement(data)
    except DecodeError as e:
        print(f"Decode error: {e}")
        return 1

    print(json.dumps(measurement.to_dict(), indent=2))
    for message in status_messages(measurement.status):
        print(f"{message.level.upper()}: {message.message}")
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Bluetooth Blood Pressure Monitor Bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config/config.yaml",
        help="Path to config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    scan_parser = subparsers.add_parser("scan", help="List nearby BLE devices")
    scan_parser.add_argument(
        "--timeout",
        "-t",
        type=float,
        help="Scan timeout in seconds (overrides config)",
    )

    monitor_parser = subparsers.add_parser("monitor", help="Receive measurements")
    monitor_parser.add_argument(
        "--choose",
        action="store_true",
        help="Pick the monitor interactively instead of the strongest signal",
    )
    monitor_parser.add_argument(
        "--auto-reconnect",
        action="store_true",
        help="Reconnect once after an unexpected disconnect",
    )
    monitor_parser.add_argument(
        "--member-id",
        type=str,
        help="Print each reading in REST API format for this member",
    )
    monitor_parser.add_argument(
        "--count",
        "-n",
        type=int,
        help="Stop after this many readings",
    )

    decode_parser = subparsers.add_parser("decode", help="Decode a hex measurement payload")
    decode_parser.add_argument("payload", help="Measurement characteristic value as hex")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = load_config(args.config)

    if args.debug:
        config["logging"]["level"] = "DEBUG"
    setup_logging(config)

    try:
        if args.command == "scan":
            exit_code = asyncio.run(cmd_scan(args, config))
        elif args.command == "monitor":
            exit_code = asyncio.run(cmd_monitor(args, config))
        elif args.command == "decode":
            exit_code = cmd_decode(args)
        else:
            parser.print_help()
            exit_code = 1

        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        if args.debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
