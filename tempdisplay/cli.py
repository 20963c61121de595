#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

import argparse
import asyncio
import logging
import signal
import sys

from .config import DEFAULT_ADDRESS, DEFAULT_POLL_INTERVAL_MS, DEFAULT_PREFERENCES, MonitorConfig
from .error import TempDisplayError
from .hwmon import HwmonProvider
from .monitor import Monitor, open_resources
from .sensor import Category, SensorReader
from .transport import iter_port_names

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

log = logging.getLogger("tempdisplay")


def ls_ports(_):
    names = list(iter_port_names())
    if not names:
        print("No serial ports found")
    for name in names:
        print(name)


def ls_sensors(args):
    with HwmonProvider() as provider:
        devices = provider.enumerate_devices()
    if args.driver:
        devices = [dev for dev in devices if dev.name == args.driver]
    for dev in sorted(devices, key=lambda d: d.index):
        dev.refresh()
        print(f"\n{dev.hardware_type.name}: {dev.name} ({dev.syspath.name})")
        temperatures = dev.temperatures()
        if not temperatures:
            print("- No temperature sensors found")
        for sensor in temperatures:
            value = "-" if sensor.value is None else f"{sensor.value:.1f}°C"
            print(f"- {sensor.name}: {value}")


def make_config(args) -> MonitorConfig:
    preferences = dict(DEFAULT_PREFERENCES)
    if args.cpu_sensor is not None:
        preferences[Category.CPU] = args.cpu_sensor
    if args.gpu_sensor is not None:
        preferences[Category.GPU] = args.gpu_sensor
    return MonitorConfig(
        poll_interval_ms=args.interval,
        address=None if args.no_serial else args.address,
        preferences=preferences,
    )


def log_startup(config: MonitorConfig, provider: HwmonProvider):
    log.info("Available serial ports: %s", ", ".join(iter_port_names()) or "none")
    for dev in provider.enumerate_devices():
        dev.refresh()
        temperatures = ", ".join(
            f"{sensor.name}={sensor.value:.1f}°C" for sensor in dev.temperatures() if sensor.value is not None
        )
        log.info("%s %s: %s", dev.hardware_type.name, dev.name, temperatures or "no temperature sensors")
    reader = SensorReader(provider, config.preferences)
    for category in Category:
        candidates = ", ".join(reading.label for reading in reader.read_all(category))
        preference = ", ".join(config.preferences.get(category, ())) or "any"
        log.info("%s sensors: %s (preference: %s)", category.value, candidates or "none", preference)


async def monitor(config: MonitorConfig):
    with open_resources(config) as (provider, transport):
        log_startup(config, provider)
        mon = Monitor.from_config(config, provider, transport)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, mon.stop)
        try:
            await mon.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


async def once(config: MonitorConfig):
    with open_resources(config) as (provider, transport):
        line = await Monitor.from_config(config, provider, transport).poll()
    if line is None:
        print("CPU or GPU temperature not available")
        return 1
    print(line, end="")
    return 0


def non_negative_int(text):
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0 (got {value})")
    return value


def add_monitor_arguments(parser):
    parser.add_argument("-a", "--address", default=DEFAULT_ADDRESS, help="serial port (default: %(default)s)")
    parser.add_argument("--no-serial", action="store_true", help="console only (do not open the serial port)")
    parser.add_argument(
        "-i", "--interval", default=DEFAULT_POLL_INTERVAL_MS, type=non_negative_int, help="poll interval in ms"
    )
    parser.add_argument("--cpu-sensor", nargs="*", help="preferred CPU sensor name substring(s)")
    parser.add_argument("--gpu-sensor", nargs="*", help="preferred GPU sensor name substring(s)")


def cli():
    parser = argparse.ArgumentParser(prog="tempdisplay", description="send CPU/GPU temperatures to a serial display")
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        default="info",
        help="log level",
    )
    sub_parsers = parser.add_subparsers(
        title="sub-commands", description="valid sub-commands", help="select one command", required=True, dest="command"
    )
    run = sub_parsers.add_parser("run", help="monitor temperatures and send them to the display")
    add_monitor_arguments(run)
    once = sub_parsers.add_parser("once", help="single poll cycle")
    add_monitor_arguments(once)
    sensors = sub_parsers.add_parser("sensors", aliases=["ls"], help="list temperature sensors")
    sensors.add_argument("-d", "--driver", help="only devices of the given driver (ex: k10temp)")
    sub_parsers.add_parser("ports", help="list serial ports")
    return parser


def run(args):
    if args.command == "run":
        asyncio.run(monitor(make_config(args)))
    elif args.command == "once":
        return asyncio.run(once(make_config(args)))
    elif args.command in {"sensors", "ls"}:
        ls_sensors(args)
    elif args.command == "ports":
        ls_ports(args)
    return 0


def main(args=None):
    parser = cli()
    args = parser.parse_args(args=args)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    try:
        return run(args)
    except KeyboardInterrupt:
        print("\rCtrl-C pressed. Bailing out")
    except TempDisplayError as error:
        log.error("%s", error)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
