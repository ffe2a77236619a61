#!/usr/bin/env python3
"""
Send Job Script.

Encode a YAML job file and send it to the LAOS controller, or write the
encoded stream to a file instead.

Usage:
    python -m laser_control.scripts.send_job badge.yaml
    python -m laser_control.scripts.send_job badge.yaml --dry-run badge.lgc
    python -m laser_control.scripts.send_job badge.yaml \\
        --set "Hostname / IP=10.0.0.7" --set "Use TFTP instead of TCP=no"

Settings keys (for --set):
    Hostname / IP, Port, Use GCode (yes/no), Laserbed width,
    Laserbed height, X axis goes right to left (yes/no),
    mm per Step (for SimpleMode), Use TFTP instead of TCP,
    Additional space per Raster line
"""

from __future__ import annotations

import argparse
import logging
import sys

import yaml

from laser_control.configs.loader import ConfigError, apply_settings, load_config
from laser_control.encoding.encoder import EncodingError, JobEncoder
from laser_control.hardware.driver import IllegalJobError, LaosDriver, SendProgress
from laser_control.hardware.transport import TransportError
from laser_control.job_ir.job_file import load_job_file
from laser_control.utils.fs import atomic_write_bytes
from laser_control.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _parse_set(items: list[str]) -> dict[str, str]:
    settings: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigError(f"--set expects KEY=VALUE, got {item!r}")
        settings[key] = value
    return settings


def _print_progress(progress: SendProgress) -> None:
    print(f"\r[{progress.percent:3d}%] {progress.task:<16}", end="", flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Encode and send a laser job",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("job", type=str, help="Job file (job.v1 YAML)")
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Device configuration file path",
    )
    parser.add_argument(
        "--set",
        dest="settings",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a device setting (repeatable)",
    )
    parser.add_argument(
        "--dry-run",
        type=str,
        metavar="OUT",
        help="Write the encoded stream to OUT instead of sending it",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, context={"app": "send_job"})

    # Load config
    try:
        config = load_config(args.config)
        config = apply_settings(config, _parse_set(args.settings))
    except (ConfigError, FileNotFoundError, yaml.YAMLError) as e:
        print(f"Error loading config: {e}")
        return 1

    try:
        job = load_job_file(args.job)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"Error loading job: {e}")
        return 1

    driver = LaosDriver(config)

    # Dry run - just encode
    if args.dry_run:
        try:
            driver.check_job(job)
            data = JobEncoder(config).encode(job)
        except IllegalJobError as e:
            print(f"Illegal job: {e}")
            return 1
        except EncodingError as e:
            print(f"Error: {e}")
            return 1
        atomic_write_bytes(args.dry_run, data)
        print(f"Encoded {len(data)} bytes to {args.dry_run}")
        return 0

    c = config.connection
    print(
        f"Sending {job.name!r} to {c.hostname}:{c.port} "
        f"via {'TFTP' if c.use_tftp else 'TCP'}..."
    )
    try:
        driver.send_job(job, _print_progress)
    except KeyboardInterrupt:
        print("\nSend interrupted.")
        return 1
    except (IllegalJobError, EncodingError, TransportError) as e:
        print(f"\nError: {e}")
        logger.exception("Send failed")
        return 1

    print("\nJob sent.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
