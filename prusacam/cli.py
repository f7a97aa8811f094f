"""Command line entrypoint for the camera service."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

from prusacam.config import DEFAULT_CONFIG_FILE, Config, load_config
from prusacam.logging_setup import configure_logging
from prusacam.server import create_app
from prusacam.service import PrusaCam


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prusacam",
        description="Serve camera snapshots and record print time-lapses for a PrusaLink printer.",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="Path to the JSON configuration file")
    parser.add_argument("-p", "--port", type=int, help="Listen port")
    parser.add_argument(
        "-c",
        "--prusaconnect",
        action="store_true",
        default=None,
        help="Enable PrusaConnect snapshot publishing",
    )
    parser.add_argument("--timelapse", action="store_true", default=None, help="Enable time-lapse capture")
    parser.add_argument("--log-level", help="debug, info, warn or error")
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Layer command line flags over the loaded configuration."""
    changes = {}
    if args.port is not None:
        changes["port"] = args.port
    if args.log_level:
        changes["log_level"] = args.log_level
    if args.prusaconnect:
        changes["prusa_connect"] = dataclasses.replace(config.prusa_connect, enabled=True)
    if args.timelapse:
        changes["timelapse"] = dataclasses.replace(config.timelapse, enabled=True)
    return dataclasses.replace(config, **changes) if changes else config


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    config = apply_overrides(load_config(args.config), args)

    logger = configure_logging(config.log_level, log_file=config.log_file)
    logger.info("Starting service on port %s (log level %s)", config.port, config.log_level)
    logger.debug("Config: %s", config)

    try:
        service = PrusaCam(config, logger=logger)
        service.start()
    except (ValueError, OSError, RuntimeError) as exc:
        logger.error("Failed to start service: %s", exc)
        return 1

    app = create_app(service)
    try:
        app.run(host="0.0.0.0", port=config.port, threaded=True)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Interrupted")
    finally:
        service.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
