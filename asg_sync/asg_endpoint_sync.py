#!/usr/bin/env python3
"""
ASG Endpoint Sync

Keeps DNS endpoints in step with the running instances of an EC2 Auto Scaling
group. Each run compares the group's instances against either

* Route 53 multivalue-answer A records, each with its own health check, or
* instances registered with an AWS Cloud Map service,

registers what is missing, removes what is stale, waits for the changes to
complete and optionally prunes the service and namespace once they are empty.

Configuration is read from a YAML file (see config.py for the keys).
"""

import argparse
import logging
import sys

import structlog

from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import SyncError
from .sync_logic import sync_endpoints

log = structlog.get_logger()


def configure_logging(debug=False):
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if debug else logging.INFO),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="asg-endpoint-sync",
        description="Sync Auto Scaling group instances into Route 53 or Cloud Map.",
    )
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_PATH, help="Path to the YAML config file")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("-n", "--noop", action="store_true", help="Log changes without making them")
    return parser


def main(argv=None):
    # argparse exits with status 2 on invalid arguments.
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)

    try:
        config = load_config(args.config)
        sync_endpoints(config, noop=args.noop)
    except SyncError as e:
        log.critical("Endpoint sync failed", error=str(e))
        return 1
    except Exception:
        log.critical("An unhandled exception occurred in main", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
