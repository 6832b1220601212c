#!/usr/bin/env python3
"""
Ship script - Send lines from a file or stdin to CloudWatch Logs.

Each input line becomes one log event, timestamped when it is read.
Settings come from cwlogs.yaml (or --config), then CWLOGS_* environment
variables, then the command line.

Usage:
    # Pipe a service's output into a stream
    my-service 2>&1 | python scripts/ship_logs.py --log-group app --log-stream web-1

    # Ship an existing file using cwlogs.yaml settings
    python scripts/ship_logs.py --config cwlogs.yaml app.log

    # Create the log group first if needed
    python scripts/ship_logs.py --log-group app --log-stream batch --create-log-group app.log
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import IO, Optional

# Add cwlogs_sdk to path
sys.path.insert(0, str(Path(__file__).parent.parent / "cwlogs_sdk"))

from cwlogs_sdk.client import CloudWatchLogsClient
from cwlogs_sdk.config import ClosePolicy, QueueConfig, config_from_env, load_config
from cwlogs_sdk.delivery import DeliveryQueue
from cwlogs_sdk.errors import AdmissionError


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace) -> QueueConfig:
    """Merge file, environment and command-line settings."""
    if args.config or os.environ.get("CWLOGS_CONFIG"):
        config = load_config(str(args.config) if args.config else None)
    else:
        config = config_from_env()

    if args.log_group:
        config.log_group_name = args.log_group
    if args.log_stream:
        config.log_stream_name = args.log_stream
    if args.region:
        config.region_name = args.region
    if args.create_log_group:
        config.create_log_group = True
    if args.min_interval_ms:
        config.min_interval_ms = args.min_interval_ms

    # Anything still queued at end of input gets delivered before exit
    config.close_policy = ClosePolicy.RETRY
    return config


def ship(queue: DeliveryQueue, stream: IO[str]) -> int:
    """
    Enqueue every non-empty line of a stream.

    Returns:
        Number of lines accepted by the queue
    """
    accepted = 0
    for line in stream:
        line = line.rstrip("\r\n")
        if not line:
            continue
        future = queue.enqueue(line)
        if future.done() and isinstance(future.exception(), AdmissionError):
            logger.warning(f"Line dropped: {future.exception()}")
            continue
        accepted += 1
    return accepted


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Send log lines to Amazon CloudWatch Logs",
    )
    parser.add_argument(
        "input",
        nargs="?",
        type=Path,
        help="File to read (defaults to stdin)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to cwlogs.yaml configuration file",
    )
    parser.add_argument(
        "--log-group",
        type=str,
        help="Destination log group",
    )
    parser.add_argument(
        "--log-stream",
        type=str,
        help="Destination log stream",
    )
    parser.add_argument(
        "--region",
        type=str,
        help="AWS region",
    )
    parser.add_argument(
        "--create-log-group",
        action="store_true",
        help="Create the log group if it does not exist",
    )
    parser.add_argument(
        "--min-interval-ms",
        type=int,
        help="Delay between delivery attempts",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for delivery after end of input",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = build_config(args)
    try:
        config.validate()
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    client = CloudWatchLogsClient(
        region_name=config.region_name,
        kms_key_id=config.kms_key_id,
        tags=config.tags,
    )
    queue = DeliveryQueue(client, config)

    logger.info(
        f"Shipping to {config.log_group_name}/{config.log_stream_name}"
    )

    if args.input:
        with open(args.input, "r", encoding="utf-8", errors="replace") as f:
            accepted = ship(queue, f)
    else:
        accepted = ship(queue, sys.stdin)

    queue.close()
    delivered = queue.join(timeout=args.timeout)

    if queue.fatal_error is not None:
        print(f"Error: delivery stopped: {queue.fatal_error}")
        return 1
    if not delivered:
        print(f"Error: {queue.pending_records} lines still queued after {args.timeout}s")
        return 1

    print(f"Shipped {accepted} lines to {config.log_group_name}/{config.log_stream_name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
