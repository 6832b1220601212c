"""
Logging demo showing cwlogs_sdk wired into the standard logging module.

This example demonstrates:
1. init_handler() attaching a CloudWatchLogsHandler to a logger
2. Custom formatting of the shipped message text
3. Flushing before exit so nothing queued is lost

Run with AWS credentials in the environment:

    CWLOGS_LOG_GROUP=test CWLOGS_LOG_STREAM=demo python examples/logging_demo.py
"""

import logging
import sys

from cwlogs_sdk import ClosePolicy, config_from_env, init_handler


def main():
    config = config_from_env()
    config.log_group_name = config.log_group_name or "test"
    config.log_stream_name = config.log_stream_name or "cwlogs-demo"
    config.create_log_group = True
    config.close_policy = ClosePolicy.RETRY

    def report(error):
        print(f"  [cwlogs] {error}", file=sys.stderr)

    logger = logging.getLogger("demo")
    logger.setLevel(logging.INFO)

    handler = init_handler(
        config,
        logger_name="demo",
        flush_timeout=10.0,
        on_error=report,
    )
    handler.setFormatter(logging.Formatter("%(levelname)s [%(name)s] %(message)s"))

    print(f"Shipping to {config.log_group_name}/{config.log_stream_name}")

    logger.info("loggety log log")
    logger.warning("disk usage at %d%%", 91)
    try:
        1 / 0
    except ZeroDivisionError:
        logger.exception("it's an error")

    print("Flushing...")
    handler.flush()
    print(f"  pending records: {handler.queue.pending_records}")

    logger.removeHandler(handler)
    handler.close()
    print("Done!")


if __name__ == "__main__":
    main()
