"""Logging configuration for the s3tool CLI."""

import logging
import sys


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr; DEBUG when verbose, INFO otherwise.

    The AWS SDK loggers are held at WARNING so request-level chatter does not
    bury the progress line.
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for logger_name in ["boto3", "botocore", "s3transfer", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
