#!/usr/bin/env python3
"""Logging configuration for WDSC."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional


def setup_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """Setup logging configuration for WDSC.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
               If None, reads from WDSC_LOG_LEVEL env var, defaults to INFO
        log_file: Optional path to log file. If None, logs to console only
    """
    if level is None:
        level = os.environ.get('WDSC_LOG_LEVEL', 'INFO').upper()

    numeric_level = getattr(logging, level, logging.INFO)

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    simple_formatter = logging.Formatter(
        fmt='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)

    # Use detailed formatter for DEBUG, simple for others
    if numeric_level == logging.DEBUG:
        console_handler.setFormatter(detailed_formatter)
    else:
        console_handler.setFormatter(simple_formatter)

    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)

    # Suppress noisy third-party loggers
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('watchdog').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"WDSC logging initialized at {level} level")
    if log_file:
        logger.info(f"Logging to file: {log_file}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """Prefixes log messages with the sync configuration name."""

    def process(self, msg, kwargs):
        return f"[{self.extra['sync_name']}] {msg}", kwargs


def get_sync_logger(logger: logging.Logger, sync_name: str) -> SyncLoggerAdapter:
    """Get a logger that tags messages with a configuration name.

    Args:
        logger: Underlying module logger
        sync_name: Sync configuration display name

    Returns:
        Logger adapter
    """
    return SyncLoggerAdapter(logger, {'sync_name': sync_name})
