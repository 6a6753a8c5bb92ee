"""
tripstore - Main entry point.

Usage:
    python -m tripstore.main dump
    python -m tripstore.main scan-changes

Configuration is entirely via TRIPSTORE_* environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter

from .config import Settings

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(settings: Settings) -> None:
    """Install a single stderr handler on the root logger.

    stdout is left for command output.

    Args:
        settings: Loaded configuration
    """
    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root_logger.handlers = [handler]

    settings.log_config()


if __name__ == "__main__":
    from .tools.admin_cli import main

    main()
