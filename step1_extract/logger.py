#!/usr/bin/env python3
"""
Logger setup for the reconciliation pipeline
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import config


def setup_logger(log_level: Optional[str] = None, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR); defaults to config.LOGGING
        log_dir: Directory for log files (defaults to config.PATHS['log_folder'])

    Returns:
        Configured logger instance
    """
    log_level = log_level or config.LOGGING['level']
    log_dir = Path(log_dir or config.PATHS['log_folder'])

    # Create log directory
    log_dir.mkdir(parents=True, exist_ok=True)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=config.LOGGING['format'],
        handlers=[
            logging.FileHandler(log_dir / config.LOGGING['log_file']),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)
