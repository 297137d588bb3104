# -*- coding: utf-8 -*-
"""
Utility Functions

This module contains small helpers used across the health board mapping
pipeline: logging setup, JSON persistence and run directories.
"""

import os
import json
import logging
from datetime import datetime

import numpy as np
import pandas as pd

from .config import LOGGER_NAME, LOG_FORMAT, LOG_LEVEL


def setup_logging(log_file=None, level=LOG_LEVEL):
    """
    Set up logging configuration.

    Args:
        log_file: Path to log file, or None for console only
        level: Logging level name

    Returns:
        Logger object
    """
    logger = logging.getLogger(LOGGER_NAME)

    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    logger.setLevel(numeric_level)

    formatter = logging.Formatter(LOG_FORMAT)

    # Re-running the pipeline in one session must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def _replace_nan(obj):
    """Swap float NaN for None, recursing into dicts and lists."""
    if isinstance(obj, float) and np.isnan(obj):
        return None
    if isinstance(obj, dict):
        return {key: _replace_nan(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_replace_nan(value) for value in obj]
    return obj


def _serialize(obj):
    if isinstance(obj, np.ndarray):
        return _replace_nan(obj.tolist())
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return None if np.isnan(obj) else float(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, pd.Series):
        return _replace_nan(obj.to_dict())
    if isinstance(obj, (pd.Timestamp, datetime)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def save_json(data, file_path):
    """
    Save data as JSON file.

    Args:
        data: Data to save
        file_path: Path to save JSON file

    Returns:
        Path to saved file
    """
    directory = os.path.dirname(file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(_replace_nan(data), f, default=_serialize, indent=2, allow_nan=False)

    return file_path


def load_json(file_path):
    """
    Load data from JSON file.

    Args:
        file_path: Path to JSON file

    Returns:
        Loaded data
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"JSON file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def create_timestamp_directory(base_dir, prefix="run"):
    """
    Create a directory with timestamp for storing results.

    Args:
        base_dir: Base directory
        prefix: Prefix for directory name

    Returns:
        Path to created directory
    """
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    dir_path = os.path.join(base_dir, f"{prefix}_{timestamp}")
    os.makedirs(dir_path, exist_ok=True)
    return dir_path


def convert_time_format(seconds):
    """Convert seconds to a human-readable time format."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"
