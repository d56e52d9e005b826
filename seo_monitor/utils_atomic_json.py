"""
Utility functions for atomic JSON file operations.

Prevents corruption by ensuring report and state files are never left in a
half-written state.
"""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from seo_monitor.core.logging_config import get_logger

logger = get_logger(__name__)


def atomic_json_save(data: dict[str, Any], output_file: str | Path) -> bool:
    """
    Save JSON data to file using atomic write operations.

    1. Write to a temporary file in the target directory
    2. Validate the temporary file parses as JSON
    3. Atomically move the temporary file to the final location

    Args:
        data: Dictionary to save as JSON
        output_file: Target file path

    Returns:
        True if save succeeded

    Raises:
        OSError / TypeError / ValueError: if the data cannot be written; the
        temporary file is removed before re-raising.
    """
    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path = tempfile.mkstemp(suffix=".json", dir=output_path.parent, text=True)

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        with open(temp_path, encoding="utf-8") as f:
            json.load(f)

        shutil.move(temp_path, output_path)
        return True

    except Exception:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise


def load_json_with_recovery(file_path: str | Path, default_value: dict[Any, Any] | None = None) -> dict[Any, Any]:
    """
    Load JSON file, falling back to default_value when missing or corrupted.

    Args:
        file_path: Path to JSON file
        default_value: Value to return if file is invalid (defaults to {})

    Returns:
        Loaded JSON data or default_value
    """
    if default_value is None:
        default_value = {}

    path = Path(file_path)
    if not path.exists():
        return default_value

    try:
        with open(path, encoding="utf-8") as f:
            data: dict[Any, Any] = json.load(f)
        return data

    except json.JSONDecodeError as e:
        logger.warning("JSON file is corrupted, using default value", extra={"file_path": str(path), "error": str(e)})
        return default_value

    except UnicodeDecodeError as e:
        logger.warning("JSON file has encoding issues, using default value", extra={"file_path": str(path), "error": str(e)})
        return default_value
