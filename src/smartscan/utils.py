"""
Utility functions for document scanning
"""

import os
import re
import sys
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

import magic
from loguru import logger


ALLOWED_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.webp', '.bmp', '.tiff']


def validate_image_file(file_path: str, allowed_extensions: Optional[List[str]] = None) -> Tuple[bool, str]:
    """
    Validate if file is a valid image

    Args:
        file_path: Path to file
        allowed_extensions: List of allowed extensions (default: common image formats)

    Returns:
        (is_valid, message)
    """
    if allowed_extensions is None:
        allowed_extensions = ALLOWED_EXTENSIONS

    if not os.path.exists(file_path):
        return False, "File not found"

    ext = os.path.splitext(file_path)[1].lower()
    if ext not in allowed_extensions:
        return False, f"Invalid extension: {ext}. Allowed: {allowed_extensions}"

    # Verify MIME type (don't trust extension alone)
    try:
        mime = magic.from_file(file_path, mime=True)
        if not mime.startswith('image/'):
            return False, f"Not an image file (MIME type: {mime})"
    except Exception as e:
        logger.warning(f"Could not verify MIME type: {e}")

    return True, "Valid image file"


def validate_image_bytes(data: bytes) -> Tuple[bool, str]:
    """Same MIME check as validate_image_file, for in-memory uploads."""
    if not data:
        return False, "Empty file"
    try:
        mime = magic.from_buffer(data[:2048], mime=True)
        if not mime.startswith('image/'):
            return False, f"Not an image file (MIME type: {mime})"
    except Exception as e:
        logger.warning(f"Could not verify MIME type: {e}")
    return True, "Valid image file"


def sanitize_filename(name: Optional[str]) -> str:
    """
    Turn a document name into a safe filename stem

    Removes characters invalid on common filesystems (< > : " / \\ | ? *),
    collapses whitespace to single underscores, strips one leading and one
    trailing dot/underscore, limits to 100 characters and lowercases.

    >>> sanitize_filename("Rechnung Telekom 49,99 €")
    'rechnung_telekom_49,99_€'
    """
    if not name:
        return "dokument"

    name = re.sub(r'[<>:"/\\|?*]', '', name)
    name = re.sub(r'\s+', '_', name)
    name = re.sub(r'_{2,}', '_', name)
    name = re.sub(r'^[._]', '', name)
    name = re.sub(r'[._]$', '', name)
    name = name[:100].lower()

    return name or "dokument"


def format_date(value: Union[date, datetime, str, None] = None) -> str:
    """
    Format as YYYY-MM-DD; today if `value` is missing or unparseable
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if value:
        try:
            return date.fromisoformat(str(value)[:10]).isoformat()
        except ValueError:
            logger.debug(f"Unparseable date {value!r}, using today")
    return date.today().isoformat()


def ensure_directory(dir_path: str) -> str:
    """
    Ensure directory exists, create if it doesn't

    Args:
        dir_path: Directory path

    Returns:
        Absolute path to directory
    """
    path = Path(dir_path)
    path.mkdir(parents=True, exist_ok=True)
    return str(path.absolute())


def format_processing_time(milliseconds: int) -> str:
    """
    Format processing time in human-readable format

    Returns:
        Formatted string (e.g., "1.23s", "456ms")
    """
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    seconds = milliseconds / 1000
    return f"{seconds:.2f}s"


def setup_logging(log_file: Optional[str] = "logs/smartscan.log", level: str = "INFO", stream=None):
    """
    Setup logging configuration

    Args:
        log_file: Path to log file (None: console only)
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        stream: Console stream (default stdout)
    """
    logger.remove()

    logger.add(
        stream or sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=level
    )

    if log_file:
        ensure_directory(os.path.dirname(log_file) or ".")
        logger.add(
            log_file,
            rotation="10 MB",
            retention="30 days",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"
        )

    logger.info("Logging initialized")
