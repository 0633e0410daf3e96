"""
Exception hierarchy.

Only unrecoverable conditions are raised to callers. Missing detections,
empty extractions and degraded enhancement are represented in results.
"""


class SmartScanError(Exception):
    """Base class for all SmartScan errors."""


class ImageLoadError(SmartScanError):
    """No usable image could be obtained or encoded."""


class BackendUnavailableError(SmartScanError):
    """An optional backend (OCR engine, ML model) failed to initialize."""

    def __init__(self, backend: str, reason: str = ""):
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend} unavailable" + (f": {reason}" if reason else ""))


class ConfigError(SmartScanError):
    """Configuration file present but unreadable or inconsistent."""
