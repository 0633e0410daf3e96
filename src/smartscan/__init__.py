"""
SmartScan - document photo to filed document.

Boundary detection, perspective correction, scan-like enhancement, OCR,
structured data extraction and category classification for German
paperwork.
"""

__version__ = "1.0.0"
