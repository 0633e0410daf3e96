"""
Shared fixtures: synthetic document photos and fake OCR / ML backends
"""

from typing import List, Optional, Tuple

import cv2
import numpy as np
import pytest

from smartscan.categories import CategoryRegistry
from smartscan.data_extractor import StructuredDataExtractor
from smartscan.document_classifier import DocumentClassifier
from smartscan.document_detector import BoundaryDetector
from smartscan.document_processor import DocumentProcessor
from smartscan.exceptions import BackendUnavailableError
from smartscan.geometry import order_corners
from smartscan.image_enhancer import ImageEnhancer
from smartscan.ocr_engine import OCRResult
from smartscan.perspective_corrector import PerspectiveCorrector
from smartscan.raster import RasterImage


INVOICE_TEXT = (
    "Telekom Deutschland GmbH\n"
    "Rechnung vom 15.03.2024\n"
    "Rechnungsnummer 4711\n"
    "Rechnungsbetrag: 49,99 €"
)

# White sheet, 60% of the frame, aspect 1.4, rotated 8° on a dark table
PHOTO_SIZE = (1000, 750)
DOC_RECT = ((500.0, 375.0), (794.0, 567.0), 8.0)


def make_document_photo(
    size: Tuple[int, int] = PHOTO_SIZE,
    rect=DOC_RECT,
    background: int = 40,
) -> np.ndarray:
    width, height = size
    img = np.full((height, width, 3), background, dtype=np.uint8)
    box = cv2.boxPoints(rect).astype(np.int32)
    cv2.fillPoly(img, [box], (235, 235, 235))

    # A few "text lines" inside the sheet
    (cx, cy), _, _ = rect
    for i in range(4):
        y = int(cy - 100 + i * 50)
        cv2.line(img, (int(cx - 200), y), (int(cx + 150), y), (30, 30, 30), 4)
    return img


def expected_corners(rect=DOC_RECT):
    return order_corners(cv2.boxPoints(rect))


class FakeOCR:
    """Stands in for OCREngine; returns fixed text."""

    def __init__(self, text: str = INVOICE_TEXT, available: bool = True):
        self.text = text
        self.available = available
        self.calls = 0

    def is_available(self) -> bool:
        return self.available

    def recognize(self, image: RasterImage) -> OCRResult:
        self.calls += 1
        if not self.available:
            raise BackendUnavailableError("OCR", "paddleocr not installed")
        lines = [{"text": l, "confidence": 0.95, "bbox": []} for l in self.text.split("\n")]
        return OCRResult(text=self.text, confidence=0.95, lines=lines)


class FakeZeroShot:
    """Stands in for ZeroShotBackend; scores a chosen label highest."""

    def __init__(self, top_label: str = "Brief oder Schreiben", top_score: float = 0.8,
                 available: bool = True, error: Optional[Exception] = None):
        self.top_label = top_label
        self.top_score = top_score
        self.available = available
        self.error = error
        self.calls: List[Tuple[str, List[str]]] = []

    def is_available(self) -> bool:
        return self.available

    def classify(self, text: str, labels: List[str]):
        self.calls.append((text, labels))
        if self.error is not None:
            raise self.error
        rest = [l for l in labels if l != self.top_label]
        remaining = (1.0 - self.top_score) / max(len(rest), 1)
        return [self.top_label] + rest, [self.top_score] + [remaining] * len(rest)


@pytest.fixture
def registry():
    return CategoryRegistry.load()


@pytest.fixture
def extractor(registry):
    return StructuredDataExtractor(registry)


@pytest.fixture
def document_photo():
    return RasterImage(make_document_photo())


@pytest.fixture
def blank_photo():
    return RasterImage(np.full((400, 600, 3), 100, dtype=np.uint8))


@pytest.fixture
def fake_ocr():
    return FakeOCR()


@pytest.fixture
def make_processor(registry):
    """Factory: real image stages, injected OCR / ML fakes."""
    def _make(ocr=None, ml=None):
        extractor = StructuredDataExtractor(registry)
        return DocumentProcessor(
            detector=BoundaryDetector(),
            corrector=PerspectiveCorrector(),
            enhancer=ImageEnhancer({"denoise": False}),
            ocr_engine=ocr,
            extractor=extractor,
            classifier=DocumentClassifier(registry, ml_backend=ml, extractor=extractor),
        )
    return _make


@pytest.fixture
def processor(make_processor, fake_ocr):
    return make_processor(ocr=fake_ocr)
