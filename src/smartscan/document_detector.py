"""
Document Boundary Detector
==========================
Finds the quadrilateral outline of a paper document in a photo.

Three independent strategies are tried in a fixed order on a downsampled
working copy of the image. The first one whose best candidate scores above
the confidence threshold wins:

  1. edge       bilateral filter → blur → Otsu-derived Canny → dilate
                Works for most photos: paper edge against any background.

  2. adaptive   Gaussian adaptive threshold (inverse) → close → open
                Low-contrast backgrounds where Canny finds nothing closed.

  3. bright     HSV low-saturation / high-value mask → close → open
                White-paper heuristic. Least trusted (glare, white desks),
                so its confidence is multiplied by 0.9.

Every strategy feeds its external contours into find_best_quadrilateral(),
which applies the same area, vertex-count and aspect-ratio filters.

When nothing qualifies the result carries a centered default rectangle
(10% margin) with confidence 0, never an exception.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from loguru import logger

from smartscan.config import DEFAULT_CONFIG
from smartscan.geometry import (
    Point,
    Quadrilateral,
    aspect_ratio,
    default_corners,
    order_corners,
    scale_corners,
)
from smartscan.raster import RasterImage


NO_DOCUMENT_REASON = "no document detected"


# ─── Result types ─────────────────────────────────────────────────────────────

@dataclass
class DetectionResult:
    """
    Outcome of one detect() call.

    confidence == 0 means nothing was found and `corners` is the synthetic
    default rectangle.
    """
    corners: Quadrilateral
    confidence: float
    reason: Optional[str] = None
    method: Optional[str] = None
    attempts: List[Dict] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.confidence > 0


@dataclass
class QuadCandidate:
    """A contour that passed the area / shape filters."""
    corners: Quadrilateral
    confidence: float
    area_percent: float
    aspect: float
    vertices: int


# ─── Contour evaluation ───────────────────────────────────────────────────────

def contour_confidence(area_ratio: float, scale: float = 2.5) -> float:
    """Larger regions score higher; 40% of the frame already reaches 1.0."""
    return float(min(max(area_ratio, 0.0) * scale, 1.0))


def find_best_quadrilateral(
    contours: Sequence[np.ndarray],
    image_area: float,
    min_area_percent: float = 10.0,
    max_area_percent: float = 98.0,
    min_aspect: float = 0.4,
    max_aspect: float = 2.5,
    epsilon_factor: float = 0.02,
    confidence_scale: float = 2.5,
    bounds: Optional[Tuple[int, int]] = None,
) -> Optional[QuadCandidate]:
    """
    Pick the most document-like quadrilateral among `contours`.

    Filters, in order:
      - area outside [min_area_percent, max_area_percent] of the image
      - polygon approximation (epsilon = 2% of perimeter) with fewer than
        4 or more than 8 vertices
      - aspect ratio outside [min_aspect, max_aspect]

    Exactly 4 vertices are used as-is; 5–8 vertices (rounded or damaged
    corners, JPEG noise) are replaced by the minimum-area bounding box.

    Returns:
        Highest-confidence candidate, or None
    """
    if image_area <= 0:
        return None

    best: Optional[QuadCandidate] = None

    for contour in contours:
        area = float(cv2.contourArea(contour))
        area_percent = area / image_area * 100.0
        if area_percent < min_area_percent or area_percent > max_area_percent:
            continue

        peri = cv2.arcLength(contour, True)
        approx = cv2.approxPolyDP(contour, epsilon_factor * peri, True)
        vertices = len(approx)

        if vertices == 4:
            pts = approx.reshape(4, 2).astype(np.float64)
        elif 4 < vertices <= 8:
            pts = cv2.boxPoints(cv2.minAreaRect(contour)).astype(np.float64)
        else:
            continue

        if bounds is not None:
            w, h = bounds
            pts[:, 0] = np.clip(pts[:, 0], 0, w)
            pts[:, 1] = np.clip(pts[:, 1], 0, h)

        try:
            corners = order_corners(pts)
        except ValueError:
            continue

        ratio = aspect_ratio(corners)
        if not (min_aspect <= ratio <= max_aspect):
            continue

        confidence = contour_confidence(area_percent / 100.0, confidence_scale)
        if best is None or confidence > best.confidence:
            best = QuadCandidate(
                corners=corners,
                confidence=confidence,
                area_percent=area_percent,
                aspect=ratio,
                vertices=vertices,
            )

    return best


# ─── Detector ─────────────────────────────────────────────────────────────────

class BoundaryDetector:
    """
    Multi-strategy document boundary detector.

    Usage
    -----
    detector = BoundaryDetector(config["detection"])
    result = detector.detect(raster)
    if result.found:
        flat = corrector.warp(raster, result.corners)
    """

    def __init__(self, config: Optional[Dict] = None):
        cfg = dict(DEFAULT_CONFIG["detection"])
        cfg.update(config or {})
        self.config = cfg

        self.working_size = int(cfg["working_size"])
        self.confidence_threshold = float(cfg["confidence_threshold"])
        self.default_margin = float(cfg["default_margin"])
        self.bright_factor = float(cfg["bright_confidence_factor"])

        strategies: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
            "edge": self._edge_mask,
            "adaptive": self._adaptive_mask,
            "bright": self._bright_mask,
        }
        unknown = [s for s in cfg["strategies"] if s not in strategies]
        if unknown:
            raise ValueError(f"Unknown detection strategies: {unknown}")
        self.strategies = [(name, strategies[name]) for name in cfg["strategies"]]

        logger.info(
            f"[Detector] initialized: strategies={[n for n, _ in self.strategies]} "
            f"threshold={self.confidence_threshold}"
        )

    # ── Public API ────────────────────────────────────────────────────────────

    def detect(self, image: RasterImage) -> DetectionResult:
        """
        Find the document quadrilateral in `image`.

        Returns:
            DetectionResult in source-image coordinates
        """
        small, scale = self._working_copy(image.to_bgr())
        h, w = small.shape[:2]
        attempts: List[Dict] = []

        for name, make_mask in self.strategies:
            try:
                mask = make_mask(small)
                contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
                candidate = find_best_quadrilateral(
                    contours,
                    float(w * h),
                    min_area_percent=self.config["min_area_percent"],
                    max_area_percent=self.config["max_area_percent"],
                    min_aspect=self.config["min_aspect_ratio"],
                    max_aspect=self.config["max_aspect_ratio"],
                    epsilon_factor=self.config["epsilon_factor"],
                    confidence_scale=self.config["confidence_scale"],
                    bounds=(w, h),
                )
            except Exception as e:
                logger.warning(f"[Detector] {name} strategy failed: {e}")
                attempts.append({"strategy": name, "status": "error", "error": str(e)})
                continue

            if candidate is None:
                logger.debug(f"[Detector] {name}: {len(contours)} contours, no quadrilateral")
                attempts.append({"strategy": name, "status": "no_candidate",
                                 "contours": len(contours)})
                continue

            confidence = candidate.confidence
            if name == "bright":
                confidence *= self.bright_factor

            attempts.append({
                "strategy": name,
                "status": "candidate",
                "confidence": round(confidence, 3),
                "area_percent": round(candidate.area_percent, 1),
                "aspect": round(candidate.aspect, 2),
            })

            if confidence > self.confidence_threshold:
                corners = scale_corners(candidate.corners, 1.0 / scale)
                logger.info(
                    f"[Detector] {name}: document found  conf={confidence:.2f} "
                    f"area={candidate.area_percent:.0f}% aspect={candidate.aspect:.2f}"
                )
                return DetectionResult(
                    corners=corners,
                    confidence=confidence,
                    method=name,
                    attempts=attempts,
                )

            logger.debug(f"[Detector] {name}: best candidate below threshold ({confidence:.2f})")

        logger.info(f"[Detector] No document found after {len(self.strategies)} strategies")
        return self.fallback(image, attempts)

    def fallback(self, image: RasterImage, attempts: Optional[List[Dict]] = None) -> DetectionResult:
        """Default corners: image box inset by the configured margin."""
        return DetectionResult(
            corners=default_corners(image.width, image.height, self.default_margin),
            confidence=0.0,
            reason=NO_DOCUMENT_REASON,
            attempts=attempts or [],
        )

    # ── Working image ─────────────────────────────────────────────────────────

    def _working_copy(self, img: np.ndarray) -> Tuple[np.ndarray, float]:
        """Downscale so the longest side is at most working_size."""
        h, w = img.shape[:2]
        scale = min(1.0, self.working_size / float(max(h, w)))
        if scale >= 1.0:
            return img, 1.0
        small = cv2.resize(img, (max(1, int(round(w * scale))), max(1, int(round(h * scale)))),
                           interpolation=cv2.INTER_AREA)
        # Use the exact ratio actually applied
        return small, small.shape[1] / float(w)

    # ── Strategies ────────────────────────────────────────────────────────────

    def _edge_mask(self, img: np.ndarray) -> np.ndarray:
        """Canny edges with thresholds derived from Otsu, dilated to close gaps."""
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        filtered = cv2.bilateralFilter(gray, 9, 75, 75)
        blurred = cv2.GaussianBlur(filtered, (5, 5), 0)

        otsu, _ = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        low, high = canny_thresholds(otsu)

        edges = cv2.Canny(blurred, low, high)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        return cv2.dilate(edges, kernel, iterations=2)

    def _adaptive_mask(self, img: np.ndarray) -> np.ndarray:
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        thresh = cv2.adaptiveThreshold(
            blurred, 255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY_INV,
            11, 2,
        )
        close_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (7, 7))
        open_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        closed = cv2.morphologyEx(thresh, cv2.MORPH_CLOSE, close_kernel)
        return cv2.morphologyEx(closed, cv2.MORPH_OPEN, open_kernel)

    def _bright_mask(self, img: np.ndarray) -> np.ndarray:
        # Fixed thresholds: only validated for white / light paper
        hsv = cv2.cvtColor(img, cv2.COLOR_BGR2HSV)
        mask = cv2.inRange(hsv, np.array([0, 0, 150]), np.array([180, 60, 255]))
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (7, 7))
        closed = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)
        return cv2.morphologyEx(closed, cv2.MORPH_OPEN, kernel)


def canny_thresholds(otsu: float) -> Tuple[float, float]:
    """Canny low/high = 0.3x / 0.9x the Otsu level, clamped to [10, 200]."""
    low = float(np.clip(0.3 * otsu, 10, 200))
    high = float(np.clip(0.9 * otsu, 10, 200))
    return low, high
