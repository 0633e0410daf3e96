"""
Post-warp Image Enhancer
========================
Makes a flattened document look like a scan.

Continuous-tone pipeline (each step independently toggled, fixed order):

    auto_levels  → CLAHE on the L channel of LAB (clip 2.0, 8x8 tiles)
    contrast /
    brightness   → linear scale  out = in * contrast + brightness
    denoise      → fastNlMeansDenoisingColored (edge-preserving)
    sharpen      → 3x3 kernel  [0,-1,0 / -1,5,-1 / 0,-1,0]

Document mode (black_white=True) replaces the whole pipeline with a
Gaussian adaptive threshold, which survives uneven lighting far better
than a global cut-off.

If the OpenCV path is unavailable or raises, simple_enhance() takes over:
a numpy-only contrast/brightness stretch. The caller sees this through
EnhancementOutcome.status == "degraded", never as an exception.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import cv2
import numpy as np
from loguru import logger

from smartscan.config import DEFAULT_CONFIG
from smartscan.raster import RasterImage


STATUS_SUCCESS = "success"
STATUS_DEGRADED = "degraded"

_SHARPEN_KERNEL = np.array([
    [ 0, -1,  0],
    [-1,  5, -1],
    [ 0, -1,  0],
], dtype=np.float32)


@dataclass
class EnhanceOptions:
    contrast: float = 1.2
    brightness: float = 10
    auto_levels: bool = True
    denoise: bool = True
    sharpen: bool = True
    black_white: bool = False

    @classmethod
    def from_config(cls, config: Optional[Dict] = None, **overrides) -> "EnhanceOptions":
        values = dict(DEFAULT_CONFIG["enhancement"])
        values.update(config or {})
        values.update({k: v for k, v in overrides.items() if v is not None})
        known = {k: values[k] for k in cls.__dataclass_fields__ if k in values}
        return cls(**known)


@dataclass
class EnhancementOutcome:
    """Enhanced image plus how it was produced."""
    image: RasterImage
    status: str = STATUS_SUCCESS
    reason: Optional[str] = None
    steps: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.status == STATUS_DEGRADED


class ImageEnhancer:
    """Full OpenCV enhancement with a numpy-only fallback."""

    def __init__(self, config: Optional[Dict] = None):
        self.default_options = EnhanceOptions.from_config(config)

    def is_available(self) -> bool:
        """The advanced path needs CLAHE and NL-means from OpenCV."""
        return hasattr(cv2, "createCLAHE") and hasattr(cv2, "fastNlMeansDenoisingColored")

    # ── Public API ────────────────────────────────────────────────────────────

    def enhance(self, image: RasterImage, options: Optional[EnhanceOptions] = None) -> EnhancementOutcome:
        """
        Enhance `image`, falling back to simple_enhance() on any failure.

        Returns:
            EnhancementOutcome with status "success" or "degraded"
        """
        options = options or self.default_options

        if not self.is_available():
            logger.warning("[Enhancer] Advanced enhancement unavailable, using simple enhance")
            return EnhancementOutcome(
                image=self.simple_enhance(image, options),
                status=STATUS_DEGRADED,
                reason="advanced enhancement unavailable",
                steps=["simple"],
            )

        steps: List[str] = []
        try:
            result = self.advanced_enhance(image, options, steps)
        except Exception as e:
            logger.warning(f"[Enhancer] Enhancement failed, using simple enhance: {e}")
            return EnhancementOutcome(
                image=self.simple_enhance(image, options),
                status=STATUS_DEGRADED,
                reason=str(e),
                steps=["simple"],
            )

        logger.debug(f"[Enhancer] Applied: {', '.join(steps) or 'nothing'}")
        return EnhancementOutcome(image=result, steps=steps)

    def advanced_enhance(
        self,
        image: RasterImage,
        options: EnhanceOptions,
        steps: Optional[List[str]] = None,
    ) -> RasterImage:
        """OpenCV pipeline. May raise; enhance() is the safe entry point."""
        steps = steps if steps is not None else []

        if options.black_white:
            steps.append("black_white")
            return self.to_black_and_white(image)

        img = image.to_bgr()

        if options.auto_levels:
            img = self._auto_levels(img)
            steps.append("auto_levels")

        if options.contrast != 1 or options.brightness != 0:
            img = cv2.convertScaleAbs(img, alpha=float(options.contrast), beta=float(options.brightness))
            steps.append("contrast_brightness")

        if options.denoise:
            img = cv2.fastNlMeansDenoisingColored(img, None, 5, 5, 7, 21)
            steps.append("denoise")

        if options.sharpen:
            img = cv2.filter2D(img, -1, _SHARPEN_KERNEL)
            steps.append("sharpen")

        return RasterImage(img)

    def simple_enhance(self, image: RasterImage, options: Optional[EnhanceOptions] = None) -> RasterImage:
        """
        Linear contrast/brightness only:  (v - 128) * contrast + 128 + brightness
        No denoise, sharpen or auto-levels.
        """
        options = options or self.default_options
        img = image.to_bgr().astype(np.float32)
        out = (img - 128.0) * float(options.contrast) + 128.0 + float(options.brightness)
        return RasterImage(np.clip(out, 0, 255).astype(np.uint8))

    def to_black_and_white(self, image: RasterImage) -> RasterImage:
        """Document mode: Gaussian adaptive threshold (block 11, C 2)."""
        gray = image.to_gray()
        bw = cv2.adaptiveThreshold(
            gray, 255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            11, 2,
        )
        return RasterImage(bw)

    # ── Steps ─────────────────────────────────────────────────────────────────

    def _auto_levels(self, img: np.ndarray) -> np.ndarray:
        """CLAHE on lightness only, so colours are left alone."""
        lab = cv2.cvtColor(img, cv2.COLOR_BGR2LAB)
        l, a, b = cv2.split(lab)
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        l = clahe.apply(l)
        return cv2.cvtColor(cv2.merge([l, a, b]), cv2.COLOR_LAB2BGR)
