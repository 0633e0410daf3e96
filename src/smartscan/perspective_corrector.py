"""
Perspective correction: flatten a detected document quadrilateral into an
upright rectangle with a single homography.
"""

from typing import Dict, Optional, Sequence, Tuple

import cv2
import numpy as np
from loguru import logger

from smartscan.config import DEFAULT_CONFIG
from smartscan.geometry import Point, distance, to_array
from smartscan.raster import RasterImage


class PerspectiveCorrector:
    """
    Warps a document region to a flat rectangle.

    Corners must be in canonical TL, TR, BR, BL order and non-degenerate;
    they may come from BoundaryDetector or from a manual crop (clamped to
    the image by the caller).
    """

    def __init__(self, config: Optional[Dict] = None):
        cfg = dict(DEFAULT_CONFIG["perspective"])
        cfg.update(config or {})
        self.min_size = int(cfg["min_size"])

    def output_size(self, corners: Sequence[Point]) -> Tuple[int, int]:
        """
        Target (width, height) from the quadrilateral's side lengths.

        width  = max(top edge, bottom edge)
        height = max(left edge, right edge)
        Each is floored at min_size.
        """
        tl, tr, br, bl = corners
        width = max(distance(tl, tr), distance(bl, br))
        height = max(distance(tl, bl), distance(tr, br))
        out_w = max(int(round(width)), self.min_size)
        out_h = max(int(round(height)), self.min_size)
        return out_w, out_h

    def warp(self, image: RasterImage, corners: Sequence[Point]) -> RasterImage:
        """
        Apply the projective transform mapping `corners` onto
        [(0,0), (W,0), (W,H), (0,H)].

        Returns:
            New RasterImage of size W x H
        """
        out_w, out_h = self.output_size(corners)

        src = to_array(corners)
        dst = np.array([
            [0,     0    ],
            [out_w, 0    ],
            [out_w, out_h],
            [0,     out_h],
        ], dtype=np.float32)

        M = cv2.getPerspectiveTransform(src, dst)
        warped = cv2.warpPerspective(
            image.pixels, M, (out_w, out_h),
            flags=cv2.INTER_CUBIC,
            borderMode=cv2.BORDER_REPLICATE,
        )

        logger.info(
            f"[Perspective] {image.width}x{image.height} → {out_w}x{out_h}"
        )
        return RasterImage(warped)
