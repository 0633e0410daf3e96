"""
RasterImage: owned pixel buffer passed between pipeline stages.

Each stage receives a RasterImage and returns a newly allocated one.
The constructor copies the array it is given, so a stage can never alias
another stage's buffer.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from smartscan.exceptions import ImageLoadError


@dataclass(frozen=True)
class RasterImage:
    """2-D pixel grid: uint8, BGR (H, W, 3), BGRA (H, W, 4) or gray (H, W)."""
    pixels: np.ndarray = field(repr=False)

    def __post_init__(self):
        arr = np.asarray(self.pixels)
        if arr.ndim not in (2, 3) or arr.size == 0:
            raise ImageLoadError(f"Unsupported pixel array shape: {arr.shape}")
        if arr.ndim == 3 and arr.shape[2] not in (1, 3, 4):
            raise ImageLoadError(f"Unsupported channel count: {arr.shape[2]}")
        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        else:
            arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    # ── Shape ────────────────────────────────────────────────────────────────

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def area(self) -> int:
        return self.width * self.height

    # ── Conversions ──────────────────────────────────────────────────────────

    def to_bgr(self) -> np.ndarray:
        """Writable 3-channel BGR copy, whatever the source layout."""
        if self.channels == 1:
            return cv2.cvtColor(self.pixels.reshape(self.height, self.width), cv2.COLOR_GRAY2BGR)
        if self.channels == 4:
            return cv2.cvtColor(self.pixels, cv2.COLOR_BGRA2BGR)
        return self.pixels.copy()

    def to_gray(self) -> np.ndarray:
        """Writable single-channel copy."""
        if self.channels == 1:
            return self.pixels.reshape(self.height, self.width).copy()
        if self.channels == 4:
            return cv2.cvtColor(self.pixels, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(self.pixels, cv2.COLOR_BGR2GRAY)

    def encode(self, ext: str = ".png", quality: int = 85) -> bytes:
        """Encode to PNG/JPEG bytes."""
        params = []
        if ext.lower() in (".jpg", ".jpeg"):
            params = [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
        ok, buf = cv2.imencode(ext, self.pixels, params)
        if not ok:
            raise ImageLoadError(f"Could not encode image as {ext}")
        return buf.tobytes()

    def save(self, path: Union[str, Path], quality: int = 85) -> str:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.encode(path.suffix or ".png", quality))
        return str(path)

    # ── Constructors ─────────────────────────────────────────────────────────

    @classmethod
    def from_bytes(cls, data: bytes) -> "RasterImage":
        """Decode an encoded image (JPEG, PNG, WebP, ...)."""
        if not data:
            raise ImageLoadError("Empty image data")
        buf = np.frombuffer(data, dtype=np.uint8)
        img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        if img is None:
            raise ImageLoadError("Could not decode image data")
        return cls(img)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "RasterImage":
        path = Path(path)
        if not path.exists():
            raise ImageLoadError(f"Image not found: {path}")
        return cls.from_bytes(path.read_bytes())
