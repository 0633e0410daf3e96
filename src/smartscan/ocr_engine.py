"""
OCR Engine
Uses PaddleOCR (German model) to turn a flattened document into text.

The engine is optional: install the `ocr` extra. PaddleOCR is imported
and initialized lazily on the first recognize() call, bounded by
`init_timeout`. If that fails, is_available() turns False and the pipeline
continues without text.
"""

import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from loguru import logger

from smartscan.backends import LazyBackend
from smartscan.config import DEFAULT_CONFIG
from smartscan.raster import RasterImage

# Fix for Windows OneDNN compatibility issue
os.environ.setdefault('FLAGS_use_mkldnn', 'False')
os.environ.setdefault('FLAGS_enable_new_ir', 'False')


@dataclass
class OCRResult:
    text: str = ""
    confidence: float = 0.0
    lines: List[Dict] = field(default_factory=list)
    words: List[Dict] = field(default_factory=list)
    processing_time_ms: int = 0

    @property
    def empty(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> Dict:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "lines": self.lines,
            "words": self.words,
            "processing_time_ms": self.processing_time_ms,
        }


class OCREngine(LazyBackend):
    """
    Document OCR powered by PaddleOCR

    Usage
    -----
    engine = OCREngine(config["ocr"])
    if engine.is_available():
        result = engine.recognize(flat_image)
    """

    name = "OCR"

    def __init__(self, config: Optional[Dict] = None):
        cfg = dict(DEFAULT_CONFIG["ocr"])
        cfg.update(config or {})
        super().__init__(init_timeout=cfg["init_timeout"], enabled=bool(cfg["enabled"]))
        self.config = cfg

    def _load(self):
        from paddleocr import PaddleOCR

        init_params = {
            'use_angle_cls': self.config.get('use_angle_cls', True),
            'lang': self.config.get('lang', 'german'),
            'use_gpu': self.config.get('use_gpu', False),
            'show_log': False,
        }
        for key in ('det_db_thresh', 'drop_score', 'det_limit_side_len', 'det_db_unclip_ratio'):
            if key in self.config:
                init_params[key] = self.config[key]

        logger.info(f"[OCR] Initializing PaddleOCR lang={init_params['lang']} gpu={init_params['use_gpu']}")
        return PaddleOCR(**init_params)

    def recognize(self, image: RasterImage) -> OCRResult:
        """
        Extract text from a document image

        Args:
            image: Flattened (ideally enhanced) document

        Returns:
            OCRResult; empty text if nothing was recognized

        Raises:
            BackendUnavailableError: PaddleOCR could not be initialized
        """
        ocr = self.handle
        start_time = time.time()

        result = ocr.ocr(image.to_bgr(), cls=bool(self.config.get('use_angle_cls', True)))
        if not result or not result[0]:
            logger.warning("[OCR] No text detected")
            return OCRResult(processing_time_ms=int((time.time() - start_time) * 1000))

        lines = self._parse_ocr_result(result[0])
        words = [
            {"text": word, "confidence": line["confidence"]}
            for line in lines
            for word in line["text"].split()
        ]
        avg_confidence = float(np.mean([line["confidence"] for line in lines])) if lines else 0.0
        processing_time = int((time.time() - start_time) * 1000)

        logger.info(f"[OCR] Extracted {len(lines)} lines in {processing_time}ms  avg_conf={avg_confidence:.2f}")

        return OCRResult(
            text="\n".join(line["text"] for line in lines),
            confidence=round(avg_confidence, 3),
            lines=lines,
            words=words,
            processing_time_ms=processing_time,
        )

    def _parse_ocr_result(self, result: List) -> List[Dict]:
        """Parse PaddleOCR result into structured format"""
        lines = []
        for line in result:
            lines.append({
                'text': line[1][0],
                'confidence': round(float(line[1][1]), 3),
                'bbox': [[float(x), float(y)] for x, y in line[0]],
            })
        return lines
