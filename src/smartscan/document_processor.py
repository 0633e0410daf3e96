"""
Integrated Document Processing Pipeline
Combines boundary detection, perspective correction, enhancement, OCR,
extraction and classification into a unified workflow.

Workflow:
    scan()          detect → crop (warp) → enhance
    analyze_text()  extract → classify → alternatives → export target
    process()       scan() → OCR → analyze_text()

Every stage is an injected collaborator, so the coordinator holds no
global state and tests can swap in fakes. Per-call state (progress
callback, warnings, timings) lives in a ProcessingContext.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Union

from loguru import logger

from smartscan.categories import Category, CategoryRegistry
from smartscan.config import DEFAULT_CONFIG, load_config
from smartscan.data_extractor import StructuredData, StructuredDataExtractor
from smartscan.document_classifier import ClassificationResult, DocumentClassifier
from smartscan.document_detector import BoundaryDetector, DetectionResult
from smartscan.exceptions import BackendUnavailableError
from smartscan.geometry import (
    Quadrilateral,
    clamp_corners,
    is_simple_polygon,
    order_corners,
    polygon_area,
)
from smartscan.image_enhancer import EnhanceOptions, ImageEnhancer, STATUS_SUCCESS
from smartscan.ml_backend import ZeroShotBackend
from smartscan.ocr_engine import OCREngine, OCRResult
from smartscan.perspective_corrector import PerspectiveCorrector
from smartscan.raster import RasterImage
from smartscan.utils import format_date, sanitize_filename


ProgressCallback = Callable[[str, str], None]


# ─── Per-invocation state ─────────────────────────────────────────────────────

@dataclass
class ProcessingContext:
    """Progress reporting, warnings and stage timings for one document."""
    progress: Optional[ProgressCallback] = None
    warnings: List[str] = field(default_factory=list)
    timings: Dict[str, int] = field(default_factory=dict)

    def report(self, stage: str, message: str):
        logger.debug(f"[Pipeline] {stage}: {message}")
        if self.progress is not None:
            self.progress(stage, message)

    def warn(self, message: str):
        logger.warning(f"[Pipeline] {message}")
        self.warnings.append(message)

    @contextmanager
    def timed(self, stage: str):
        start_time = time.time()
        try:
            yield
        finally:
            self.timings[stage] = int((time.time() - start_time) * 1000)


# ─── Options / results ────────────────────────────────────────────────────────

@dataclass
class ScanOptions:
    auto_crop: bool = True
    auto_enhance: bool = True
    enhance: Optional[EnhanceOptions] = None
    corners: Optional[Sequence] = None      # manual crop, overrides detection


@dataclass
class ScanResult:
    image: RasterImage
    corners: Quadrilateral
    confidence: float
    cropped: bool = False
    enhanced: bool = False
    enhancement_status: Optional[str] = None
    enhancement_reason: Optional[str] = None
    detection: Optional[DetectionResult] = None

    def to_dict(self) -> Dict:
        return {
            "corners": [[p.x, p.y] for p in self.corners],
            "confidence": round(self.confidence, 3),
            "cropped": self.cropped,
            "enhanced": self.enhanced,
            "enhancement_status": self.enhancement_status,
            "enhancement_reason": self.enhancement_reason,
            "detection_method": self.detection.method if self.detection else None,
            "detection_reason": self.detection.reason if self.detection else None,
            "width": self.image.width,
            "height": self.image.height,
        }


@dataclass
class DocumentAnalysis:
    classification: ClassificationResult
    data: StructuredData
    alternatives: List[Dict] = field(default_factory=list)
    export: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    ocr: Optional[OCRResult] = None
    scan: Optional[ScanResult] = None
    warnings: List[str] = field(default_factory=list)
    timings: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "classification": self.classification.to_dict(),
            "data": self.data.to_dict(),
            "alternatives": self.alternatives,
            "export": self.export,
            "text": self.text,
            "ocr_confidence": self.ocr.confidence if self.ocr else None,
            "scan": self.scan.to_dict() if self.scan else None,
            "warnings": self.warnings,
            "timings": self.timings,
        }


def build_export_target(
    category: Category,
    document_date: Union[date, str, None],
    name: Optional[str],
    base_folder: str = DEFAULT_CONFIG["export"]["base_folder"],
    extension: str = DEFAULT_CONFIG["export"]["extension"],
) -> Dict[str, str]:
    """
    Where a finished document would be filed.

    folder    <base_folder>/<category folder>
    filename  YYYY-MM-DD_<sanitized name>.pdf   (today when no date)
    """
    folder = f"{base_folder.rstrip('/')}/{category.folder}"
    filename = f"{format_date(document_date)}_{sanitize_filename(name)}{extension}"
    return {"folder": folder, "filename": filename, "path": f"{folder}/{filename}"}


# ─── Coordinator ──────────────────────────────────────────────────────────────

class DocumentProcessor:
    """
    End-to-end document processing pipeline

    Usage
    -----
    processor = DocumentProcessor.from_config(load_config())
    analysis = processor.process(RasterImage.from_file("brief.jpg"))
    print(analysis.classification.category, analysis.export["path"])
    """

    def __init__(
        self,
        detector: BoundaryDetector,
        corrector: PerspectiveCorrector,
        enhancer: ImageEnhancer,
        ocr_engine: Optional[OCREngine],
        extractor: StructuredDataExtractor,
        classifier: DocumentClassifier,
        config: Optional[Dict] = None,
    ):
        self.detector = detector
        self.corrector = corrector
        self.enhancer = enhancer
        self.ocr_engine = ocr_engine
        self.extractor = extractor
        self.classifier = classifier
        self.registry = classifier.registry

        self.config = config or DEFAULT_CONFIG
        export_cfg = dict(DEFAULT_CONFIG["export"])
        export_cfg.update(self.config.get("export", {}))
        self.base_folder = export_cfg["base_folder"]
        self.extension = export_cfg["extension"]
        self.confidence_threshold = float(
            self.config.get("detection", {}).get(
                "confidence_threshold", DEFAULT_CONFIG["detection"]["confidence_threshold"]
            )
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[Dict] = None,
        registry: Optional[CategoryRegistry] = None,
    ) -> "DocumentProcessor":
        """Build every stage from one configuration dict."""
        logger.info("Initializing Document Processor Pipeline")
        config = config or load_config()
        registry = registry or CategoryRegistry.load()
        extractor = StructuredDataExtractor(registry)

        processor = cls(
            detector=BoundaryDetector(config.get("detection")),
            corrector=PerspectiveCorrector(config.get("perspective")),
            enhancer=ImageEnhancer(config.get("enhancement")),
            ocr_engine=OCREngine(config.get("ocr")),
            extractor=extractor,
            classifier=DocumentClassifier(
                registry,
                ml_backend=ZeroShotBackend(config.get("ml")),
                config=config.get("classification"),
                extractor=extractor,
            ),
            config=config,
        )
        logger.success("Document Processor ready")
        return processor

    # ── Image stages ──────────────────────────────────────────────────────────

    def scan(
        self,
        image: RasterImage,
        options: Optional[ScanOptions] = None,
        context: Optional[ProcessingContext] = None,
    ) -> ScanResult:
        """
        Detect, crop and enhance one image.

        Manual corners skip detection. Otherwise the image is cropped only
        when detection confidence exceeds the threshold.
        """
        options = options or ScanOptions()
        context = context or ProcessingContext()

        detection = None
        corners = self._manual_corners(image, options.corners, context) if options.corners else None

        if corners is not None:
            confidence = 1.0
            should_crop = True
        else:
            context.report("detect", "Searching document edges...")
            with context.timed("detect"):
                detection = self.detector.detect(image)
            corners, confidence = detection.corners, detection.confidence
            should_crop = options.auto_crop and confidence > self.confidence_threshold
            if not detection.found:
                context.warn(detection.reason or "no document detected")

        working = image
        cropped = False
        if should_crop:
            context.report("crop", "Correcting perspective...")
            with context.timed("crop"):
                working = self.corrector.warp(image, corners)
            cropped = True

        result = ScanResult(
            image=working,
            corners=corners,
            confidence=confidence,
            cropped=cropped,
            detection=detection,
        )

        if options.auto_enhance:
            context.report("enhance", "Enhancing image...")
            with context.timed("enhance"):
                outcome = self.enhancer.enhance(working, options.enhance)
            result.image = outcome.image
            result.enhanced = True
            result.enhancement_status = outcome.status
            result.enhancement_reason = outcome.reason
            if outcome.status != STATUS_SUCCESS:
                context.warn(f"enhancement degraded: {outcome.reason}")

        logger.info(
            f"[Pipeline] scan done: conf={confidence:.2f} cropped={cropped} "
            f"enhanced={result.enhanced} ({result.image.width}x{result.image.height})"
        )
        return result

    def _manual_corners(
        self,
        image: RasterImage,
        raw_corners: Sequence,
        context: ProcessingContext,
    ) -> Optional[Quadrilateral]:
        try:
            corners = order_corners(clamp_corners(raw_corners, image.width, image.height))
        except (ValueError, TypeError, KeyError, IndexError) as e:
            context.warn(f"ignoring manual corners: {e}")
            return None

        if polygon_area(corners) <= 0 or not is_simple_polygon(corners):
            context.warn("ignoring manual corners: degenerate quadrilateral")
            return None
        return corners

    # ── Text stages ───────────────────────────────────────────────────────────

    def recognize(self, image: RasterImage, context: ProcessingContext) -> Optional[OCRResult]:
        """OCR with graceful degradation: None when no engine can run."""
        if self.ocr_engine is None:
            context.warn("OCR unavailable: no engine configured")
            return None

        context.report("ocr", "Recognizing text...")
        with context.timed("ocr"):
            try:
                return self.ocr_engine.recognize(image)
            except BackendUnavailableError as e:
                context.warn(f"OCR unavailable: {e.reason}")
            except Exception as e:
                logger.error(f"[Pipeline] OCR failed: {e}")
                context.warn(f"OCR failed: {e}")
        return None

    def analyze_text(
        self,
        text: str,
        context: Optional[ProcessingContext] = None,
        today: Optional[date] = None,
    ) -> DocumentAnalysis:
        """Extract, classify and propose where to file the document."""
        context = context or ProcessingContext()
        text = text or ""

        context.report("extract", "Extracting dates, amounts and sender...")
        with context.timed("extract"):
            data = self.extractor.extract(text)

        context.report("classify", "Classifying document...")
        with context.timed("classify"):
            classification = self.classifier.classify(text, data, today=today)
            alternatives = self.classifier.get_alternatives(classification)

        category = self.registry.get(classification.category) or self.registry.fallback
        export = build_export_target(
            category,
            classification.date or today,
            classification.name,
            base_folder=self.base_folder,
            extension=self.extension,
        )

        return DocumentAnalysis(
            classification=classification,
            data=data,
            alternatives=alternatives,
            export=export,
            text=text,
            warnings=context.warnings,
            timings=context.timings,
        )

    # ── Full pipeline ─────────────────────────────────────────────────────────

    def process(
        self,
        image: RasterImage,
        options: Optional[ScanOptions] = None,
        context: Optional[ProcessingContext] = None,
        today: Optional[date] = None,
    ) -> DocumentAnalysis:
        """
        Scan, OCR and analyze one document image.

        Without a working OCR engine the text is empty, the document lands
        in the fallback category and a warning is recorded.
        """
        context = context or ProcessingContext()
        start_time = time.time()

        scan = self.scan(image, options, context)
        ocr = self.recognize(scan.image, context)

        analysis = self.analyze_text(ocr.text if ocr else "", context, today=today)
        analysis.scan = scan
        analysis.ocr = ocr
        context.timings["total"] = int((time.time() - start_time) * 1000)

        logger.info(
            f"[Pipeline] {analysis.classification.category} → {analysis.export['path']} "
            f"({context.timings['total']}ms, {len(context.warnings)} warnings)"
        )
        return analysis
