"""
API Routes - All API endpoints

The DocumentProcessor is created once by the application factory and
stored on app.state; endpoints receive it through a FastAPI dependency.
Pipeline calls block (OpenCV, OCR, model loading) and run in the threadpool.
"""

import base64
import json
import time
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from smartscan.api.models import (
    AnalysisResponse,
    CategoriesResponse,
    CategoryModel,
    ClassifyRequest,
    DetectResponse,
    ScanResponse,
)
from smartscan.document_processor import (
    DocumentAnalysis,
    DocumentProcessor,
    ProcessingContext,
    ScanOptions,
)
from smartscan.exceptions import ImageLoadError
from smartscan.image_enhancer import EnhanceOptions
from smartscan.raster import RasterImage
from smartscan.utils import ALLOWED_EXTENSIONS, validate_image_bytes


router = APIRouter()

MAX_FILE_SIZE = 15 * 1024 * 1024  # 15MB


# ==================== UTILITY FUNCTIONS ====================

def get_processor(request: Request) -> DocumentProcessor:
    """Dependency: the pipeline built at application startup."""
    return request.app.state.processor


def validate_file(file: UploadFile):
    """Validate uploaded file name"""
    if not file.filename:
        raise HTTPException(400, detail="No filename provided")

    ext = Path(file.filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            400,
            detail=f"Invalid file type: {ext}. Allowed: {', '.join(ALLOWED_EXTENSIONS)}"
        )


async def read_upload(file: UploadFile) -> RasterImage:
    """Validate, read and decode an uploaded image"""
    validate_file(file)

    data = await file.read()
    if len(data) > MAX_FILE_SIZE:
        raise HTTPException(413, detail=f"File too large (max {MAX_FILE_SIZE // (1024 * 1024)}MB)")

    is_valid, msg = validate_image_bytes(data)
    if not is_valid:
        raise HTTPException(400, detail=f"Invalid image: {msg}")

    try:
        return RasterImage.from_bytes(data)
    except ImageLoadError as e:
        raise HTTPException(400, detail=str(e))


def parse_corners(raw: Optional[str]) -> Optional[List[List[float]]]:
    """Manual corners arrive as a JSON form field: [[x, y], ... x4]"""
    if not raw:
        return None
    try:
        corners = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(400, detail=f"corners must be JSON: {e}")
    if not isinstance(corners, list) or len(corners) != 4 or not all(_is_point(p) for p in corners):
        raise HTTPException(400, detail="corners must be a list of 4 [x, y] points")
    return corners


def _is_point(value) -> bool:
    return (
        isinstance(value, list)
        and len(value) == 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
    )


def analysis_response(
    analysis: DocumentAnalysis,
    processor: DocumentProcessor,
    filename: Optional[str],
    start_time: float,
) -> AnalysisResponse:
    result = analysis.to_dict()
    classification = result["classification"]
    category = processor.registry.get(classification["category"]) or processor.registry.fallback
    classification["category_label"] = category.label

    return AnalysisResponse(
        status="success",
        filename=filename,
        text=result["text"],
        ocr_confidence=result["ocr_confidence"],
        classification=classification,
        alternatives=result["alternatives"],
        data=result["data"],
        export=result["export"],
        scan=result["scan"],
        warnings=result["warnings"],
        timings=result["timings"],
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


# ==================== SCAN ENDPOINTS ====================

@router.post("/scan/detect", response_model=DetectResponse, tags=["Scan"])
async def detect_document(
    file: UploadFile = File(..., description="Photo of a document"),
    processor: DocumentProcessor = Depends(get_processor),
):
    """
    **Find the document boundary in a photo**

    Returns four corners (TL, TR, BR, BL) and a confidence. When nothing
    is found, `found` is false and the corners are a default rectangle
    that a client can offer for manual adjustment.

    ```bash
    curl -X POST http://localhost:8000/api/v1/scan/detect -F "file=@brief.jpg"
    ```
    """
    start_time = time.time()
    try:
        image = await read_upload(file)
        detection = await run_in_threadpool(processor.detector.detect, image)

        return DetectResponse(
            filename=file.filename,
            found=detection.found,
            corners=[[p.x, p.y] for p in detection.corners],
            confidence=round(detection.confidence, 3),
            method=detection.method,
            reason=detection.reason,
            width=image.width,
            height=image.height,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error detecting {file.filename}: {e}")
        raise HTTPException(500, str(e))


@router.post("/scan/process", response_model=ScanResponse, tags=["Scan"])
async def process_scan(
    file: UploadFile = File(..., description="Photo of a document"),
    auto_crop: bool = Form(True, description="Crop to the detected document"),
    auto_enhance: bool = Form(True, description="Apply scan-like enhancement"),
    black_white: Optional[bool] = Form(None, description="Adaptive-threshold document mode"),
    contrast: Optional[float] = Form(None, description="Contrast factor"),
    brightness: Optional[float] = Form(None, description="Brightness offset"),
    corners: Optional[str] = Form(None, description="Manual corners as JSON [[x,y] x4]"),
    processor: DocumentProcessor = Depends(get_processor),
):
    """
    **Turn a photo into a flat, enhanced scan**

    Detects the document (or uses the supplied manual corners), corrects
    perspective and enhances. The result is returned as a base64 PNG.
    """
    start_time = time.time()
    try:
        image = await read_upload(file)
        options = ScanOptions(
            auto_crop=auto_crop,
            auto_enhance=auto_enhance,
            enhance=EnhanceOptions.from_config(
                processor.config.get("enhancement"),
                black_white=black_white,
                contrast=contrast,
                brightness=brightness,
            ),
            corners=parse_corners(corners),
        )
        context = ProcessingContext()
        result = await run_in_threadpool(processor.scan, image, options, context)

        return ScanResponse(
            filename=file.filename,
            image_base64=base64.b64encode(result.image.encode(".png")).decode("ascii"),
            width=result.image.width,
            height=result.image.height,
            corners=[[p.x, p.y] for p in result.corners],
            confidence=round(result.confidence, 3),
            cropped=result.cropped,
            enhanced=result.enhanced,
            enhancement_status=result.enhancement_status,
            enhancement_reason=result.enhancement_reason,
            warnings=context.warnings,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing {file.filename}: {e}")
        raise HTTPException(500, str(e))


# ==================== DOCUMENT ENDPOINTS ====================

@router.post("/documents/analyze", response_model=AnalysisResponse, tags=["Documents"])
async def analyze_document(
    file: UploadFile = File(..., description="Photo of a document"),
    auto_crop: bool = Form(True, description="Crop to the detected document"),
    auto_enhance: bool = Form(True, description="Apply scan-like enhancement"),
    processor: DocumentProcessor = Depends(get_processor),
):
    """
    **Scan, OCR and classify a document**

    Returns category, suggested name, date, amount, sender, alternative
    categories and the folder/filename the document would be filed under.
    Without an OCR engine the text is empty and a warning is included.
    """
    start_time = time.time()
    try:
        image = await read_upload(file)
        logger.info(f"Analyzing: {file.filename}")

        analysis = await run_in_threadpool(
            processor.process,
            image,
            ScanOptions(auto_crop=auto_crop, auto_enhance=auto_enhance),
            ProcessingContext(),
        )
        return analysis_response(analysis, processor, file.filename, start_time)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error analyzing {file.filename}: {e}")
        logger.exception("Full traceback:")
        raise HTTPException(500, str(e))


@router.post("/documents/classify", response_model=AnalysisResponse, tags=["Documents"])
async def classify_text(
    request: ClassifyRequest,
    processor: DocumentProcessor = Depends(get_processor),
):
    """
    **Classify already recognized text**

    ```bash
    curl -X POST http://localhost:8000/api/v1/documents/classify \\
      -H "Content-Type: application/json" \\
      -d '{"text": "Rechnung vom 15.03.2024 über 1.234,56 €"}'
    ```
    """
    start_time = time.time()
    try:
        analysis = await run_in_threadpool(processor.analyze_text, request.text, ProcessingContext())
        return analysis_response(analysis, processor, None, start_time)
    except Exception as e:
        logger.error(f"Error classifying text: {e}")
        raise HTTPException(500, str(e))


@router.get("/categories", response_model=CategoriesResponse, tags=["Documents"])
async def list_categories(processor: DocumentProcessor = Depends(get_processor)):
    """Configured document categories"""
    registry = processor.registry
    return CategoriesResponse(
        fallback=registry.fallback_id,
        categories=[
            CategoryModel(
                id=c.id,
                label=c.label,
                folder=c.folder,
                document_name=c.display_name,
                amount_bonus=c.amount_bonus,
            )
            for c in registry
        ],
    )
