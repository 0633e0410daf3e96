"""
Tests for the end-to-end document pipeline
"""

from datetime import date

import pytest

from conftest import FakeOCR, expected_corners
from smartscan.document_processor import (
    ProcessingContext,
    ScanOptions,
    build_export_target,
)
from smartscan.geometry import distance
from smartscan.image_enhancer import STATUS_DEGRADED, STATUS_SUCCESS


def test_scan_crops_and_enhances(processor, document_photo):
    result = processor.scan(document_photo)

    assert result.cropped
    assert result.enhanced
    assert result.enhancement_status == STATUS_SUCCESS
    assert result.confidence > 0.3
    assert result.image.width == pytest.approx(794, abs=20)
    assert result.image.height == pytest.approx(567, abs=20)


def test_scan_without_crop(processor, document_photo):
    result = processor.scan(document_photo, ScanOptions(auto_crop=False, auto_enhance=False))

    assert not result.cropped
    assert not result.enhanced
    assert result.enhancement_status is None
    assert (result.image.width, result.image.height) == (1000, 750)
    # detection still reported
    assert result.confidence > 0.3


def test_scan_blank_image_not_cropped(processor, blank_photo):
    context = ProcessingContext()
    result = processor.scan(blank_photo, context=context)

    assert not result.cropped
    assert result.confidence == 0
    assert (result.image.width, result.image.height) == (600, 400)
    assert "no document detected" in context.warnings


def test_scan_manual_corners(processor, document_photo):
    """Manual corners skip detection and are clamped into the image"""
    corners = [[-20, -10], [600, 0], [600, 400], [0, 400]]
    result = processor.scan(document_photo, ScanOptions(corners=corners, auto_enhance=False))

    assert result.cropped
    assert result.detection is None
    assert result.confidence == 1.0
    assert result.corners[0] == (0.0, 0.0)
    assert (result.image.width, result.image.height) == (600, 400)


def test_scan_invalid_manual_corners_fall_back_to_detection(processor, document_photo):
    context = ProcessingContext()
    collinear = [[0, 0], [100, 0], [200, 0], [300, 0]]
    result = processor.scan(document_photo, ScanOptions(corners=[[0, 0], [1, 1]]), context)

    assert result.detection is not None
    assert any("manual corners" in w for w in context.warnings)
    for found, expected in zip(result.corners, expected_corners()):
        assert distance(found, expected) < 20

    context = ProcessingContext()
    processor.scan(document_photo, ScanOptions(corners=collinear, auto_enhance=False), context)
    assert any("manual corners" in w for w in context.warnings)


@pytest.mark.parametrize("corners", [
    [{"x": 0, "y": 0}, {"x": 600, "y": 0}, {"x": 600, "y": 400}, {"x": 0, "y": 400}],
    [[0, 0], [600, 0], [600, 400], [0]],
    [[0, 0], [600, 0], [600, 400], None],
])
def test_scan_malformed_corner_points_fall_back_to_detection(processor, document_photo, corners):
    context = ProcessingContext()
    result = processor.scan(document_photo, ScanOptions(corners=corners, auto_enhance=False), context)

    assert result.detection is not None
    assert any("manual corners" in w for w in context.warnings)


def test_degraded_enhancement_is_reported(processor, document_photo, monkeypatch):
    monkeypatch.setattr(processor.enhancer, "is_available", lambda: False)
    context = ProcessingContext()
    result = processor.scan(document_photo, context=context)

    assert result.enhancement_status == STATUS_DEGRADED
    assert any("degraded" in w for w in context.warnings)


def test_progress_callback(processor, document_photo):
    stages = []
    context = ProcessingContext(progress=lambda stage, message: stages.append(stage))

    processor.process(document_photo, context=context)

    assert stages == ["detect", "crop", "enhance", "ocr", "extract", "classify"]
    assert {"detect", "crop", "enhance", "ocr", "extract", "classify", "total"} <= set(context.timings)


def test_process_invoice(processor, fake_ocr, document_photo):
    analysis = processor.process(document_photo, today=date(2024, 4, 1))

    assert fake_ocr.calls == 1
    assert analysis.scan.cropped
    assert analysis.ocr.confidence == pytest.approx(0.95)
    assert analysis.classification.category == "invoice"
    assert analysis.classification.date == "2024-03-15"
    assert analysis.classification.sender == "Telekom Deutschland GmbH"
    assert analysis.export["folder"] == "/SmartScan/Rechnungen"
    assert analysis.export["filename"] == "2024-03-15_rechnung_telekom_deutschland_gmbh_49,99_€.pdf"
    assert analysis.export["path"] == analysis.export["folder"] + "/" + analysis.export["filename"]
    assert analysis.alternatives


def test_process_without_ocr(make_processor, document_photo):
    processor = make_processor(ocr=FakeOCR(available=False))
    analysis = processor.process(document_photo)

    assert analysis.text == ""
    assert analysis.ocr is None
    assert analysis.classification.category == "other"
    assert any("OCR unavailable" in w for w in analysis.warnings)


def test_process_no_engine(make_processor, document_photo):
    analysis = make_processor(ocr=None).process(document_photo)
    assert any("no engine" in w for w in analysis.warnings)


def test_analyze_text(processor):
    analysis = processor.analyze_text(
        "Finanzamt Hannover-Nord\nEinkommensteuerbescheid 2023\nSteuernummer 25/123/45678",
        today=date(2024, 6, 1),
    )

    assert analysis.classification.category == "tax"
    assert analysis.export["folder"] == "/SmartScan/Steuer"
    assert analysis.export["filename"].startswith("2024-06-01_steuerdokument")
    assert analysis.to_dict()["scan"] is None


def test_build_export_target(registry):
    target = build_export_target(registry.get("invoice"), "2024-03-15", "Rechnung Telekom 49,99 €")

    assert target == {
        "folder": "/SmartScan/Rechnungen",
        "filename": "2024-03-15_rechnung_telekom_49,99_€.pdf",
        "path": "/SmartScan/Rechnungen/2024-03-15_rechnung_telekom_49,99_€.pdf",
    }


def test_build_export_target_defaults(registry):
    target = build_export_target(registry.fallback, None, None, base_folder="/Archiv/")

    assert target["folder"] == "/Archiv/Sonstiges"
    assert target["filename"] == f"{date.today().isoformat()}_dokument.pdf"
