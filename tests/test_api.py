"""
Tests for the HTTP API
"""

import base64
import json
import threading

import cv2
import pytest
from fastapi.testclient import TestClient

from conftest import FakeOCR, make_document_photo
from smartscan import __version__
from smartscan.api import create_app
from smartscan.raster import RasterImage


@pytest.fixture
def client(processor):
    return TestClient(create_app(processor=processor))


@pytest.fixture
def photo_png():
    ok, buf = cv2.imencode(".png", make_document_photo())
    assert ok
    return buf.tobytes()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "smartscan-api", "version": __version__}


def test_categories(client):
    data = client.get("/api/v1/categories").json()

    assert data["fallback"] == "other"
    assert len(data["categories"]) == 10
    invoice = data["categories"][0]
    assert invoice == {
        "id": "invoice", "label": "Rechnung", "folder": "Rechnungen",
        "document_name": "Rechnung", "amount_bonus": True,
    }


def test_detect(client, photo_png):
    response = client.post("/api/v1/scan/detect", files={"file": ("brief.png", photo_png, "image/png")})

    assert response.status_code == 200
    data = response.json()
    assert data["found"] is True
    assert data["method"] == "edge"
    assert len(data["corners"]) == 4
    assert (data["width"], data["height"]) == (1000, 750)


def test_detect_rejects_extension(client, photo_png):
    response = client.post("/api/v1/scan/detect", files={"file": ("brief.gif", photo_png, "image/gif")})
    assert response.status_code == 400


def test_detect_rejects_non_image(client):
    response = client.post(
        "/api/v1/scan/detect",
        files={"file": ("brief.png", b"definitely not a picture", "image/png")},
    )
    assert response.status_code == 400
    assert "Invalid image" in response.json()["detail"]


def test_process_returns_png(client, photo_png):
    response = client.post(
        "/api/v1/scan/process",
        files={"file": ("brief.png", photo_png, "image/png")},
        data={"black_white": "true"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["cropped"] is True
    assert data["enhanced"] is True
    assert data["enhancement_status"] == "success"

    image = RasterImage.from_bytes(base64.b64decode(data["image_base64"]))
    assert (image.width, image.height) == (data["width"], data["height"])


def test_process_manual_corners(client, photo_png):
    corners = [[100, 100], [500, 100], [500, 400], [100, 400]]
    response = client.post(
        "/api/v1/scan/process",
        files={"file": ("brief.png", photo_png, "image/png")},
        data={"corners": json.dumps(corners), "auto_enhance": "false"},
    )

    data = response.json()
    assert data["confidence"] == 1.0
    assert (data["width"], data["height"]) == (400, 300)


def test_process_bad_corners(client, photo_png):
    response = client.post(
        "/api/v1/scan/process",
        files={"file": ("brief.png", photo_png, "image/png")},
        data={"corners": "[[1, 2], [3"},
    )
    assert response.status_code == 400


def test_analyze(client, photo_png):
    response = client.post("/api/v1/documents/analyze", files={"file": ("brief.png", photo_png, "image/png")})

    assert response.status_code == 200
    data = response.json()
    assert data["classification"]["category"] == "invoice"
    assert data["classification"]["category_label"] == "Rechnung"
    assert data["export"]["folder"] == "/SmartScan/Rechnungen"
    assert data["scan"]["cropped"] is True
    assert data["ocr_confidence"] == pytest.approx(0.95)


def test_classify_text(client):
    response = client.post(
        "/api/v1/documents/classify",
        json={"text": "Rechnung vom 15.03.2024 über 1.234,56 €"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["classification"]["category"] == "invoice"
    assert data["classification"]["amount"] == "1.234,56 €"
    assert data["data"]["dates"] == ["15.03.2024"]
    assert data["export"]["filename"].endswith(".pdf")
    assert data["scan"] is None


def test_classify_requires_text(client):
    assert client.post("/api/v1/documents/classify", json={}).status_code == 422


@pytest.mark.parametrize("corners", [
    [{"x": 1, "y": 2}, {"x": 500, "y": 2}, {"x": 500, "y": 400}, {"x": 1, "y": 400}],
    [[1, 2], [500, 2], [500, 400], [1]],
    [[1, 2], [500, 2], [500, 400], ["a", "b"]],
])
def test_process_malformed_corner_points(client, photo_png, corners):
    response = client.post(
        "/api/v1/scan/process",
        files={"file": ("brief.png", photo_png, "image/png")},
        data={"corners": json.dumps(corners)},
    )
    assert response.status_code == 400


class BlockingOCR(FakeOCR):
    """Holds recognize() until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def recognize(self, image):
        self.entered.set()
        self.release.wait(timeout=10)
        return super().recognize(image)


def test_health_answers_while_ocr_runs(make_processor, photo_png):
    ocr = BlockingOCR()
    analyses, health = [], []

    with TestClient(create_app(processor=make_processor(ocr=ocr))) as client:
        analyze = threading.Thread(target=lambda: analyses.append(client.post(
            "/api/v1/documents/analyze", files={"file": ("brief.png", photo_png, "image/png")},
        )))
        analyze.start()
        try:
            assert ocr.entered.wait(timeout=10)

            health_check = threading.Thread(target=lambda: health.append(client.get("/health")))
            health_check.start()
            health_check.join(timeout=5)

            assert health and health[0].status_code == 200
            assert not analyses
        finally:
            ocr.release.set()
            analyze.join(timeout=10)

    assert analyses[0].status_code == 200
