"""HTTP API round trip with stub backends."""
from __future__ import annotations

import base64
import io

import httpx
import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from conftest import StubBlockOCR, StubDetector, StubTranslator, hello_block
from bubble_overlay.services import overlay_service
from bubble_overlay.services.overlay_service import OverlayService, get_overlay_service
from main import app


def _png_bytes(img: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(img).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def client(settings, font_manager, bubble_raw):
    service = OverlayService(
        settings=settings,
        detector=StubDetector([bubble_raw]),
        ocr=StubBlockOCR([hello_block()]),
        translator=StubTranslator({"HELLO WORLD": "hola mundo"}),
        font_manager=font_manager,
    )
    app.dependency_overrides[get_overlay_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_overlay_upload(client, page) -> None:
    resp = client.post(
        "/api/v1/overlay",
        files={"file": ("page.png", _png_bytes(page), "image/png")},
        data={"target_language": "es"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "processed"
    assert data["regions"] == 1
    assert data["output_filename"] == "page.translated.png"
    det = data["detections"][0]
    assert det["text"] == "HELLO WORLD"
    assert det["translated_text"] == "HOLA MUNDO"
    assert det["x1"] == pytest.approx(192)

    out = Image.open(io.BytesIO(base64.b64decode(data["output_image_base64"])))
    assert out.size == (640, 480)


def test_overlay_without_base64(client, page) -> None:
    resp = client.post(
        "/api/v1/overlay",
        files={"file": ("page.png", _png_bytes(page), "image/png")},
        data={"return_base64": "false"},
    )
    assert resp.json()["data"]["output_image_base64"] is None


def test_undecodable_image_reports_error(client) -> None:
    resp = client.post(
        "/api/v1/overlay",
        files={"file": ("page.png", b"definitely not a png", "image/png")},
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is False
    assert "decode" in body["error"].lower()
    assert body["data"]["status"] == "error"


def test_non_image_upload_rejected(client) -> None:
    resp = client.post(
        "/api/v1/overlay",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert resp.status_code == 400


def test_unknown_ocr_service_reports_error(client, page) -> None:
    resp = client.post(
        "/api/v1/overlay",
        files={"file": ("page.png", _png_bytes(page), "image/png")},
        data={"ocr_service": "abbyy"},
    )
    assert resp.json()["success"] is False


@pytest.fixture
def mock_download(monkeypatch, page):
    """Serve page.png for any URL ending in .png, 404 otherwise."""
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(".png"):
            return httpx.Response(200, content=_png_bytes(page), headers={"Content-Type": "image/png"})
        return httpx.Response(404)

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(overlay_service.httpx, "AsyncClient", client_factory)


def test_overlay_from_url(client, mock_download) -> None:
    resp = client.post(
        "/api/v1/overlay/url",
        json={"image_url": "https://cdn.example.com/ch1/page-03.png", "options": {"return_base64": False}},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["output_filename"] == "page-03.translated.png"
    assert body["data"]["output_image_base64"] is None
    assert body["data"]["detections"][0]["translated_text"] == "HOLA MUNDO"


def test_overlay_from_url_download_failure(client, mock_download) -> None:
    resp = client.post("/api/v1/overlay/url", json={"image_url": "https://cdn.example.com/gone"})
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is False
    assert "404" in body["error"]
