import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from focalcrop.main import app


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


def _png(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_geometry_focal_crop(client: TestClient) -> None:
    response = client.post(
        "/geometry",
        json={"source": {"width": 20, "height": 10}, "width": 10, "height": 10, "focal_x": 0.5, "focal_y": 0.5},
    )
    assert response.status_code == 200
    assert response.json() == {
        "width": 10,
        "height": 10,
        "fit": "cover",
        "crop": {"left": 5, "top": 0, "width": 10, "height": 10},
    }


def test_geometry_derives_height(client: TestClient) -> None:
    response = client.post("/geometry", json={"source": {"width": 2, "height": 2}, "width": 100, "aspect_ratio": "16:9"})
    assert response.status_code == 200
    assert response.json() == {"width": 100, "height": 56, "fit": None, "crop": None}


def test_geometry_partial_focal_keeps_fit(client: TestClient) -> None:
    response = client.post(
        "/geometry",
        json={"source": {"width": 10, "height": 10}, "width": 5, "height": 5, "fit": "contain", "focal_y": 0.5},
    )
    assert response.json()["crop"] is None
    assert response.json()["fit"] == "contain"


@pytest.mark.parametrize(
    "body",
    [
        {"source": {"width": 10, "height": 10}, "width": 5, "aspect_ratio": "16-9"},
        {"source": {"width": 10, "height": 10}, "width": 5, "focal_x": 0.5, "focal_y": 0.5},
        {"source": {"width": 0, "height": 10}, "width": 5, "height": 5, "focal_x": 0.5, "focal_y": 0.5},
        {"source": {"width": 10, "height": 10}, "fit": "stretch"},
    ],
)
def test_geometry_rejects_invalid_requests(client: TestClient, body: dict) -> None:
    assert client.post("/geometry", json=body).status_code == 400


def test_edit_returns_cropped_png(client: TestClient) -> None:
    response = client.post(
        "/edit",
        files={"file": ("source.png", _png(20, 10), "image/png")},
        data={"width": "8", "height": "8", "focal_x": "0", "focal_y": "0"},
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert Image.open(io.BytesIO(response.content)).size == (8, 8)


def test_edit_rejects_invalid_image(client: TestClient) -> None:
    response = client.post("/edit", files={"file": ("source.png", b"nope", "image/png")})
    assert response.status_code == 400


def test_edit_rejects_missing_dimension(client: TestClient) -> None:
    response = client.post(
        "/edit",
        files={"file": ("source.png", _png(10, 10), "image/png")},
        data={"width": "8", "focal_x": "0.5", "focal_y": "0.5"},
    )
    assert response.status_code == 400
