"""
Tests for the render endpoints.
"""
import base64

import pytest
from unittest.mock import AsyncMock, Mock
from fastapi.testclient import TestClient

from api_gateway.dependencies import get_composer, get_job_store
from api_gateway.main import app
from shared.errors import (
    ConfigurationError,
    EncodeError,
    InsufficientAssetsError,
    JobNotFoundError,
    ValidationError,
)
from shared.models import RenderRequest, RenderResult


@pytest.fixture
def composer():
    composer = Mock()
    composer.render = AsyncMock(return_value=RenderResult(video=b"mp4-bytes", size=9, duration=4.0, images_used=2))
    return composer


@pytest.fixture
def job_store():
    store = Mock()
    store.get_render_request = AsyncMock(return_value=RenderRequest(
        audio="https://cdn.example.com/voice.mp3",
        images=["https://cdn.example.com/0.png"],
        job_id="video-1"
    ))
    return store


@pytest.fixture
def client(composer, job_store):
    app.dependency_overrides[get_composer] = lambda: composer
    app.dependency_overrides[get_job_store] = lambda: job_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_render_video_by_id(client, composer, job_store):
    """Test that a stored job renders to a base64 MP4 payload."""
    response = client.post("/api/render-video", json={"videoId": "video-1"})

    assert response.status_code == 200
    body = response.json()
    assert base64.b64decode(body["video"]) == b"mp4-bytes"
    assert body["contentType"] == "video/mp4"
    assert body["size"] == 9
    job_store.get_render_request.assert_awaited_once_with("video-1")
    rendered = composer.render.await_args.args[0]
    assert rendered.job_id == "video-1"


def test_render_video_unknown_job(client, job_store):
    job_store.get_render_request.side_effect = JobNotFoundError("Video nope not found")

    response = client.post("/api/render-video", json={"videoId": "nope"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Video nope not found"


def test_render_video_invalid_stored_job(client, job_store):
    job_store.get_render_request.side_effect = ValidationError("Video video-1 has no images")

    response = client.post("/api/render-video", json={"videoId": "video-1"})

    assert response.status_code == 422
    assert "no images" in response.json()["detail"]


def test_render_video_missing_video_id(client):
    response = client.post("/api/render-video", json={})
    assert response.status_code == 422


@pytest.mark.parametrize("error", [
    InsufficientAssetsError("No images were fetched successfully (3 attempted)"),
    EncodeError("Encoder exited with code 1", diagnostics="Invalid data found"),
    ConfigurationError("Required tool(s) not found: ffmpeg"),
])
def test_render_video_pipeline_failure(client, composer, error):
    """Test that pipeline failures surface as 500 with a descriptive message."""
    composer.render.side_effect = error

    response = client.post("/api/render-video", json={"videoId": "video-1"})

    assert response.status_code == 500
    assert str(error) in response.json()["detail"]


def test_render_direct(client, composer, job_store):
    """Test that explicit inputs render without touching the job store."""
    response = client.post("/api/render-video/direct", json={
        "audioUrl": "https://cdn.example.com/voice.mp3",
        "images": ["https://cdn.example.com/0.png", "https://cdn.example.com/1.png"],
        "duration": 12.5
    })

    assert response.status_code == 200
    assert response.json()["size"] == 9
    rendered = composer.render.await_args.args[0]
    assert rendered.duration == 12.5
    assert rendered.images == ["https://cdn.example.com/0.png", "https://cdn.example.com/1.png"]
    assert rendered.captions == []
    job_store.get_render_request.assert_not_called()


def test_render_direct_without_duration(client, composer):
    response = client.post("/api/render-video/direct", json={
        "audioUrl": "https://cdn.example.com/voice.mp3",
        "images": ["https://cdn.example.com/0.png"]
    })

    assert response.status_code == 200
    assert composer.render.await_args.args[0].duration is None


@pytest.mark.parametrize("body", [
    {"audioUrl": "https://cdn.example.com/voice.mp3", "images": []},
    {"audioUrl": "https://cdn.example.com/voice.mp3", "images": ["a.png"], "duration": 0},
    {"images": ["a.png"]},
])
def test_render_direct_rejects_invalid_body(client, composer, body):
    response = client.post("/api/render-video/direct", json=body)
    assert response.status_code == 422
    composer.render.assert_not_called()


def test_job_store_configuration_error_is_500(composer):
    """Test that a store that cannot be built still yields a JSON error."""
    def broken_store():
        raise ConfigurationError("Missing Supabase credentials (SUPABASE_URL, SUPABASE_SERVICE_KEY)")

    app.dependency_overrides[get_composer] = lambda: composer
    app.dependency_overrides[get_job_store] = broken_store
    try:
        response = TestClient(app).post("/api/render-video", json={"videoId": "video-1"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert "Missing Supabase credentials" in response.json()["detail"]
    composer.render.assert_not_called()
