"""HTTP tests for the analyze and training endpoints."""

import json

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from classifier.errors import DecodeError, InferenceError
from classifier.spoilage import ClassificationResult, Verdict
from classifier.views import classification, training_api
from tests.conftest import image_bytes

ANALYZE_URL = "/classifier/analyze/"
START_URL = "/classifier/api/training/start/"
STATUS_URL = "/classifier/api/training/status/"


def _upload(data=None, content_type="image/png", name="meal.png"):
    return SimpleUploadedFile(name, data if data is not None else image_bytes(), content_type=content_type)


# ---------------------------------------------------------------------------
# /analyze/
# ---------------------------------------------------------------------------


def test_analyze_returns_verdict_and_narrative(client, monkeypatch):
    monkeypatch.setattr(
        classification, "classify_result",
        lambda data: ClassificationResult(Verdict.SAFE, 0.92),
    )

    response = client.post(ANALYZE_URL, {"image": _upload()})

    assert response.status_code == 200
    body = response.json()
    assert body["verdict"] == "safe"
    assert body["confidence"] == pytest.approx(0.92)
    assert body["fallback"] is False
    assert body["indicators"] == []


def test_analyze_falls_back_on_inference_error(client, monkeypatch):
    def failing(data):
        raise InferenceError("model crashed")

    monkeypatch.setattr(classification, "classify_result", failing)

    response = client.post(ANALYZE_URL, {"image": _upload()})

    assert response.status_code == 200
    body = response.json()
    assert (body["verdict"], body["confidence"], body["fallback"]) == ("spoiled", 0.5, True)
    assert body["indicators"] == ["ai_model_unavailable"]


def test_analyze_rejects_undecodable_image(client, monkeypatch):
    def failing(data):
        raise DecodeError("bad bytes")

    monkeypatch.setattr(classification, "classify_result", failing)

    response = client.post(ANALYZE_URL, {"image": _upload(b"junk")})
    assert response.status_code == 400


def test_analyze_requires_an_image(client):
    assert client.post(ANALYZE_URL, {}).status_code == 400


def test_analyze_rejects_unsupported_content_type(client):
    response = client.post(ANALYZE_URL, {"image": _upload(b"%PDF", content_type="application/pdf", name="x.pdf")})
    assert response.status_code == 400
    assert "Unsupported" in response.json()["error"]


def test_analyze_is_post_only(client):
    assert client.get(ANALYZE_URL).status_code == 405


# ---------------------------------------------------------------------------
# Training API
# ---------------------------------------------------------------------------


def test_training_start_launches_background_run(client, monkeypatch, tmp_path):
    started = []
    monkeypatch.setattr(training_api, "is_training_running", lambda: False)
    monkeypatch.setattr(
        training_api, "start_training",
        lambda directory, config: started.append((directory, config)) or object(),
    )

    response = client.post(
        START_URL,
        data=json.dumps({"directory": str(tmp_path), "config": {"epochs": 3}}),
        content_type="application/json",
    )

    assert response.status_code == 200
    assert response.json()["status"] == "started"
    (directory, config), = started
    assert directory == tmp_path
    assert config.epochs == 3


def test_training_start_conflict_when_running(client, monkeypatch):
    monkeypatch.setattr(training_api, "is_training_running", lambda: True)
    assert client.post(START_URL).status_code == 409


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        json.dumps(["a", "list"]),
        json.dumps({"config": {"epochs": 0}}),
        json.dumps({"config": {"no_such_option": 1}}),
        json.dumps({"config": {"validation_split": 0.5}}),
        json.dumps({"config": "fast"}),
    ],
)
def test_training_start_rejects_bad_requests(client, monkeypatch, settings, tmp_path, payload):
    monkeypatch.setattr(training_api, "is_training_running", lambda: False)
    monkeypatch.setattr(training_api, "start_training", lambda *a: pytest.fail("must not start"))
    settings.DATASETS_ROOT = tmp_path

    response = client.post(START_URL, data=payload, content_type="application/json")
    assert response.status_code == 400


def test_training_start_cannot_redirect_run_output(client, monkeypatch, tmp_path):
    started = []
    monkeypatch.setattr(training_api, "is_training_running", lambda: False)
    monkeypatch.setattr(training_api, "start_training", lambda *a: started.append(a))

    response = client.post(
        START_URL,
        data=json.dumps({"directory": str(tmp_path), "config": {"epochs": 2, "runs_dir": "/tmp/elsewhere"}}),
        content_type="application/json",
    )

    assert response.status_code == 400
    assert "runs_dir" in response.json()["error"]
    assert started == []


def test_training_start_missing_directory(client, monkeypatch, tmp_path):
    monkeypatch.setattr(training_api, "is_training_running", lambda: False)
    response = client.post(
        START_URL,
        data=json.dumps({"directory": str(tmp_path / "nope")}),
        content_type="application/json",
    )
    assert response.status_code == 400


def test_training_status(client, monkeypatch):
    monkeypatch.setattr(training_api, "is_training_running", lambda: False)
    monkeypatch.setattr(training_api, "get_last_report", lambda: None)
    monkeypatch.setattr(training_api, "get_last_error", lambda: "InsufficientDataError: too few")

    body = client.get(STATUS_URL).json()
    assert body == {
        "training_running": False,
        "last_report": None,
        "last_error": "InsufficientDataError: too few",
    }
