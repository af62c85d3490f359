import base64
import json

import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient

from backend import config, main
from backend.errors import ErrorCode, OCRServiceError

IMAGE = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8\xff fake jpeg").decode()


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("FIELD_SCHEMA", "counter")
    monkeypatch.delenv("RATE_NORMAL_THRESHOLD", raising=False)
    return TestClient(main.app)


@pytest.fixture
def model_reply(monkeypatch):
    calls = []

    def install(reply):
        def fake_generate(prompt, image_b64, mime_type, api_key, **kwargs):
            calls.append({"prompt": prompt, "image": image_b64, "mime": mime_type, "key": api_key})
            if isinstance(reply, Exception):
                raise reply
            return reply

        monkeypatch.setattr(main.gemini, "generate_content", fake_generate)
        return calls

    return install


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["schema"] == "counter"


def test_structured_reading(client, model_reply):
    calls = model_reply('```json\n{"isRelevant": true, "boxCount": 45, "bottleCount": 4523, "summary": "counter"}\n```')
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == 200
    body = resp.json()
    assert body["isRelevant"] is True
    assert body["boxCount"] == 45
    assert body["bottleCount"] == 4523
    assert "rate" not in body
    assert calls[0]["mime"] == "image/jpeg"
    assert calls[0]["key"] == "test-key"
    assert "bottleCount" in calls[0]["prompt"]


def test_structured_reading_with_previous_value(client, model_reply):
    model_reply(json.dumps({"isRelevant": True, "boxCount": 50, "bottleCount": 1600}))
    resp = client.post("/api/ocr", json={
        "image": IMAGE,
        "previousValue": 1000,
        "previousTimestamp": "2025-11-28T09:00:00+09:00",
        "timestamp": "2025-11-28T09:10:00+09:00",
    })
    body = resp.json()
    assert body["rate"] == 60
    assert body["status"] == "normal"


def test_backdated_timestamp_gives_unknown_status(client, model_reply):
    model_reply(json.dumps({"isRelevant": True, "bottleCount": 1600}))
    resp = client.post("/api/ocr", json={
        "image": IMAGE,
        "previousValue": 1000,
        "previousTimestamp": "2025-11-28T09:10:00Z",
        "timestamp": "2025-11-28T09:00:00Z",
    })
    body = resp.json()
    assert body["rate"] is None
    assert body["status"] == "unknown"


def test_unparsable_reply_degrades(client, model_reply):
    model_reply("I see a desk")
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == 200
    body = resp.json()
    assert body["isRelevant"] is False
    assert body["boxCount"] is None
    assert body["bottleCount"] is None
    assert "I see a desk" in body["summary"]


def test_production_schema(client, model_reply, monkeypatch):
    monkeypatch.setenv("FIELD_SCHEMA", "production")
    model_reply('{"isRelevant": true, "operatingLine": "Line 1", "completedQuantity": "3,450", "lotNo": "LOT-1"}')
    body = client.post("/api/ocr", json={"image": IMAGE}).json()
    assert body["operatingLine"] == "Line 1"
    assert body["completedQuantity"] == 3450
    assert body["productionDate"] is None


def test_no_image(client, model_reply):
    calls = model_reply("unused")
    resp = client.post("/api/ocr", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "NO_IMAGE"
    assert calls == []


def test_api_key_missing(client, model_reply, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY")
    model_reply("unused")
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == 500
    assert resp.json()["error"] == "API_KEY_MISSING"


def test_invalid_base64(client, model_reply):
    model_reply("unused")
    resp = client.post("/api/ocr", json={"image": "data:image/png;base64,@@@@"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_REQUEST"


def test_image_too_large(client, model_reply, monkeypatch):
    monkeypatch.setattr(config, "MAX_IMAGE_BYTES", 4)
    model_reply("unused")
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == 413
    assert resp.json()["error"] == "IMAGE_TOO_LARGE"


def test_oversized_image_is_rejected_before_decoding(client, model_reply, monkeypatch):
    monkeypatch.setattr(config, "MAX_IMAGE_BYTES", 4)

    def fail_decode(b64):
        raise AssertionError("payload should not be decoded")

    monkeypatch.setattr(main, "decoded_size", fail_decode)
    model_reply("unused")
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == 413
    assert resp.json()["error"] == "IMAGE_TOO_LARGE"


@pytest.mark.parametrize("path", ["/api/ocr", "/api/ocr/number"])
def test_unknown_field_schema_is_server_error(client, model_reply, monkeypatch, path):
    monkeypatch.setenv("FIELD_SCHEMA", "bogus")
    calls = model_reply("unused")
    resp = client.post(path, json={"image": IMAGE})
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "SERVER_ERROR"
    assert "bogus" in body["details"]
    assert calls == []


def test_root_reports_unknown_field_schema(client, monkeypatch):
    monkeypatch.setenv("FIELD_SCHEMA", "bogus")
    resp = client.get("/")
    assert resp.status_code == 500
    assert resp.json()["error"] == "SERVER_ERROR"


def test_malformed_body_is_invalid_request(client):
    resp = client.post("/api/ocr", json={"image": IMAGE, "previousValue": "lots"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_REQUEST"


@pytest.mark.parametrize(
    "code",
    [ErrorCode.API_KEY_INVALID, ErrorCode.QUOTA_EXCEEDED, ErrorCode.SAFETY_BLOCKED, ErrorCode.SERVER_ERROR],
)
def test_upstream_errors_are_translated(client, model_reply, code):
    model_reply(OCRServiceError(code, details="upstream"))
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == code.http_status
    assert resp.json()["error"] == code.value
    assert resp.json()["message"] == code.message


def test_unexpected_failure_is_server_error(client, model_reply):
    model_reply(RuntimeError("kaboom"))
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == 500
    assert resp.json()["error"] == "SERVER_ERROR"
    assert "kaboom" in resp.json()["details"]


def test_empty_reply_is_no_text(client, model_reply):
    model_reply("")
    resp = client.post("/api/ocr", json={"image": IMAGE})
    assert resp.status_code == 200
    assert resp.json()["error"] == "NO_TEXT"


def test_number_endpoint(client, model_reply):
    calls = model_reply("The count is 1,234 units on line 2")
    resp = client.post("/api/ocr/number", json={"image": IMAGE})
    assert resp.status_code == 200
    body = resp.json()
    assert body["number"] == 1234
    assert body["rate"] is None
    assert "digits" in calls[0]["prompt"]


def test_number_endpoint_with_previous_value(client, model_reply):
    model_reply("1300")
    body = client.post("/api/ocr/number", json={
        "image": IMAGE,
        "previousValue": 1000,
        "previousTimestamp": "2025-11-28T09:00:00Z",
        "timestamp": "2025-11-28T09:10:00Z",
    }).json()
    assert body["number"] == 1300
    assert body["rate"] == 30
    assert body["status"] == "slow"


def test_number_endpoint_without_digits(client, model_reply):
    model_reply("NONE")
    resp = client.post("/api/ocr/number", json={"image": IMAGE})
    assert resp.status_code == 200
    assert resp.json()["error"] == "NO_NUMBERS"
