"""
Pytest Configuration and Fixtures
=================================

Shared fixtures for the test suite:
- Temporary JSON file store
- Fake inference client with canned replies (no network)
- Flask test client, logged in with the PIN
"""

import pytest

from app import create_app
from config import Config, ServerConfig, StorageConfig
from inference import InferenceClient, InferenceError
from storage import JsonFileStore

TEST_PIN = "4321"


class FakeInference(InferenceClient):
    """Returns canned replies in order and records every call."""

    def __init__(self, replies=None, transcription="", fail=False):
        self.replies = list(replies or [])
        self.transcription = transcription
        self.fail = fail
        self.calls: list[list[dict]] = []
        self.transcribed: list[tuple[bytes, str]] = []

    def infer(self, messages: list[dict]) -> str:
        self.calls.append(messages)
        if self.fail:
            raise InferenceError("service unavailable")
        return self.replies.pop(0) if self.replies else ""

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        self.transcribed.append((audio, mime_type))
        if self.fail:
            raise InferenceError("service unavailable")
        return self.transcription


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "data")


@pytest.fixture
def fake_inference():
    return FakeInference()


@pytest.fixture
def config(tmp_path):
    return Config(
        server=ServerConfig(pin_code=TEST_PIN),
        storage=StorageConfig(path=tmp_path / "data"),
    )


@pytest.fixture
def app(config, store, fake_inference):
    flask_app = create_app(config, store, fake_inference)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def anon_client(app):
    return app.test_client()


@pytest.fixture
def client(app):
    test_client = app.test_client()
    response = test_client.post("/api/auth/verify", json={"pin": TEST_PIN})
    assert response.get_json() == {"success": True}
    return test_client
