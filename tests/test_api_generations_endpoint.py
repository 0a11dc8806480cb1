# tests/test_api_generations_endpoint.py
import pytest
from fastapi.testclient import TestClient

from flashgen.app import app
from flashgen.gateway.errors import (
    AuthenticationError,
    PersistenceError,
    RequestTimeoutError,
    UpstreamInternalError,
    ValidationError,
)
from flashgen.orchestrator import GenerationResult
from flashgen.schemas import FlashcardProposal

# import the orchestrator instance to monkeypatch its generate
from flashgen import app as app_module
orchestrator = app_module.orchestrator  # the single instance created in flashgen.app

VALID_TEXT = "Enzymes lower the activation energy of reactions. " * 25

SAMPLE_RESULT = GenerationResult(
    generation_id=42,
    proposals=[
        FlashcardProposal(front="What do enzymes lower?", back="The activation energy of reactions."),
        FlashcardProposal(front="Are enzymes consumed?", back="No, they are reused."),
    ],
)


@pytest.fixture
def client():
    return TestClient(app)


def raiser(exc):
    def _generate(user_id, source_text):
        raise exc
    return _generate


def test_generation_created(monkeypatch, client):
    seen = {}

    def fake_generate(user_id, source_text):
        seen["user_id"] = user_id
        return SAMPLE_RESULT

    monkeypatch.setattr(orchestrator, "generate", fake_generate)
    r = client.post("/api/generations", json={"source_text": VALID_TEXT})
    assert r.status_code == 201
    j = r.json()
    assert j["generation_id"] == 42
    assert j["flashcards_proposal"][0] == {
        "front": "What do enzymes lower?",
        "back": "The activation energy of reactions.",
        "source": "ai-full",
    }
    assert seen["user_id"]


def test_short_text_rejected_by_real_orchestrator(client):
    r = client.post("/api/generations", json={"source_text": "too short"})
    assert r.status_code == 400
    j = r.json()
    assert j["error"] == "validation_error"
    assert "between 1000 and 10000" in j["message"]


def test_missing_body_field_is_400(client):
    r = client.post("/api/generations", json={"text": VALID_TEXT})
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


@pytest.mark.parametrize("exc,status,error", [
    (ValidationError("source_text must be between 1000 and 10000 characters"), 400, "validation_error"),
    (AuthenticationError("Authentication failed: invalid key"), 401, "authentication_error"),
    (UpstreamInternalError("Server error: overloaded"), 500, "internal_service_error"),
    (RequestTimeoutError("Flashcard generation timed out after 40 seconds"), 500, "timeout_error"),
    (PersistenceError("Failed to create generation record"), 500, "persistence_error"),
])
def test_error_mapping(monkeypatch, client, exc, status, error):
    monkeypatch.setattr(orchestrator, "generate", raiser(exc))
    r = client.post("/api/generations", json={"source_text": VALID_TEXT})
    assert r.status_code == status
    assert r.json() == {"error": error, "message": exc.message}


def test_unexpected_error_is_500(monkeypatch, client):
    monkeypatch.setattr(orchestrator, "generate", raiser(RuntimeError("kaboom")))
    r = client.post("/api/generations", json={"source_text": VALID_TEXT})
    assert r.status_code == 500
    assert r.json() == {"error": "internal_error", "message": "Internal server error"}
