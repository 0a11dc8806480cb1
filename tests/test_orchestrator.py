# tests/test_orchestrator.py
"""
Orchestrator tests with an in-memory store and a scripted gateway, so they
exercise validation, persistence bookkeeping, fallback and timeout handling
without a database or the network.
"""
import json
import threading
import pytest

from flashgen.gateway.client import ChatResponse
from flashgen.gateway.errors import (
    AuthenticationError,
    NetworkError,
    PersistenceError,
    RequestTimeoutError,
    SchemaValidationError,
    UpstreamInternalError,
    ValidationError,
)
from flashgen.gateway.schemas import SCHEMAS
from flashgen.orchestrator import GenerationOrchestrator, compute_fingerprint

USER = "user-1"


def source_text(n):
    base = "The cell membrane controls what enters and leaves the cell. "
    return (base * (n // len(base) + 1))[:n]


def cards_json(n):
    return json.dumps({"flashcards": [{"front": f"Question {i}?", "back": f"Answer {i}."}
                                      for i in range(n)]})


class FakeStore:
    def __init__(self, fail_create=False, fail_update=False, fail_log=False):
        self.fail_create = fail_create
        self.fail_update = fail_update
        self.fail_log = fail_log
        self.generations = {}
        self.error_logs = []

    def create_generation(self, user_id, model, source_text_hash, source_text_length):
        if self.fail_create:
            raise PersistenceError("Failed to create generation record: OperationalError")
        gid = len(self.generations) + 1
        self.generations[gid] = {"user_id": user_id, "model": model, "generated_count": 0,
                                 "source_text_hash": source_text_hash,
                                 "source_text_length": source_text_length}
        return gid

    def update_generation_stats(self, user_id, generation_id, generated_count, duration_ms):
        if self.fail_update:
            raise PersistenceError("Failed to update generation record")
        self.generations[generation_id].update(generated_count=generated_count, duration_ms=duration_ms)

    def log_generation_error(self, **kwargs):
        if self.fail_log:
            raise PersistenceError("Failed to write generation error log")
        self.error_logs.append(kwargs)
        return len(self.error_logs)


class FakeGateway:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def complete(self, **kwargs):
        self.calls.append(kwargs)
        o = self.outcomes.pop(0)
        if isinstance(o, Exception):
            raise o
        return ChatResponse(content=o, model="openai/gpt-4.1-nano",
                            raw_text=o if isinstance(o, str) else json.dumps(o))


class BlockingGateway:
    """Waits on the cancel event, like a gateway backing off between retries."""

    def __init__(self):
        self.calls = []
        self.released = threading.Event()

    def complete(self, **kwargs):
        self.calls.append(kwargs)
        kwargs["cancel_event"].wait(5)
        self.released.set()
        raise RequestTimeoutError("Request cancelled before completion")


def make(store=None, gateway=None, **kwargs):
    store = store or FakeStore()
    return GenerationOrchestrator(store=store, gateway=gateway, **kwargs), store


@pytest.mark.parametrize("length", [0, 999, 10001])
def test_length_out_of_bounds_rejected_without_side_effects(length):
    gw = FakeGateway(cards_json(5))
    orch, store = make(gateway=gw)
    with pytest.raises(ValidationError):
        orch.generate(USER, source_text(length))
    assert store.generations == {}
    assert store.error_logs == []
    assert gw.calls == []


def test_successful_generation():
    gw = FakeGateway({"flashcards": [{"front": "What is a membrane?", "back": "A barrier."}] * 7})
    orch, store = make(gateway=gw)
    text = source_text(7000)
    result = orch.generate(USER, text)

    assert result.generation_id == 1
    assert len(result.proposals) == 7
    assert all(p.source == "ai-full" for p in result.proposals)

    call = gw.calls[0]
    assert call["response_format"] == SCHEMAS["FLASHCARD_COLLECTION"]
    assert call["parameters"] == {"temperature": 0.4, "top_p": 0.95, "max_tokens": 2000}
    assert "Generate 7 educational flashcards" in call["messages"][1]["content"]
    assert isinstance(call["deadline"], float)
    assert isinstance(call["cancel_event"], threading.Event)

    rec = store.generations[1]
    assert rec["user_id"] == USER
    assert rec["generated_count"] == 7
    assert rec["source_text_length"] == 7000
    assert rec["source_text_hash"] == compute_fingerprint(text)
    assert store.error_logs == []


def test_fingerprint_is_deterministic_sha256():
    a = compute_fingerprint(source_text(1500))
    assert a == compute_fingerprint(source_text(1500))
    assert len(a) == 64 and int(a, 16) >= 0
    assert a != compute_fingerprint(source_text(1501))


def test_schema_failure_falls_back_to_free_text():
    gw = FakeGateway(SchemaValidationError("Schema validation failed"),
                     "Front: What is osmosis?\nBack: Diffusion of water.\n")
    orch, store = make(gateway=gw)
    result = orch.generate(USER, source_text(2000))

    assert len(gw.calls) == 2
    assert gw.calls[1].get("response_format") is None
    assert gw.calls[1]["deadline"] == gw.calls[0]["deadline"]
    assert [(p.front, p.back) for p in result.proposals] == [("What is osmosis?", "Diffusion of water.")]
    assert store.generations[1]["generated_count"] == 1
    assert store.error_logs == []


def test_empty_extraction_is_tolerated():
    gw = FakeGateway("")
    orch, store = make(gateway=gw)
    result = orch.generate(USER, source_text(3000))
    assert result.proposals == []
    assert store.generations[1]["generated_count"] == 0


def test_gateway_failure_logs_once_with_generation_id():
    gw = FakeGateway(UpstreamInternalError("Server error: overloaded"))
    orch, store = make(gateway=gw)
    text = source_text(1200)
    with pytest.raises(UpstreamInternalError):
        orch.generate(USER, text)

    assert len(store.error_logs) == 1
    log = store.error_logs[0]
    assert log["generation_id"] == 1
    assert log["error_code"] == "UpstreamInternalError"
    assert "overloaded" in log["error_message"]
    assert log["source_text_hash"] == compute_fingerprint(text)
    assert log["source_text_length"] == 1200
    assert store.generations[1]["generated_count"] == 0


def test_record_creation_failure_logs_with_zero_id():
    gw = FakeGateway(cards_json(5))
    orch, store = make(store=FakeStore(fail_create=True), gateway=gw)
    with pytest.raises(PersistenceError):
        orch.generate(USER, source_text(1000))
    assert gw.calls == []
    assert len(store.error_logs) == 1
    assert store.error_logs[0]["generation_id"] == 0
    assert store.error_logs[0]["error_code"] == "PersistenceError"


def test_error_log_failure_does_not_mask_original_error():
    gw = FakeGateway(NetworkError("Network error: connection reset"))
    orch, _ = make(store=FakeStore(fail_log=True), gateway=gw)
    with pytest.raises(NetworkError):
        orch.generate(USER, source_text(1000))


def test_count_update_failure_does_not_fail_the_call():
    gw = FakeGateway(cards_json(5))
    orch, store = make(store=FakeStore(fail_update=True), gateway=gw)
    result = orch.generate(USER, source_text(1000))
    assert len(result.proposals) == 5
    assert store.error_logs == []


def test_gateway_construction_failure_is_logged():
    def factory():
        raise AuthenticationError("API key is required")

    orch, store = make(gateway_factory=factory)
    with pytest.raises(AuthenticationError):
        orch.generate(USER, source_text(1000))
    assert store.error_logs[0]["generation_id"] == 1
    assert store.error_logs[0]["error_code"] == "AuthenticationError"


def test_time_budget_cancels_the_call():
    gw = BlockingGateway()
    orch, store = make(gateway=gw, timeout_seconds=0.2)
    with pytest.raises(RequestTimeoutError) as exc_info:
        orch.generate(USER, source_text(1000))

    assert "timed out" in str(exc_info.value)
    assert gw.calls[0]["cancel_event"].is_set()
    assert gw.released.wait(2)
    assert len(store.error_logs) == 1
    assert store.error_logs[0]["error_code"] == "RequestTimeoutError"
    assert store.error_logs[0]["generation_id"] == 1


def test_zero_time_budget_is_kept():
    gw = BlockingGateway()
    orch, store = make(gateway=gw, timeout_seconds=0)
    assert orch.timeout_seconds == 0
    with pytest.raises(RequestTimeoutError):
        orch.generate(USER, source_text(1000))
    assert gw.released.wait(2)
    assert store.error_logs[0]["error_code"] == "RequestTimeoutError"
