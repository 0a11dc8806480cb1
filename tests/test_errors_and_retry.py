# tests/test_errors_and_retry.py
import threading
import pytest

from flashgen.gateway.errors import (
    ERROR_CLASSES,
    AuthenticationError,
    ContentFilterError,
    ErrorKind,
    ModelNotFoundError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamInternalError,
    ValidationError,
    classify_status,
)
from flashgen.gateway.retry import RetryOptions, with_retry


@pytest.mark.parametrize("status,cls", [
    (400, ValidationError),
    (401, AuthenticationError),
    (402, QuotaExceededError),
    (403, ContentFilterError),
    (404, ModelNotFoundError),
    (429, RateLimitError),
    (500, UpstreamInternalError),
    (503, UpstreamInternalError),
    (418, NetworkError),
])
def test_classify_status(status, cls):
    err = classify_status(status, "upstream said no")
    assert isinstance(err, cls)
    assert err.status_code == status
    assert "upstream said no" in err.message


def test_retryable_kinds():
    retryable = {k for k in ErrorKind if k.retryable}
    assert retryable == {ErrorKind.RATE_LIMIT, ErrorKind.UPSTREAM_INTERNAL, ErrorKind.NETWORK}


def test_every_kind_has_a_class():
    assert set(ERROR_CLASSES) == set(ErrorKind)


def test_error_payload_and_builtin_bases():
    cause = OSError("socket closed")
    err = NetworkError("Network error: socket closed", cause=cause)
    d = err.to_dict()
    assert d["kind"] == "network_error"
    assert d["message"] == "Network error: socket closed"
    assert "OSError" in d["cause"]
    assert isinstance(ValidationError("x"), ValueError)
    assert isinstance(RequestTimeoutError("x"), TimeoutError)


def _scripted(outcomes):
    calls = []

    def fn():
        calls.append(1)
        o = outcomes.pop(0)
        if isinstance(o, Exception):
            raise o
        return o
    return fn, calls


def test_retry_backs_off_then_succeeds():
    fn, calls = _scripted([classify_status(503), classify_status(503), "ok"])
    delays = []
    assert with_retry(fn, sleep=delays.append) == "ok"
    assert delays == [1.0, 2.0]
    assert len(calls) == 3


def test_no_retry_on_authentication_error():
    fn, calls = _scripted([classify_status(401, "bad key"), "never"])
    delays = []
    with pytest.raises(AuthenticationError):
        with_retry(fn, sleep=delays.append)
    assert delays == []
    assert len(calls) == 1


def test_retry_gives_up_after_max_retries():
    fn, calls = _scripted([classify_status(429)] * 5)
    delays = []
    with pytest.raises(RateLimitError):
        with_retry(fn, sleep=delays.append)
    assert delays == [1.0, 2.0, 4.0]
    assert len(calls) == 4


def test_retry_delay_is_capped():
    fn, _ = _scripted([NetworkError("down")] * 5 + ["ok"])
    delays = []
    opts = RetryOptions(max_retries=5, initial_delay=4.0, max_delay=10.0, backoff_factor=2.0)
    assert with_retry(fn, opts, sleep=delays.append) == "ok"
    assert delays == [4.0, 8.0, 10.0, 10.0, 10.0]


def test_retry_never_sleeps_past_deadline():
    fn, calls = _scripted([classify_status(503), "ok"])
    delays = []
    with pytest.raises(RequestTimeoutError):
        with_retry(fn, deadline=100.5, sleep=delays.append, clock=lambda: 100.0)
    assert delays == []
    assert len(calls) == 1


def test_cancelled_call_is_not_attempted():
    fn, calls = _scripted(["ok"])
    event = threading.Event()
    event.set()
    with pytest.raises(RequestTimeoutError):
        with_retry(fn, cancel_event=event)
    assert calls == []


def test_foreign_exceptions_are_not_retried():
    fn, calls = _scripted([KeyError("boom"), "ok"])
    with pytest.raises(KeyError):
        with_retry(fn, sleep=lambda s: None)
    assert len(calls) == 1
