# flashgen/gateway/client.py
"""
Model gateway: thin, retryable, cacheable HTTP client for an OpenRouter-style
chat-completions API.

Returns a ChatResponse:
  content   -> str, or the parsed JSON object when a structured response_format was requested
  model     -> model that produced the answer
  usage     -> token usage dict
  id        -> upstream response id
  metadata  -> upstream metadata (if any)
  raw_text  -> the unparsed assistant text

Configuration (env vars):
  OPENROUTER_API_KEY=...
  OPENROUTER_BASE_URL=https://openrouter.ai/api/v1
  OPENROUTER_APP_TITLE=Flashgen
  OPENROUTER_REFERER=flashgen-api
  GENERATION_MODEL=openai/gpt-4.1-nano
  LLM_TIMEOUT_SECONDS=30
  LLM_CACHE_ENABLED=true
  LLM_CACHE_TTL_SECONDS=300
  LLM_CACHE_MAX_SIZE=100
  MOCK_LLM=false                 (serve canned flashcards, no network; dev only)

Usage:
  from flashgen.gateway.client import create_gateway
  gw = create_gateway()
  resp = gw.complete("Create a flashcard about photosynthesis",
                     response_format=SCHEMAS["FLASHCARD"])
"""

import json
import os
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

import httpx

from flashgen import monitoring
from flashgen.gateway.cache import ResponseCache, make_cache_key
from flashgen.gateway.errors import (
    AuthenticationError,
    FlashgenError,
    NetworkError,
    RequestTimeoutError,
    SchemaValidationError,
    UpstreamInternalError,
    classify_status,
)
from flashgen.gateway.params import normalize_messages, resolve_parameters
from flashgen.gateway.retry import RetryOptions, with_retry
from flashgen.gateway.schema_validator import validate_against_schema
from flashgen.gateway.schemas import is_strict, schema_body

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "").strip()
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
OPENROUTER_APP_TITLE = os.getenv("OPENROUTER_APP_TITLE", "Flashgen")
OPENROUTER_REFERER = os.getenv("OPENROUTER_REFERER", "flashgen-api")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
LLM_CACHE_ENABLED = os.getenv("LLM_CACHE_ENABLED", "true").lower() in ("1", "true", "yes")
LLM_CACHE_TTL_SECONDS = float(os.getenv("LLM_CACHE_TTL_SECONDS", "300"))
LLM_CACHE_MAX_SIZE = int(os.getenv("LLM_CACHE_MAX_SIZE", "100"))
MOCK_LLM = os.getenv("MOCK_LLM", "false").lower() in ("1", "true", "yes")

DEFAULT_MODEL = os.getenv("GENERATION_MODEL", "openai/gpt-4.1-nano")
DEFAULT_SYSTEM_MESSAGE = "You are a helpful assistant that creates educational content."
DEFAULT_PARAMETERS: Dict[str, Any] = {"temperature": 0.7, "top_p": 0.9, "max_tokens": 1024}

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*|\s*```$")


@dataclass
class ChatResponse:
    content: Any
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""


@dataclass
class StreamChunk:
    content: str
    done: bool = False


def iter_sse_chunks(lines: Iterable[str]) -> Iterator[StreamChunk]:
    """Turn `data: {...}` SSE lines into StreamChunks; stops at `data: [DONE]`."""
    for line in lines:
        line = line.strip()
        if not line or line.startswith(":"):
            continue
        if line == "data: [DONE]":
            yield StreamChunk(content="", done=True)
            return
        if not line.startswith("data: "):
            continue
        try:
            data = json.loads(line[len("data: "):])
        except ValueError:
            monitoring.logger.debug("Skipping malformed SSE line", extra={"line": line[:200]})
            continue
        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict):
            delta = choices[0].get("delta") or {}
            content = delta.get("content") or ""
            if content:
                yield StreamChunk(content=content, done=False)


class ModelGateway:
    """Chat-completions client with parameter validation, retries, caching and schema checks."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 default_model: Optional[str] = None,
                 default_system_message: Optional[str] = None,
                 default_parameters: Optional[Dict[str, Any]] = None,
                 timeout: Optional[float] = None,
                 retry_options: Optional[RetryOptions] = None,
                 cache: Optional[ResponseCache] = None,
                 http_client: Optional[httpx.Client] = None,
                 sleep: Optional[Callable[[float], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.api_key = api_key or OPENROUTER_API_KEY
        if not self.api_key:
            raise AuthenticationError(
                "API key is required. Pass api_key or set the OPENROUTER_API_KEY environment variable."
            )
        self.base_url = (base_url or OPENROUTER_BASE_URL).rstrip("/")
        self.default_model = default_model or DEFAULT_MODEL
        self.default_system_message = default_system_message or DEFAULT_SYSTEM_MESSAGE
        self.default_parameters = {**DEFAULT_PARAMETERS, **(default_parameters or {})}
        self.timeout = LLM_TIMEOUT_SECONDS if timeout is None else timeout
        self.retry_options = retry_options or RetryOptions()
        self.cache = cache
        self._client = http_client or httpx.Client()
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def complete(self, prompt: Optional[str] = None, *,
                 messages: Optional[List[Dict[str, str]]] = None,
                 system_message: Optional[str] = None,
                 model: Optional[str] = None,
                 models: Optional[List[str]] = None,
                 response_format: Optional[Dict[str, Any]] = None,
                 parameters: Optional[Dict[str, Any]] = None,
                 preset: Optional[str] = None,
                 use_cache: bool = True,
                 timeout: Optional[float] = None,
                 deadline: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None) -> ChatResponse:
        """
        Non-streaming completion. deadline is a time.monotonic() value shared
        with the caller; no attempt or backoff is allowed to run past it.
        """
        body = self._build_request_body(prompt, messages, system_message, model, models,
                                        response_format, parameters, preset)

        cache_key = None
        if self.cache is not None and use_cache:
            params = {k: v for k, v in body.items()
                      if k not in ("model", "messages", "response_format")}
            cache_key = make_cache_key(body["messages"], body["model"], response_format, params)
            cached = self.cache.get(cache_key)
            if cached is not None:
                monitoring.inc_llm_cache("hit")
                return cached
            monitoring.inc_llm_cache("miss")

        start = time.time()
        try:
            payload = with_retry(
                lambda: self._request_json("POST", "/chat/completions", body, timeout, deadline,
                                           cancel_event),
                self.retry_options, deadline=deadline, cancel_event=cancel_event,
                sleep=self._sleep, clock=self._clock,
            )
            response = self._process_response(payload, response_format, body["model"])
        except FlashgenError as e:
            monitoring.observe_llm_call(start, e.kind.value)
            raise
        monitoring.observe_llm_call(start, "success")

        if cache_key is not None:
            self.cache.set(cache_key, response)
        return response

    def stream(self, prompt: Optional[str] = None, *,
               messages: Optional[List[Dict[str, str]]] = None,
               system_message: Optional[str] = None,
               model: Optional[str] = None,
               parameters: Optional[Dict[str, Any]] = None,
               preset: Optional[str] = None,
               timeout: Optional[float] = None,
               cancel_event: Optional[threading.Event] = None) -> Iterator[StreamChunk]:
        """
        Streaming completion. Yields StreamChunk fragments; the final chunk has
        done=True. No schema validation is applied to streamed text.
        """
        body = self._build_request_body(prompt, messages, system_message, model, None,
                                        None, parameters, preset)
        body["stream"] = True

        resp = with_retry(
            lambda: self._open_stream(body, timeout),
            self.retry_options, cancel_event=cancel_event,
            sleep=self._sleep, clock=self._clock,
        )
        try:
            for chunk in iter_sse_chunks(resp.iter_lines()):
                if cancel_event is not None and cancel_event.is_set():
                    return
                yield chunk
        except httpx.TimeoutException as e:
            raise RequestTimeoutError("Stream timed out", cause=e)
        except httpx.HTTPError as e:
            raise NetworkError(f"Stream interrupted: {e}", cause=e)
        finally:
            resp.close()

    def list_models(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        payload = with_retry(
            lambda: self._request_json("GET", "/models", None, timeout, None),
            self.retry_options, sleep=self._sleep, clock=self._clock,
        )
        return payload.get("data") or []

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------
    def _build_request_body(self, prompt, messages, system_message, model, models,
                            response_format, parameters, preset) -> Dict[str, Any]:
        msgs = normalize_messages(messages, prompt, system_message or self.default_system_message)
        params = resolve_parameters(self.default_parameters, preset, parameters)
        body: Dict[str, Any] = {"model": model or self.default_model, "messages": msgs}
        body.update(params)
        if response_format:
            body["response_format"] = response_format
        if models:
            body["models"] = list(models)
        return body

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": OPENROUTER_REFERER,
            "X-Title": OPENROUTER_APP_TITLE,
        }

    def _effective_timeout(self, timeout: Optional[float], deadline: Optional[float]) -> float:
        effective = self.timeout if timeout is None else timeout
        if deadline is not None:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise RequestTimeoutError("Time budget exhausted before the request was sent")
            effective = min(effective, remaining)
        if effective <= 0:
            raise RequestTimeoutError("Request timeout must be positive")
        return effective

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _request_json(self, method: str, path: str, body: Optional[Dict[str, Any]],
                      timeout: Optional[float], deadline: Optional[float],
                      cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        # httpx applies the timeout per phase (connect, each read), so the body is
        # read chunk by chunk and abandoned once the deadline passes or the caller cancels.
        effective = self._effective_timeout(timeout, deadline)
        request = self._client.build_request(
            method, f"{self.base_url}{path}", json=body,
            headers=self._headers(), timeout=effective,
        )
        try:
            resp = self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request timed out after {effective:.1f}s", cause=e)
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {e}", cause=e)

        try:
            content = self._read_body(resp, deadline, cancel_event)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request timed out after {effective:.1f}s", cause=e)
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {e}", cause=e)
        finally:
            resp.close()

        if resp.status_code >= 400:
            raise self._error_from_response(resp.status_code, resp.reason_phrase, content)
        try:
            payload = json.loads(content)
        except ValueError as e:
            raise NetworkError("Model API returned a non-JSON body", cause=e)
        if not isinstance(payload, dict):
            raise UpstreamInternalError("Model API returned an unexpected payload")
        return payload

    def _read_body(self, resp: httpx.Response, deadline: Optional[float],
                   cancel_event: Optional[threading.Event]) -> bytes:
        parts: List[bytes] = []
        for chunk in resp.iter_bytes():
            parts.append(chunk)
            if cancel_event is not None and cancel_event.is_set():
                raise RequestTimeoutError("Request cancelled while reading the response")
            if deadline is not None and self._clock() >= deadline:
                raise RequestTimeoutError("Time budget exhausted while reading the response")
        return b"".join(parts)

    def _open_stream(self, body: Dict[str, Any], timeout: Optional[float]) -> httpx.Response:
        request = self._client.build_request(
            "POST", f"{self.base_url}/chat/completions", json=body,
            headers=self._headers(), timeout=self.timeout if timeout is None else timeout,
        )
        try:
            resp = self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError("Stream request timed out", cause=e)
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {e}", cause=e)
        if resp.status_code >= 400:
            try:
                content = resp.read()
            finally:
                resp.close()
            raise self._error_from_response(resp.status_code, resp.reason_phrase, content)
        return resp

    @staticmethod
    def _error_from_response(status_code: int, reason_phrase: str, content: bytes) -> FlashgenError:
        message = reason_phrase or "Unknown error occurred"
        try:
            data = json.loads(content)
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                message = data["error"].get("message") or message
        except ValueError:
            pass
        return classify_status(status_code, message)

    # ------------------------------------------------------------------
    # Response processing
    # ------------------------------------------------------------------
    def _process_response(self, payload: Dict[str, Any],
                          response_format: Optional[Dict[str, Any]],
                          requested_model: str) -> ChatResponse:
        choices = payload.get("choices")
        if not choices:
            # some providers report failures in a 200 body
            err = payload.get("error")
            if isinstance(err, dict) and isinstance(err.get("code"), int):
                raise classify_status(err["code"], err.get("message") or "Upstream error")
            raise UpstreamInternalError("Invalid response format from model API: no choices")

        message = (choices[0] or {}).get("message") or {}
        content = message.get("content")
        if content is None:
            content = ""
        raw_text = content if isinstance(content, str) else json.dumps(content)

        if response_format and response_format.get("type") != "text":
            content = self._parse_structured(content, response_format)

        return ChatResponse(
            content=content,
            model=payload.get("model") or requested_model,
            usage=payload.get("usage") or {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
            id=payload.get("id"),
            metadata=payload.get("metadata") or {},
            raw_text=raw_text,
        )

    @staticmethod
    def _parse_structured(content: Any, response_format: Dict[str, Any]) -> Any:
        if isinstance(content, str):
            text = _FENCE_RE.sub("", content.strip())
            try:
                content = json.loads(text)
            except ValueError as e:
                raise SchemaValidationError(f"Failed to parse JSON response: {e}", cause=e)

        schema = schema_body(response_format)
        if schema is None:
            return content
        if not isinstance(content, dict):
            raise SchemaValidationError("Response content is not a valid JSON object")
        errors = validate_against_schema(content, schema)
        if errors and is_strict(response_format):
            raise SchemaValidationError(f"Schema validation failed: {'; '.join(errors)}")
        return content


_shared_cache: Optional[ResponseCache] = None
_shared_cache_lock = threading.Lock()


def get_shared_cache() -> Optional[ResponseCache]:
    """Process-wide cache instance; created on first use, None when caching is disabled."""
    global _shared_cache
    if not LLM_CACHE_ENABLED:
        return None
    with _shared_cache_lock:
        if _shared_cache is None:
            _shared_cache = ResponseCache(max_size=LLM_CACHE_MAX_SIZE, ttl_seconds=LLM_CACHE_TTL_SECONDS)
        return _shared_cache


def create_gateway(**overrides: Any) -> ModelGateway:
    """
    Build a gateway from the environment. Explicit keyword overrides win.
    With MOCK_LLM=true the HTTP layer is replaced by the canned mock transport.
    """
    kwargs: Dict[str, Any] = {"cache": get_shared_cache()}
    if MOCK_LLM and "http_client" not in overrides:
        from flashgen.gateway.mock import mock_transport
        kwargs["http_client"] = httpx.Client(transport=mock_transport())
        kwargs["api_key"] = overrides.get("api_key") or "mock-key"
    kwargs.update(overrides)
    return ModelGateway(**kwargs)
