# flashgen/orchestrator.py
"""
Generation orchestrator: source text in, flashcard proposals out.

Flow for one generate() call:
1. Validate source length (no DB or network work on failure)
2. Fingerprint the text (SHA-256)
3. Create the generation record (counts 0)
4. Ask the model for N cards under a hard time budget, falling back to
   free-text extraction if the structured reply fails schema validation
5. Extract proposals, update the record's counts
6. On any failure after validation write one error log, then re-raise

Env vars:
- GENERATION_MODEL (default: openai/gpt-4.1-nano)
- GENERATION_TIMEOUT_SECONDS (default: 40)
"""

import hashlib
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

# Import modules (not bare functions) so monkeypatching in tests works correctly
import flashgen.gateway.client as _client
import flashgen.processors.prompt_builder as _prompt_builder
import flashgen.processors.response_extractor as _extractor
from flashgen import monitoring
from flashgen.db import GenerationStore
from flashgen.gateway.errors import (
    PersistenceError,
    RequestTimeoutError,
    SchemaValidationError,
    ValidationError,
)
from flashgen.gateway.schemas import SCHEMAS
from flashgen.schemas import (
    FlashcardProposal,
    SOURCE_TEXT_MAX_LENGTH,
    SOURCE_TEXT_MIN_LENGTH,
)

GENERATION_MODEL = os.getenv("GENERATION_MODEL", "openai/gpt-4.1-nano")
GENERATION_TIMEOUT_SECONDS = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "40"))

GENERATION_PARAMETERS: Dict[str, Any] = {"temperature": 0.4, "top_p": 0.95, "max_tokens": 2000}


@dataclass
class GenerationResult:
    generation_id: int
    proposals: List[FlashcardProposal] = field(default_factory=list)


def compute_fingerprint(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def validate_source_text(source_text: Any) -> str:
    if not isinstance(source_text, str):
        raise ValidationError("source_text must be a string")
    n = len(source_text)
    if n < SOURCE_TEXT_MIN_LENGTH or n > SOURCE_TEXT_MAX_LENGTH:
        raise ValidationError(
            f"source_text must be between {SOURCE_TEXT_MIN_LENGTH} and "
            f"{SOURCE_TEXT_MAX_LENGTH} characters (got {n})"
        )
    return source_text


class GenerationOrchestrator:
    def __init__(self, store: Optional[GenerationStore] = None,
                 gateway: Optional[Any] = None,
                 gateway_factory: Optional[Callable[[], Any]] = None,
                 model: Optional[str] = None,
                 timeout_seconds: Optional[float] = None):
        self.store = store or GenerationStore()
        self._gateway = gateway
        self._gateway_factory = gateway_factory
        self.model = model or GENERATION_MODEL
        self.timeout_seconds = (GENERATION_TIMEOUT_SECONDS if timeout_seconds is None
                                else timeout_seconds)

    def _get_gateway(self):
        if self._gateway is None:
            factory = self._gateway_factory or _client.create_gateway
            self._gateway = factory()
        return self._gateway

    def _log_error(self, user_id: str, generation_id: int, error: BaseException,
                   fingerprint: str, length: int) -> None:
        """Write one error log row; a failure here is logged and swallowed."""
        error_code = type(error).__name__
        monitoring.logger.error(
            "Flashcard generation failed",
            extra={"user_id": user_id, "generation_id": generation_id,
                   "error_code": error_code, "error": str(error)},
        )
        try:
            self.store.log_generation_error(
                user_id=user_id,
                generation_id=generation_id,
                model=self.model,
                error_code=error_code,
                error_message=str(error),
                source_text_hash=fingerprint,
                source_text_length=length,
            )
        except Exception as log_err:
            monitoring.logger.error(
                "Failed to write generation error log",
                extra={"generation_id": generation_id, "error": str(log_err)},
            )

    def _request_content(self, gateway, source_text: str, count: int,
                         deadline: float, cancel_event: threading.Event) -> Any:
        """Runs on the worker thread. Returns parsed JSON or raw text."""
        messages = _prompt_builder.build_messages(source_text, count)
        try:
            resp = gateway.complete(
                messages=messages,
                model=self.model,
                response_format=SCHEMAS["FLASHCARD_COLLECTION"],
                parameters=GENERATION_PARAMETERS,
                deadline=deadline,
                cancel_event=cancel_event,
            )
            return resp.content
        except SchemaValidationError as e:
            monitoring.logger.warning(
                "Structured reply failed schema validation, retrying as free text",
                extra={"error": e.message},
            )
        resp = gateway.complete(
            messages=messages,
            model=self.model,
            parameters=GENERATION_PARAMETERS,
            deadline=deadline,
            cancel_event=cancel_event,
        )
        return resp.content

    def _call_with_budget(self, gateway, source_text: str, count: int) -> Any:
        """
        Race the model call against the time budget. The deadline and cancel
        event go to the gateway too, so an abandoned call stops retrying.
        """
        deadline = time.monotonic() + self.timeout_seconds
        cancel_event = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="flashgen-llm")
        try:
            future = executor.submit(self._request_content, gateway, source_text, count,
                                     deadline, cancel_event)
            done, _ = wait([future], timeout=self.timeout_seconds)
            if not done:
                cancel_event.set()
                raise RequestTimeoutError(
                    f"Flashcard generation timed out after {self.timeout_seconds:g} seconds"
                )
            return future.result()
        finally:
            executor.shutdown(wait=False)

    def generate(self, user_id: str, source_text: str) -> GenerationResult:
        source_text = validate_source_text(source_text)
        start = time.time()
        fingerprint = compute_fingerprint(source_text)
        length = len(source_text)

        try:
            generation_id = self.store.create_generation(
                user_id=user_id,
                model=self.model,
                source_text_hash=fingerprint,
                source_text_length=length,
            )
        except PersistenceError as e:
            monitoring.observe_generation(start, e.code)
            self._log_error(user_id, 0, e, fingerprint, length)
            raise

        try:
            count = _prompt_builder.target_card_count(length)
            gateway = self._get_gateway()
            content = self._call_with_budget(gateway, source_text, count)
            strategy, proposals = _extractor.extract_with_strategy(content, count)
        except Exception as e:
            monitoring.observe_generation(start, getattr(e, "code", "unexpected_error"))
            self._log_error(user_id, generation_id, e, fingerprint, length)
            raise

        duration_ms = int((time.time() - start) * 1000)
        try:
            self.store.update_generation_stats(
                user_id=user_id,
                generation_id=generation_id,
                generated_count=len(proposals),
                duration_ms=duration_ms,
            )
        except PersistenceError as e:
            monitoring.logger.error(
                "Failed to update generation stats",
                extra={"generation_id": generation_id, "error": str(e)},
            )

        monitoring.observe_generation(start, "success")
        monitoring.set_last_proposals(len(proposals))
        monitoring.logger.info(
            "Flashcards generated",
            extra={"user_id": user_id, "generation_id": generation_id,
                   "requested": count, "generated": len(proposals),
                   "strategy": strategy, "duration_ms": duration_ms},
        )
        return GenerationResult(generation_id=generation_id, proposals=proposals)
