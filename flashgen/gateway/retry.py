# flashgen/gateway/retry.py
"""
Exponential backoff for gateway calls.

Defaults: initial delay 1s, multiplier 2, cap 10s, max 3 retries.
Only errors whose kind is retryable (network, 5xx, 429) are retried; every
other FlashgenError surfaces immediately. Non-pipeline exceptions are never
retried here: the gateway converts transport failures to NetworkError before
they reach this loop.

The sleep is cooperative: when a cancel event is supplied, backoff waits on it
so an abandoned call stops as soon as the caller gives up, and a deadline
prevents sleeping past the caller's overall budget.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from flashgen.gateway.errors import FlashgenError, RequestTimeoutError
from flashgen import monitoring

T = TypeVar("T")


@dataclass
class RetryOptions:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0


def _default_sleep(seconds: float, cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None:
        cancel_event.wait(seconds)
    else:
        time.sleep(seconds)


def with_retry(fn: Callable[[], T], options: Optional[RetryOptions] = None,
               deadline: Optional[float] = None,
               cancel_event: Optional[threading.Event] = None,
               sleep: Optional[Callable[[float], None]] = None,
               clock: Callable[[], float] = time.monotonic) -> T:
    """
    Call fn until it succeeds, a terminal error is raised, or retries run out.

    deadline is a clock() value; a retry whose backoff would end past it is
    abandoned with RequestTimeoutError. sleep, when given, replaces the
    cooperative default (tests pass a recorder here).
    """
    options = options or RetryOptions()
    delay = options.initial_delay
    attempt = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise RequestTimeoutError("Request cancelled before completion")
        try:
            return fn()
        except FlashgenError as e:
            if not e.retryable or attempt >= options.max_retries:
                raise
            if deadline is not None and clock() + delay >= deadline:
                raise RequestTimeoutError(
                    f"Retry budget exhausted after {attempt + 1} attempts: {e.message}", cause=e
                )
            attempt += 1
            monitoring.inc_llm_retry(e.kind.value)
            monitoring.logger.warning(
                "LLM call failed, retrying",
                extra={"kind": e.kind.value, "attempt": attempt,
                       "max_retries": options.max_retries, "delay_s": delay},
            )
            if sleep is not None:
                sleep(delay)
            else:
                _default_sleep(delay, cancel_event)
            delay = min(delay * options.backoff_factor, options.max_delay)
