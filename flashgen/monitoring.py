# flashgen/monitoring.py
"""
Centralized monitoring: Prometheus metrics, structured JSON logging, optional Sentry.

Env vars:
- PROMETHEUS_ENABLED (default: true)
- SENTRY_DSN (optional)
- LOG_AS_JSON (default: true)
- LOG_LEVEL (default: INFO)
- ENVIRONMENT (default: development)
"""

import logging
import os
import time
from typing import Optional, Tuple

import sentry_sdk
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY,
)
from pythonjsonlogger.json import JsonFormatter

# --- ENV flags
PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "true").lower() in ("1", "true", "yes")
SENTRY_DSN = os.getenv("SENTRY_DSN", None)
LOG_AS_JSON = os.getenv("LOG_AS_JSON", "true").lower() in ("1", "true", "yes")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


# --- Logger setup
def setup_logger(name: str = "flashgen", level: Optional[int] = None) -> logging.Logger:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO")) if level is None else level
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        if LOG_AS_JSON:
            handler.setFormatter(JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(handler)
    return logger


logger = setup_logger()

# --- Sentry (optional)
if SENTRY_DSN:
    sentry_sdk.init(dsn=SENTRY_DSN, environment=ENVIRONMENT)
    logger.info("Sentry initialized")


# --- Prometheus metrics
REQUEST_COUNT = Counter(
    "flashgen_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "flashgen_request_latency_seconds",
    "Request latency in seconds",
    ["endpoint"],
)

GENERATION_COUNTER = Counter(
    "flashgen_generations_total",
    "Flashcard generation attempts",
    ["outcome"],
)

GENERATION_LATENCY = Histogram(
    "flashgen_generation_latency_seconds",
    "End-to-end generation latency",
)

LLM_CALL_COUNTER = Counter(
    "flashgen_llm_calls_total",
    "Model API calls by outcome",
    ["outcome"],
)

LLM_CALL_LATENCY = Histogram(
    "flashgen_llm_call_latency_seconds",
    "Model API call latency including retries",
)

LLM_RETRIES = Counter(
    "flashgen_llm_retries_total",
    "Model API retries by error kind",
    ["kind"],
)

LLM_CACHE = Counter(
    "flashgen_llm_cache_total",
    "Response cache lookups",
    ["result"],
)

EXTRACTION_STRATEGY = Counter(
    "flashgen_extraction_strategy_total",
    "Which extraction strategy produced the proposals",
    ["strategy"],
)

LAST_PROPOSALS = Gauge(
    "flashgen_proposals_last",
    "Proposals returned by the last generation",
)


# --- Helper wrappers (never crash the app)
def observe_request(start_ts: float, endpoint: str, method: str, status: str):
    try:
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start_ts)
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    except Exception:
        pass


def observe_generation(start_ts: float, outcome: str):
    try:
        GENERATION_LATENCY.observe(time.time() - start_ts)
        GENERATION_COUNTER.labels(outcome=outcome).inc()
    except Exception:
        pass


def observe_llm_call(start_ts: float, outcome: str):
    try:
        LLM_CALL_LATENCY.observe(time.time() - start_ts)
        LLM_CALL_COUNTER.labels(outcome=outcome).inc()
    except Exception:
        pass


def inc_llm_retry(kind: str):
    try:
        LLM_RETRIES.labels(kind=kind).inc()
    except Exception:
        pass


def inc_llm_cache(result: str):
    try:
        LLM_CACHE.labels(result=result).inc()
    except Exception:
        pass


def inc_extraction_strategy(strategy: str):
    try:
        EXTRACTION_STRATEGY.labels(strategy=strategy).inc()
    except Exception:
        pass


def set_last_proposals(n: int):
    try:
        LAST_PROPOSALS.set(n)
    except Exception:
        pass


def prometheus_metrics_response() -> Tuple[bytes, str]:
    """Return (body_bytes, content_type) for Prometheus scrape."""
    try:
        return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
    except Exception:
        return b"", CONTENT_TYPE_LATEST
