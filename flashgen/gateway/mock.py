# flashgen/gateway/mock.py
"""
Deterministic stand-in for the model API, used when MOCK_LLM=true.

Builds flashcards from the SOURCE TEXT section of the prompt so local runs of
the full pipeline (API -> orchestrator -> gateway -> extractor) need no key
and no network.
"""

import json
import re
import time
from typing import Any, Dict, List

import httpx

_COUNT_RE = re.compile(r"Generate (\d+) educational flashcards")
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]")


def _mock_flashcards(user_text: str) -> List[Dict[str, str]]:
    m = _COUNT_RE.search(user_text)
    count = int(m.group(1)) if m else 5
    source = user_text.split("SOURCE TEXT:", 1)[-1]
    sentences = [s.strip() for s in _SENTENCE_RE.findall(source) if s.strip()]
    if not sentences:
        sentences = [source.strip()[:200] or "No content."]
    cards = []
    for i in range(count):
        sentence = sentences[i % len(sentences)]
        cards.append({
            "front": f"Card {i + 1}: what does the text state?"[:200],
            "back": sentence[:600],
        })
    return cards


def _chat_payload(body: Dict[str, Any]) -> Dict[str, Any]:
    user_texts = [m.get("content", "") for m in body.get("messages", []) if m.get("role") == "user"]
    content = json.dumps({"flashcards": _mock_flashcards("\n\n".join(user_texts))})
    model = body.get("model", "mock")
    return {
        "id": f"mock-{model}-{int(time.time() * 1000)}",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content},
                     "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
    }


def _handler(request: httpx.Request) -> httpx.Response:
    if request.method == "GET" and request.url.path.endswith("/models"):
        return httpx.Response(200, json={"data": [{"id": "mock/flashcards", "name": "Mock",
                                                   "context_length": 8192}]})
    if request.method == "POST" and request.url.path.endswith("/chat/completions"):
        body = json.loads(request.content or b"{}")
        payload = _chat_payload(body)
        if body.get("stream"):
            text = payload["choices"][0]["message"]["content"]
            lines = [f"data: {json.dumps({'choices': [{'delta': {'content': text}}]})}",
                     "data: [DONE]", ""]
            return httpx.Response(200, text="\n".join(lines),
                                  headers={"content-type": "text/event-stream"})
        return httpx.Response(200, json=payload)
    return httpx.Response(404, json={"error": {"message": f"No mock route for {request.url.path}"}})


def mock_transport() -> httpx.MockTransport:
    return httpx.MockTransport(_handler)
