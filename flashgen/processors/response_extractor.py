# flashgen/processors/response_extractor.py
"""
Turn a raw model reply into flashcard proposals.

extract(raw_content, expected_count) never raises. It walks STRATEGIES in
order and stops at the first one that returns a list (None means "not
applicable, try the next one"):

  1. json          - the reply is (or parses to) {"flashcards": [{front, back}, ...]}
  2. json_block    - strip ``` fences, take the first balanced {...} block, parse it
  3. numbered      - "1) question\nanswer" entries
  4. labelled      - "Front:/Back:" or "Question:/Answer:" line pairs
  5. paragraphs    - one card per paragraph, split at the first sentence end

Every strategy is a pure function (content, expected_count) -> list | None,
so new heuristics are added by appending to STRATEGIES. Strategies 3-5 stop
at expected_count. Empty items are dropped and over-long text is clipped to
the proposal bounds, so only well-formed proposals leave this module.

A parsed {"flashcards": [...]} payload ends the ladder even when none of its
items are usable: the reply was structured, so the text heuristics would only
turn the JSON envelope itself into a card.
"""

import json
import re
from typing import Any, Callable, List, Optional, Sequence, Tuple

from flashgen import monitoring
from flashgen.schemas import FRONT_MAX_LENGTH, BACK_MAX_LENGTH, FlashcardProposal

Strategy = Callable[[Any, int], Optional[List[FlashcardProposal]]]

GENERIC_QUESTION = "What is important about this content?"
GENERIC_ANSWER = "Review this content for details."

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?|```")
_NUMBERED_RE = re.compile(
    r"^[ \t]*(\d+)[.):][ \t]+([^\n]+)\n+(?![ \t]*\d+[.):][ \t])[ \t]*([^\n]+)",
    re.MULTILINE,
)
_FRONT_BACK_RE = re.compile(r"Front:[ \t]*([^\n]+)\n+[ \t]*Back:[ \t]*([^\n]+)", re.IGNORECASE)
_QA_RE = re.compile(r"(?:Question|Q):[ \t]*([^\n]+)\n+[ \t]*(?:Answer|A):[ \t]*([^\n]+)", re.IGNORECASE)
_FRONT_LABEL_RE = re.compile(r"^(?:front|question|q)\s*:\s*", re.IGNORECASE)
_BACK_LABEL_RE = re.compile(r"^(?:back|answer|a)\s*:\s*", re.IGNORECASE)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE = re.compile(r"[.!?]")


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit].rstrip()


def make_proposal(front: Any, back: Any) -> Optional[FlashcardProposal]:
    """Build a bounded proposal, or None if either side is empty."""
    if not isinstance(front, str) or not isinstance(back, str):
        return None
    front = _clip(front, FRONT_MAX_LENGTH)
    back = _clip(back, BACK_MAX_LENGTH)
    if not front or not back:
        return None
    return FlashcardProposal(front=front, back=back)


def _cards_from_payload(payload: Any) -> Optional[List[FlashcardProposal]]:
    if isinstance(payload, dict):
        items = payload.get("flashcards")
    elif isinstance(payload, list):
        items = payload
    else:
        return None
    if not isinstance(items, list):
        return None
    cards = []
    for item in items:
        if isinstance(item, dict):
            card = make_proposal(item.get("front"), item.get("back"))
            if card is not None:
                cards.append(card)
    return cards


def first_balanced_json_object(text: str) -> Optional[str]:
    """Return the first {...} block with balanced braces (string-aware), if any."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
def from_json(content: Any, expected_count: int) -> Optional[List[FlashcardProposal]]:
    if isinstance(content, (dict, list)):
        return _cards_from_payload(content)
    if not isinstance(content, str):
        return None
    try:
        return _cards_from_payload(json.loads(content.strip()))
    except ValueError:
        return None


def from_json_block(content: Any, expected_count: int) -> Optional[List[FlashcardProposal]]:
    if not isinstance(content, str):
        return None
    block = first_balanced_json_object(_FENCE_RE.sub("", content))
    if block is None:
        return None
    try:
        return _cards_from_payload(json.loads(block))
    except ValueError:
        return None


def from_numbered_list(content: Any, expected_count: int) -> Optional[List[FlashcardProposal]]:
    if not isinstance(content, str):
        return None
    cards: List[FlashcardProposal] = []
    for m in _NUMBERED_RE.finditer(content):
        if len(cards) >= expected_count:
            break
        front = _FRONT_LABEL_RE.sub("", m.group(2).strip())
        back = _BACK_LABEL_RE.sub("", m.group(3).strip())
        card = make_proposal(front, back)
        if card is not None:
            cards.append(card)
    return cards or None


def from_labelled_pairs(content: Any, expected_count: int) -> Optional[List[FlashcardProposal]]:
    if not isinstance(content, str):
        return None
    cards: List[FlashcardProposal] = []
    for pattern in (_FRONT_BACK_RE, _QA_RE):
        for m in pattern.finditer(content):
            if len(cards) >= expected_count:
                return cards or None
            card = make_proposal(m.group(1), m.group(2))
            if card is not None:
                cards.append(card)
    return cards or None


def from_paragraphs(content: Any, expected_count: int) -> Optional[List[FlashcardProposal]]:
    if not isinstance(content, str):
        return None
    paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(content) if p.strip()]
    cards: List[FlashcardProposal] = []
    for paragraph in paragraphs[:max(expected_count, 0)]:
        if len(paragraph) <= 10:
            continue
        m = _SENTENCE_END_RE.search(paragraph)
        if m and m.start() > 0:
            front = paragraph[:m.start() + 1]
            back = paragraph[m.start() + 1:].strip() or GENERIC_ANSWER
        else:
            front, back = GENERIC_QUESTION, paragraph
        card = make_proposal(front, back)
        if card is not None:
            cards.append(card)
    return cards or None


STRATEGIES: Sequence[Tuple[str, Strategy]] = (
    ("json", from_json),
    ("json_block", from_json_block),
    ("numbered", from_numbered_list),
    ("labelled", from_labelled_pairs),
    ("paragraphs", from_paragraphs),
)


def extract_with_strategy(raw_content: Any, expected_count: int,
                          strategies: Sequence[Tuple[str, Strategy]] = STRATEGIES
                          ) -> Tuple[Optional[str], List[FlashcardProposal]]:
    """Like extract(), but also report which strategy produced the result."""
    for name, strategy in strategies:
        try:
            cards = strategy(raw_content, expected_count)
        except Exception as e:
            monitoring.logger.debug("Extraction strategy failed",
                                    extra={"strategy": name, "error": str(e)})
            continue
        if cards is not None:
            monitoring.inc_extraction_strategy(name)
            return name, cards
    monitoring.inc_extraction_strategy("none")
    return None, []


def extract(raw_content: Any, expected_count: int) -> List[FlashcardProposal]:
    return extract_with_strategy(raw_content, expected_count)[1]
