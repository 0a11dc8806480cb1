# flashgen/gateway/schemas.py
"""
Schema registry: JSON Schemas for structured model output.

create_schema() wraps a plain JSON Schema into the response_format envelope
understood by the chat-completions API:

  {"type": "json_schema",
   "json_schema": {"name": "...", "strict": true, "schema": {...}}}

Only FLASHCARD_COLLECTION is used by the generation pipeline; the other
entries are kept for future content types.
"""

import copy
from typing import Any, Dict, Optional


def create_schema(schema: Dict[str, Any], name: Optional[str] = None,
                  strict: Optional[bool] = None) -> Dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name or "response",
            "strict": True if strict is None else strict,
            "schema": copy.deepcopy(schema),
        },
    }


def schema_body(response_format: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return the inner JSON Schema of a response_format, if it carries one."""
    if not response_format or response_format.get("type") != "json_schema":
        return None
    js = response_format.get("json_schema") or {}
    return js.get("schema")


def is_strict(response_format: Optional[Dict[str, Any]]) -> bool:
    js = (response_format or {}).get("json_schema") or {}
    strict = js.get("strict")
    return True if strict is None else bool(strict)


FLASHCARD_SCHEMA = {
    "type": "object",
    "properties": {
        "front": {"type": "string", "minLength": 1, "pattern": "\\S"},
        "back": {"type": "string", "minLength": 1, "pattern": "\\S"},
        "difficulty": {"type": "integer", "minimum": 1, "maximum": 5},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["front", "back"],
}

MULTIPLE_CHOICE_SCHEMA = {
    "type": "object",
    "properties": {
        "question": {"type": "string"},
        "options": {"type": "array", "items": {"type": "string"}, "minItems": 2, "maxItems": 6},
        "correctOptionIndex": {"type": "integer", "minimum": 0},
        "explanation": {"type": "string"},
    },
    "required": ["question", "options", "correctOptionIndex"],
}

TRUE_FALSE_SCHEMA = {
    "type": "object",
    "properties": {
        "statement": {"type": "string"},
        "isTrue": {"type": "boolean"},
        "explanation": {"type": "string"},
    },
    "required": ["statement", "isTrue"],
}

FILL_IN_BLANK_SCHEMA = {
    "type": "object",
    "properties": {
        "text": {"type": "string"},
        "blanks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "correctAnswer": {"type": "string"},
                    "alternativeAnswers": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["id", "correctAnswer"],
            },
        },
    },
    "required": ["text", "blanks"],
}

MATCHING_SCHEMA = {
    "type": "object",
    "properties": {
        "instructions": {"type": "string"},
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"left": {"type": "string"}, "right": {"type": "string"}},
                "required": ["left", "right"],
            },
            "minItems": 2,
        },
    },
    "required": ["items"],
}

FLASHCARD_COLLECTION_SCHEMA = {
    "type": "object",
    "properties": {
        "flashcards": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "front": {"type": "string", "minLength": 1, "pattern": "\\S"},
                    "back": {"type": "string", "minLength": 1, "pattern": "\\S"},
                },
                "required": ["front", "back"],
            },
            "minItems": 1,
        },
    },
    "required": ["flashcards"],
}

SCHEMAS: Dict[str, Dict[str, Any]] = {
    "FLASHCARD": create_schema(FLASHCARD_SCHEMA, name="flashcard"),
    "MULTIPLE_CHOICE": create_schema(MULTIPLE_CHOICE_SCHEMA, name="multiple_choice"),
    "TRUE_FALSE": create_schema(TRUE_FALSE_SCHEMA, name="true_false"),
    "FILL_IN_BLANK": create_schema(FILL_IN_BLANK_SCHEMA, name="fill_in_blank"),
    "MATCHING": create_schema(MATCHING_SCHEMA, name="matching"),
    "FLASHCARD_COLLECTION": create_schema(FLASHCARD_COLLECTION_SCHEMA, name="flashcard_collection"),
}
