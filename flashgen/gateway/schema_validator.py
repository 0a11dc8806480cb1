# flashgen/gateway/schema_validator.py
"""
Single entry point for validating model output against a JSON Schema.

validate_against_schema(value, schema) -> list of human-readable errors
(empty list == valid). Backed by jsonschema so required properties,
primitive types, numeric ranges, string lengths, array min/max items and
nested objects/arrays are all checked.
"""

from typing import Any, Dict, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError


def _format_path(path) -> str:
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out or "<root>"


def validate_against_schema(value: Any, schema: Dict[str, Any]) -> List[str]:
    try:
        Draft7Validator.check_schema(schema)
        validator = Draft7Validator(schema)
    except SchemaError as e:
        return [f"Invalid schema: {e.message}"]
    errors = sorted(validator.iter_errors(value), key=lambda e: list(e.absolute_path))
    return [f"{_format_path(e.absolute_path)}: {e.message}" for e in errors]


def is_valid(value: Any, schema: Dict[str, Any]) -> bool:
    return not validate_against_schema(value, schema)
