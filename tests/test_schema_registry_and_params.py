# tests/test_schema_registry_and_params.py
import pytest

from flashgen.gateway.errors import ValidationError
from flashgen.gateway.params import get_preset, normalize_messages, resolve_parameters
from flashgen.gateway.schema_validator import is_valid, validate_against_schema
from flashgen.gateway.schemas import SCHEMAS, create_schema, schema_body


def test_create_schema_wraps_with_defaults():
    raw = {"type": "object", "properties": {"a": {"type": "string"}}}
    rf = create_schema(raw)
    assert rf["type"] == "json_schema"
    assert rf["json_schema"]["name"] == "response"
    assert rf["json_schema"]["strict"] is True
    raw["properties"]["b"] = {"type": "integer"}
    assert "b" not in rf["json_schema"]["schema"]["properties"]


def test_registry_contents():
    assert set(SCHEMAS) == {
        "FLASHCARD", "MULTIPLE_CHOICE", "TRUE_FALSE",
        "FILL_IN_BLANK", "MATCHING", "FLASHCARD_COLLECTION",
    }
    for rf in SCHEMAS.values():
        assert schema_body(rf)["type"] == "object"


def test_flashcard_collection_validation():
    schema = schema_body(SCHEMAS["FLASHCARD_COLLECTION"])
    assert is_valid({"flashcards": [{"front": "Q", "back": "A"}]}, schema)

    errors = validate_against_schema({"flashcards": [{"front": "Q"}]}, schema)
    assert len(errors) == 1
    assert errors[0].startswith("flashcards[0]:")
    assert "'back' is a required property" in errors[0]

    errors = validate_against_schema({"flashcards": []}, schema)
    assert errors and errors[0].startswith("flashcards:")

    errors = validate_against_schema({}, schema)
    assert errors[0].startswith("<root>:")


def test_parameters_validated():
    with pytest.raises(ValidationError):
        resolve_parameters({"temperature": 2.5})
    with pytest.raises(ValidationError):
        resolve_parameters({"top_p": 1.5})
    with pytest.raises(ValidationError):
        resolve_parameters({"max_tokens": 0})
    with pytest.raises(ValidationError):
        resolve_parameters({"frequency_penalty": -3})


def test_preset_and_overrides():
    params = resolve_parameters({"temperature": 0.7, "max_tokens": 1024}, "precise", {"max_tokens": 50})
    assert params == {"temperature": 0.2, "top_p": 0.5, "frequency_penalty": 0.0, "max_tokens": 50}
    with pytest.raises(ValidationError):
        get_preset("wild")


def test_normalize_messages():
    assert normalize_messages(user_message="hi", system_message="sys") == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
    ]
    explicit = [{"role": "user", "content": "x"}]
    assert normalize_messages(explicit, user_message="ignored", system_message="ignored") == explicit
    with pytest.raises(ValidationError):
        normalize_messages([{"role": "robot", "content": "x"}])
    with pytest.raises(ValidationError):
        normalize_messages()


def test_blank_flashcard_sides_fail_validation():
    schema = schema_body(SCHEMAS["FLASHCARD_COLLECTION"])
    assert validate_against_schema({"flashcards": [{"front": "", "back": "A"}]}, schema)
    errors = validate_against_schema({"flashcards": [{"front": " ", "back": "\n"}]}, schema)
    assert len(errors) == 2
    assert all(e.startswith("flashcards[0].") for e in errors)


def test_malformed_schema_is_reported_not_raised():
    errors = validate_against_schema({}, {"type": "nonsense"})
    assert len(errors) == 1
    assert errors[0].startswith("Invalid schema:")
    assert not is_valid({}, {"type": "object", "required": "flashcards"})


@pytest.mark.parametrize("params", [
    {"temperature": "0.5"},
    {"temperature": True},
    {"top_p": "high"},
    {"max_tokens": True},
    {"max_tokens": 10.5},
    {"presence_penalty": "0"},
])
def test_non_numeric_parameters_rejected(params):
    with pytest.raises(ValidationError):
        resolve_parameters(params)
