# tests/test_prompt_builder.py
import pytest

from flashgen.processors.prompt_builder import (
    SYSTEM_MESSAGE,
    build_generation_prompt,
    build_messages,
    target_card_count,
)


@pytest.mark.parametrize("length,expected", [
    (1000, 5), (4500, 5), (5999, 5), (7000, 7), (9999, 9), (10000, 10),
])
def test_card_count_scales_with_length(length, expected):
    assert target_card_count(length) == expected


def test_prompt_mentions_count_format_and_source():
    text = "Mitochondria are the powerhouse of the cell. " * 30
    prompt = build_generation_prompt(text, 7)
    assert prompt.startswith("Generate 7 educational flashcards")
    assert '"flashcards"' in prompt
    assert prompt.endswith("SOURCE TEXT:\n" + text)


def test_messages_have_system_then_user():
    msgs = build_messages("some text", 5)
    assert msgs[0] == {"role": "system", "content": SYSTEM_MESSAGE}
    assert msgs[1]["role"] == "user"
    assert "Generate 5 educational flashcards" in msgs[1]["content"]
