# flashgen/processors/prompt_builder.py
"""
Prompt construction for flashcard generation.

The card count scales with the source length: one card per 1000 characters,
never fewer than MIN_CARDS nor more than MAX_CARDS.
"""

from typing import Dict, List

MIN_CARDS = 5
MAX_CARDS = 10

SYSTEM_MESSAGE = (
    "You are a specialized AI that creates educational flashcards. "
    "Your task is to create clear, concise, and educational flashcards "
    "based on the text provided."
)

PROMPT_TEMPLATE = """Generate {count} educational flashcards from the following text.
Each flashcard should have a question on the front and an answer on the back.
Keep the front under 200 characters and the back under 600 characters.
Focus on the key concepts, definitions and facts in the text.

IMPORTANT: You MUST respond with a valid JSON object following this exact structure:
{{
  "flashcards": [
    {{"front": "Question 1", "back": "Answer 1"}},
    {{"front": "Question 2", "back": "Answer 2"}}
  ]
}}
Do not include any text outside the JSON object.

SOURCE TEXT:
{text}"""


def target_card_count(text_length: int) -> int:
    return max(MIN_CARDS, min(MAX_CARDS, text_length // 1000))


def build_generation_prompt(text: str, count: int) -> str:
    return PROMPT_TEMPLATE.format(count=count, text=text)


def build_messages(text: str, count: int) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_MESSAGE},
        {"role": "user", "content": build_generation_prompt(text, count)},
    ]
