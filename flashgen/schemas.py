# flashgen/schemas.py
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime

SOURCE_TEXT_MIN_LENGTH = 1000
SOURCE_TEXT_MAX_LENGTH = 10000
FRONT_MAX_LENGTH = 200
BACK_MAX_LENGTH = 600

# proposal origin; only "ai-full" is produced here, the others come from user edits
ProposalSource = Literal["ai-full", "ai-edited", "manual"]


class FlashcardProposal(BaseModel):
    front: str = Field(min_length=1, max_length=FRONT_MAX_LENGTH)
    back: str = Field(min_length=1, max_length=BACK_MAX_LENGTH)
    source: ProposalSource = "ai-full"


class GenerateFlashcardsRequest(BaseModel):
    # length is checked by the orchestrator so the error shape matches the rest of the API
    source_text: str


class GenerationResponse(BaseModel):
    generation_id: int
    flashcards_proposal: List[FlashcardProposal]


class GenerationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    model: str
    generated_count: int
    accepted_count: int
    source_text_hash: str
    source_text_length: int
    duration_ms: int
    created_at: datetime
    updated_at: datetime


class GenerationErrorLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    generation_id: int
    model: str
    error_code: str
    error_message: str
    source_text_hash: str
    source_text_length: int
    timestamp: datetime


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[dict] = None
