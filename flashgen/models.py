# flashgen/models.py
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text, CHAR
import datetime

from flashgen.db import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Generation(Base):
    __tablename__ = "generations"
    __table_args__ = (
        CheckConstraint("generated_count >= 0", name="ck_generations_generated_count"),
        CheckConstraint("accepted_count >= 0", name="ck_generations_accepted_count"),
        CheckConstraint("accepted_count <= generated_count", name="ck_generations_accepted_le_generated"),
        CheckConstraint("source_text_length BETWEEN 1000 AND 10000", name="ck_generations_source_text_length"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), index=True, nullable=False)
    model = Column(String(255), nullable=False)
    generated_count = Column(Integer, nullable=False, default=0)
    accepted_count = Column(Integer, nullable=False, default=0)
    source_text_hash = Column(CHAR(64), nullable=False)
    source_text_length = Column(Integer, nullable=False)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class GenerationErrorLog(Base):
    __tablename__ = "generation_error_logs"

    id = Column(Integer, primary_key=True, index=True)
    # 0 when the failure happened before the generation row existed, so no FK
    generation_id = Column(Integer, index=True, nullable=False, default=0)
    user_id = Column(String(64), index=True, nullable=False)
    model = Column(String(255), nullable=False)
    error_code = Column(String(100), nullable=False)
    error_message = Column(Text, nullable=False)
    source_text_hash = Column(CHAR(64), nullable=False)
    source_text_length = Column(Integer, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
