# flashgen/db.py
"""
SQLAlchemy engine/session setup and the generation store.

Env vars:
- DATABASE_URL (default: sqlite:///./flashgen.db); on Vercel api/index.py
  points it at /tmp before import
"""

import os
from contextlib import contextmanager
from typing import Optional, Dict, Any, List, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.exc import SQLAlchemyError

from flashgen import monitoring
from flashgen.gateway.errors import PersistenceError

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./flashgen.db")


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def reconfigure(url: str):
    """Reconfigure the DB engine and session factory at runtime (for tests)."""
    global engine, SessionLocal
    engine.dispose()
    engine = _make_engine(url)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    # Create tables if they don't exist; never crash the app at import time
    try:
        import flashgen.models as models  # noqa: F401
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        monitoring.logger.warning("DB init failed", extra={"error": str(e)})


@contextmanager
def _session(action: str) -> Iterator[Session]:
    db: Session = SessionLocal()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to {action}: {e.__class__.__name__}", cause=e)
    finally:
        db.close()


def _generation_to_dict(g) -> Dict[str, Any]:
    return {
        "id": g.id,
        "user_id": g.user_id,
        "model": g.model,
        "generated_count": g.generated_count,
        "accepted_count": g.accepted_count,
        "source_text_hash": g.source_text_hash,
        "source_text_length": g.source_text_length,
        "duration_ms": g.duration_ms,
        "created_at": g.created_at,
        "updated_at": g.updated_at,
    }


def _error_log_to_dict(e) -> Dict[str, Any]:
    return {
        "id": e.id,
        "generation_id": e.generation_id,
        "user_id": e.user_id,
        "model": e.model,
        "error_code": e.error_code,
        "error_message": e.error_message,
        "source_text_hash": e.source_text_hash,
        "source_text_length": e.source_text_length,
        "timestamp": e.timestamp,
    }


class GenerationStore:
    """
    Generation records and error logs, scoped by user_id.

    Every method raises PersistenceError on database failure; reads return
    None / [] for rows the user does not own.
    """

    def create_generation(self, user_id: str, model: str, source_text_hash: str,
                          source_text_length: int) -> int:
        from flashgen.models import Generation
        with _session("create generation record") as db:
            g = Generation(
                user_id=user_id,
                model=model,
                generated_count=0,
                accepted_count=0,
                source_text_hash=source_text_hash,
                source_text_length=source_text_length,
                duration_ms=0,
            )
            db.add(g)
            db.flush()
            return g.id

    def update_generation_stats(self, user_id: str, generation_id: int,
                                generated_count: int, duration_ms: int) -> None:
        from flashgen.models import Generation
        with _session("update generation record") as db:
            g = (db.query(Generation)
                 .filter(Generation.id == generation_id, Generation.user_id == user_id)
                 .first())
            if g is None:
                raise PersistenceError(f"Generation {generation_id} not found")
            g.generated_count = generated_count
            g.duration_ms = duration_ms

    def log_generation_error(self, user_id: str, generation_id: int, model: str,
                             error_code: str, error_message: str,
                             source_text_hash: str, source_text_length: int) -> int:
        from flashgen.models import GenerationErrorLog
        with _session("write generation error log") as db:
            row = GenerationErrorLog(
                generation_id=generation_id or 0,
                user_id=user_id,
                model=model,
                error_code=(error_code or "UnknownError")[:100],
                error_message=error_message or "",
                source_text_hash=source_text_hash,
                source_text_length=source_text_length,
            )
            db.add(row)
            db.flush()
            return row.id

    def get_generation(self, user_id: str, generation_id: int) -> Optional[Dict[str, Any]]:
        from flashgen.models import Generation
        with _session("read generation record") as db:
            g = (db.query(Generation)
                 .filter(Generation.id == generation_id, Generation.user_id == user_id)
                 .first())
            return _generation_to_dict(g) if g else None

    def list_error_logs(self, user_id: str,
                        generation_id: Optional[int] = None) -> List[Dict[str, Any]]:
        from flashgen.models import GenerationErrorLog
        with _session("read generation error logs") as db:
            q = db.query(GenerationErrorLog).filter(GenerationErrorLog.user_id == user_id)
            if generation_id is not None:
                q = q.filter(GenerationErrorLog.generation_id == generation_id)
            return [_error_log_to_dict(e) for e in q.order_by(GenerationErrorLog.id).all()]
