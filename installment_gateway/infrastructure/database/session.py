"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from installment_gateway.config import settings
from installment_gateway.domain.exceptions import ConcurrentModificationError, DuplicateSubmissionError

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session, entity_id: str | None = None) -> Iterator[Session]:
    """
    Commit on success, roll back on any error.

    A version conflict on flush/commit surfaces as ConcurrentModificationError,
    a transaction reference stored twice as DuplicateSubmissionError.
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentModificationError(
            "Payment was modified concurrently, retry the request",
            entity_id=entity_id,
        ) from e
    except IntegrityError as e:
        db.rollback()
        if "transaction_ref" in str(e.orig):
            raise DuplicateSubmissionError(
                "Transaction reference has already been submitted",
                entity_id=entity_id,
            ) from e
        raise
    except Exception:
        db.rollback()
        raise
