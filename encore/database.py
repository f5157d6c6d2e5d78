"""Database connection, session management and the atomic unit of work."""

import logging
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from encore.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url

# SQLite uses StaticPool so an in-memory database is shared across sessions
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        echo=settings.database_echo,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(DATABASE_URL, echo=settings.database_echo, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run a block of writes as one unit: commit on success, roll back on any error.

    Example:
        ```python
        with atomic(db):
            db.add(invoice)
            db.flush()
            db.add(Payment(invoice_id=invoice.id, ...))
        ```
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        logger.debug("Atomic unit rolled back")
        raise


__all__ = ["engine", "SessionLocal", "get_db", "atomic"]
