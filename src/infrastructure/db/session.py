# src/infrastructure/db/session.py

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.infrastructure import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        # Request threads and background tasks share the one connection.
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    # Committed rows stay readable for post-commit notices.
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


engine: Engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
SessionLocal = build_session_factory(engine)


@contextmanager
def get_db_session(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """Unit of work outside FastAPI: commit on success, rollback on error."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def wait_for_database(bind: Engine, max_retries: int, retry_delay: float) -> None:
    """Block until the database answers, or re-raise after max_retries."""
    for attempt in range(1, max_retries + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            if attempt == max_retries:
                logger.exception("Database unreachable after %s attempts (%s)", attempt, bind.url)
                raise
            logger.warning(
                "Database not ready, attempt %s/%s; next try in %.1fs",
                attempt,
                max_retries,
                retry_delay,
            )
            time.sleep(retry_delay)
        else:
            logger.info("Database reachable at %s", bind.url)
            return
