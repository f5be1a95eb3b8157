"""
Database connection and session management.
"""

from contextlib import contextmanager
from pathlib import Path
from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator, Iterator, Optional, Tuple
import logging
import os
import time

from ..config import DatabaseConfig
from ..models.base import Base

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Session factory for the engine built by create_engine; used by get_session
_session_factory: Optional[sessionmaker] = None


def is_in_memory(engine: Engine) -> bool:
    return engine.url.get_backend_name() == "sqlite" and engine.url.database in (None, "", ":memory:")


def create_engine(config: DatabaseConfig) -> Tuple[Engine, str]:
    """
    Create the application engine and bind the request session factory to it.

    Returns the engine and the unmasked URL, which Alembic needs because
    str(engine.url) hides the password.
    """
    global _session_factory

    database_url = config.url
    logger.debug(f"Creating database engine for {database_url.split('://', 1)[0]}")

    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # one shared connection, otherwise every session sees its own empty in-memory database
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            options["poolclass"] = StaticPool
        engine = sa_create_engine(database_url, echo=config.echo, **options)
    else:
        connect_args = {}
        if database_url.startswith("postgresql"):
            connect_args = {"connect_timeout": config.connect_timeout, "application_name": "deskbridge"}
        engine = sa_create_engine(
            database_url,
            echo=config.echo,
            connect_args=connect_args,
            pool_recycle=config.pool_recycle,
            pool_pre_ping=True
        )

    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return engine, database_url


def get_session() -> Generator[Session, None, None]:
    """Get database session - FastAPI dependency."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call create_engine first.")

    session = _session_factory()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Short-lived session outside a request, e.g. for startup seeding."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


def _run_migrations(database_url: str) -> None:
    from alembic.config import Config as AlembicConfig
    from alembic import command

    alembic_cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")


def init_database(engine: Engine, original_database_url: Optional[str] = None) -> None:
    """
    Create the schema: metadata create_all for in-memory SQLite, Alembic
    migrations for everything else.

    Server databases may not accept connections yet when the service starts,
    so migrations are retried DATABASE_INIT_MAX_ATTEMPTS times with a delay of
    attempt² × DATABASE_INIT_RETRY_DELAY seconds.
    """
    if is_in_memory(engine):
        Base.metadata.create_all(bind=engine)
        logger.info("Created in-memory database tables")
        return

    max_attempts = int(os.getenv("DATABASE_INIT_MAX_ATTEMPTS", "5"))
    retry_delay = int(os.getenv("DATABASE_INIT_RETRY_DELAY", "10"))
    database_url = original_database_url or str(engine.url)

    for attempt in range(1, max_attempts + 1):
        try:
            logger.info(f"Applying database migrations (attempt {attempt}/{max_attempts})")
            _run_migrations(database_url)
            logger.info("Database migrations applied successfully")
            return
        except Exception as e:
            logger.error(f"Database migration attempt {attempt}/{max_attempts} failed: {e}")
            if attempt == max_attempts:
                raise RuntimeError(f"Database initialization failed after {max_attempts} attempts. Last error: {e}")
            delay = (attempt ** 2) * retry_delay
            logger.info(f"Retrying in {delay} seconds...")
            time.sleep(delay)
