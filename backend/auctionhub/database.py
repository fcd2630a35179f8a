"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file `auction.db` next to the
package by default) and provides small helpers used by the application,
the scripts and the tests.
"""

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine, Session
from .config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite connections are shared with the threadpool that runs sync routes;
        # writers wait on each other instead of failing straight away
        return {"check_same_thread": False, "timeout": 15}
    return {}


engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args(settings.DATABASE_URL))


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    Importing `models` registers the tables on the shared metadata. This
    is intended for local development and lightweight scripts.
    """
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def drop_db_and_tables():
    """Drop every table; used by the seed script and the test suite."""
    from . import models  # noqa: F401

    SQLModel.metadata.drop_all(engine)


def check_connection() -> bool:
    """Return True if a trivial query succeeds against the engine."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
