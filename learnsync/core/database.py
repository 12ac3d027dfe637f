"""
Database configuration and setup for SQLAlchemy.

This module handles database connection management, session creation,
and provides the foundation for all database operations in the application.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator

from learnsync.config.settings import settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite connections get ``check_same_thread=False`` so the session can be
    used from FastAPI's threadpool, and foreign keys are switched on so that
    ``ON DELETE`` rules on the group tables are honoured.
    """
    is_sqlite = database_url.startswith("sqlite")
    new_engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=echo
    )

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


# Create SQLAlchemy engine
engine = build_engine(settings.database_url, echo=settings.debug and settings.log_level.upper() == "DEBUG")

# Each instance will be a database session
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all SQLAlchemy models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency function to get database session.

    This function creates a new database session for each request
    and ensures it's properly closed after the request completes.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine = None):
    """
    Create all database tables.

    This function creates all tables defined by SQLAlchemy models
    that inherit from Base. Used for initial database setup.
    """
    # Register models with the metadata before creating tables
    import learnsync.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def drop_tables(bind: Engine = None):
    """
    Drop all database tables.

    Useful for testing or resetting the database.
    """
    import learnsync.models  # noqa: F401

    Base.metadata.drop_all(bind=bind or engine)
