"""
FinModel Database Configuration

Engine, session factory and declarative base. The URL comes from config.py
(SQLite file finmodel.db by default; any SQLAlchemy URL works).

SQLite connections get two pragmas on connect:
    - foreign_keys=ON so ON DELETE CASCADE removes statement rows with a model
    - journal_mode=WAL so API reads do not block a running recalculation

Sessions are not autoflushed: the recalculation service flushes explicitly
between deleting derived rows and inserting their replacements.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .config import DATABASE_URL, SQLALCHEMY_ECHO

logger = logging.getLogger("finmodel.database")

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    pool_pre_ping=True,
    echo=SQLALCHEMY_ECHO,
)


def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key support and WAL mode for SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


if "sqlite" in DATABASE_URL:
    event.listen(engine, "connect", set_sqlite_pragma)


# Session factory: each request gets its own session
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base class for all FinModel tables."""
    pass


def get_db():
    """Request-scoped session for FastAPI `Depends`; always closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Create all database tables from ORM model definitions.
    Called during application startup and by seed_data.py.
    """
    from . import models  # noqa: F401 (registers tables with Base.metadata)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at {engine.url.render_as_string(hide_password=True)}")
