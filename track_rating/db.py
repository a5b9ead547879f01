"""Database connection and session management"""
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from track_rating.config import Settings
from track_rating.db_config import DatabaseManager
from track_rating.models.db import Base

logger = logging.getLogger(__name__)

class Database:
    """Database connection and session manager, built once at startup and passed around"""

    def __init__(self):
        """Initialize database manager state"""
        self._engine = None
        self._SessionLocal = None

    @property
    def dialect(self) -> str:
        if not self._engine:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine.dialect.name

    def init(self, settings: Settings) -> None:
        """
        Initialize database connection and create tables.

        SQLite connections get a busy timeout equal to the chunk timeout so a
        locked database fails a chunk instead of hanging it.
        """
        try:
            connection_string = DatabaseManager.connection_string(settings)
            connect_args = {}
            if DatabaseManager.is_sqlite(connection_string):
                connect_args = {
                    "timeout": settings.CHUNK_TIMEOUT_SECONDS,
                    "check_same_thread": False
                }
            self._engine = create_engine(connection_string, connect_args=connect_args, pool_pre_ping=True)
            Base.metadata.create_all(self._engine)
            self._SessionLocal = sessionmaker(bind=self._engine)
            logger.info(f"Database initialized successfully ({self._engine.dialect.name})")

        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations"""
        if not self._SessionLocal:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def read_session(self) -> Generator[Session, None, None]:
        """Provide a read-only scope; nothing is ever committed"""
        if not self._SessionLocal:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._SessionLocal()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    def apply_statement_timeout(self, session: Session, seconds: float) -> None:
        """Bound every statement of the current transaction (PostgreSQL only)"""
        if self.dialect == "postgresql":
            session.execute(text(f"SET LOCAL statement_timeout = {int(seconds * 1000)}"))

    def dispose(self) -> None:
        """
        Clean up database connections.
        Should be called during application shutdown.
        """
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None
