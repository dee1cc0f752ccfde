from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine (and with it the connection pool) for one app instance."""

    def __init__(self, url: str, pool_size: int = 10, max_overflow: int = 10, pool_timeout: int = 30, **engine_kwargs):
        self.url = url
        if url.startswith("sqlite"):
            # FastAPI serves sync handlers from a threadpool
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        else:
            engine_kwargs.setdefault("pool_size", pool_size)
            engine_kwargs.setdefault("max_overflow", max_overflow)
            engine_kwargs.setdefault("pool_timeout", pool_timeout)
            engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine = create_engine(url, future=True, **engine_kwargs)

        # Ensure SQLite enforces foreign keys
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._sessionmaker = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, future=True)

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
        )

    def create_all(self):
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Check out a session; roll back on error and always hand the connection back."""
        db = self._sessionmaker()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self):
        self.engine.dispose()
