"""Engine and session handling for the case database.

All stores share one DatabaseManager. PostgreSQL is the production
target; SQLite files are used for local runs and the test-suite.
"""

import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import PersistenceError
from .models import Base


logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///case_drafting.db"

# Seconds SQLite waits on a locked database before failing.
SQLITE_BUSY_TIMEOUT = 30


def resolve_database_url(database_url: Optional[str] = None) -> str:
    """
    Pick the database URL to connect to.

    An explicit URL wins, then CASE_DRAFTING_DATABASE_URL, then a local
    SQLite file.
    """
    return database_url or os.environ.get("CASE_DRAFTING_DATABASE_URL") or DEFAULT_DATABASE_URL


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _enable_wal(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


class DatabaseManager:
    """
    Owns the engine and the session factory of the case database.

    The engine is created lazily on first use. Worker threads share the
    manager, so SQLite connections are opened with check_same_thread
    disabled and file databases run in WAL mode.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy URL; see resolve_database_url().
            pool_size: Pooled connections (ignored for SQLite).
            max_overflow: Extra connections beyond pool_size (ignored for SQLite).
            echo: Log every SQL statement.
        """
        self._database_url = resolve_database_url(database_url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def database_url(self) -> str:
        return self._database_url

    def _engine_options(self) -> Dict[str, Any]:
        if _is_sqlite(self._database_url):
            return {
                "echo": self._echo,
                "connect_args": {"timeout": SQLITE_BUSY_TIMEOUT, "check_same_thread": False},
            }
        return {
            "echo": self._echo,
            "pool_size": self._pool_size,
            "max_overflow": self._max_overflow,
            "pool_pre_ping": True,
        }

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(self._database_url, **self._engine_options())
            database = make_url(self._database_url).database
            if _is_sqlite(self._database_url) and database and database != ":memory:":
                event.listen(self._engine, "connect", _enable_wal)
            logger.info(f"Connected to {make_url(self._database_url).render_as_string(hide_password=True)}")
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Transactional session scope.

        The session commits when the block exits normally and rolls back
        otherwise. SQLAlchemy errors surface as PersistenceError; any other
        exception propagates unchanged.

        Example:
            with db_manager.get_session() as session:
                session.add(model)
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database operation failed: {e}")
            raise PersistenceError(f"Database operation failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self) -> None:
        """Create missing tables."""
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        """Dispose of the engine; the next use reconnects."""
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None

    def health_check(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False
        return True
