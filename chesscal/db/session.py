# chesscal/db/session.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, Session, create_engine

from chesscal.config import DEFAULT_DATABASE_URL
from chesscal.errors import StorageError

logger = logging.getLogger(__name__)


class EventStore:
    """Owns the engine for the calendar database.

    Opened once at process start and closed at shutdown; the query builder,
    mutation service and backup manager all receive the same instance.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> None:
        self.database_url = database_url
        self.echo = echo
        self._engine: Optional[Engine] = None

    # --- lifecycle -----------------------------------------------------------

    def _create_engine(self) -> Engine:
        url = make_url(self.database_url)
        is_sqlite = url.get_backend_name() == "sqlite"
        if is_sqlite and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        # SQLite needs check_same_thread=False for FastAPI's threadpool
        connect_args = {"check_same_thread": False} if is_sqlite else {}
        return create_engine(self.database_url, echo=self.echo, connect_args=connect_args)

    def open(self) -> "EventStore":
        if self._engine is None:
            self._engine = self._create_engine()
            logger.debug("Opened store %s", self.database_url)
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.debug("Closed store %s", self.database_url)

    def reopen(self) -> None:
        """Drop pooled connections, e.g. after the file was restored underneath us.

        The new engine is swapped in before the old one is disposed, so callers
        never see the store closed.
        """
        old, self._engine = self._engine, self._create_engine()
        if old is not None:
            old.dispose()
        logger.debug("Reopened store %s", self.database_url)

    def __enter__(self) -> "EventStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    # --- access --------------------------------------------------------------

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StorageError(f"store {self.database_url} is not open")
        return self._engine

    @property
    def database_path(self) -> Path:
        """Absolute path of the SQLite file backing this store."""
        url = make_url(self.database_url)
        if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
            raise StorageError(f"{self.database_url} is not a file-backed SQLite database")
        return Path(url.database).resolve()

    def create_all(self) -> None:
        """Create tables if they don't exist (tests/dev). Production uses Alembic."""
        from chesscal.models import event  # noqa: F401 (registers the table)
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self.engine) as s:
            yield s
