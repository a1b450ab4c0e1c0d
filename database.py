from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    pass


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


class Database:
    """Owns the pooled engine and hands out sessions.

    Constructed by the process entry point and passed to whoever needs it;
    nothing in the ledger looks it up from module state.
    """

    def __init__(self, url: str, *, pool_size: Optional[int] = None) -> None:
        self.url = url
        self.pool_size = pool_size
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker[Session]] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def open(self) -> "Database":
        if self._engine is not None:
            return self
        connect_args: dict[str, object] = {}
        engine_kwargs: dict[str, object] = {}
        is_sqlite = self.url.startswith("sqlite")
        if is_sqlite:
            connect_args["check_same_thread"] = False
        if self.pool_size and ":memory:" not in self.url:
            engine_kwargs["pool_size"] = self.pool_size
        eng = create_engine(self.url, connect_args=connect_args, **engine_kwargs)
        if is_sqlite:
            event.listen(eng, "connect", _enable_sqlite_pragmas)
        self._engine = eng
        self._sessionmaker = sessionmaker(
            bind=eng, autoflush=False, expire_on_commit=False
        )
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    def create_all(self) -> None:
        # models must be imported so their tables are registered on Base
        import models  # noqa: F401

        Base.metadata.create_all(self.engine)

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not open")
        return self._sessionmaker()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
