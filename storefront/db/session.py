from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Database:
    """Owns the engine and session factory for one database URL.

    Constructed once by whoever owns the process (the FastAPI lifespan, a
    worker, a test fixture) and handed to the components that need it.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int | None = None,
        max_overflow: int | None = None,
        echo: bool = False,
    ) -> None:
        self.url = database_url
        self.engine: Engine = create_engine(database_url, **_engine_kwargs(
            database_url, pool_size=pool_size, max_overflow=max_overflow, echo=echo
        ))
        self.session_factory: sessionmaker[Session] = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _engine_kwargs(
    database_url: str,
    *,
    pool_size: int | None,
    max_overflow: int | None,
    echo: bool,
) -> dict:
    kwargs: dict = {"pool_pre_ping": True, "echo": echo}
    is_sqlite = database_url.startswith("sqlite")

    if is_sqlite:
        # 15s busy timeout keeps concurrent writers waiting instead of failing fast
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 15}

        # Required so in-memory SQLite works across sessions in tests
        if ":memory:" in database_url:
            kwargs["poolclass"] = StaticPool
        return kwargs

    if pool_size is not None:
        kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        kwargs["max_overflow"] = max_overflow
    return kwargs


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request) -> Iterator[Session]:
    with get_database(request).session() as db:
        yield db
