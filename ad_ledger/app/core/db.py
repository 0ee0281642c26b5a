from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from ..models import db as _db_models  # noqa: F401 - ensure models register with metadata
from .config import get_settings


def _serialize_sqlite_writers(engine: Engine) -> None:
    # pysqlite opens transactions lazily and never takes a write lock up front,
    # so FOR UPDATE is a no-op there. BEGIN IMMEDIATE makes concurrent
    # transactions queue on the database lock instead.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for_url(database_url: str) -> Engine:
    connect_args: dict[str, Any] = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = {"check_same_thread": False, "timeout": 30}
    engine = create_engine(database_url, echo=False, connect_args=connect_args)
    if is_sqlite:
        _serialize_sqlite_writers(engine)
    return engine


settings = get_settings()
engine = create_engine_for_url(settings.database_url)


def init_db() -> None:
    SQLModel.metadata.create_all(engine)


def get_engine() -> Engine:
    return engine


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def set_engine(new_engine: Engine) -> None:
    global engine
    engine = new_engine
