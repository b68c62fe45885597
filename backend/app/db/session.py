from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()


def _install_sqlite_write_locking(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write, so two readers can both see a
    # conflict-free state. Take over transaction control and open every
    # transaction with BEGIN IMMEDIATE, which acquires the database write lock.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, **kwargs: Any) -> Engine:
    connect_args = dict(kwargs.pop("connect_args", {}))
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", settings.sqlite_busy_timeout_seconds)
    kwargs.setdefault("echo", settings.database_echo)
    if not is_sqlite:
        kwargs.setdefault("pool_pre_ping", True)

    engine = create_engine(database_url, connect_args=connect_args, **kwargs)
    if is_sqlite:
        _install_sqlite_write_locking(engine)
    return engine


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
