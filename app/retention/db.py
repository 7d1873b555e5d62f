from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator, Iterable

from flask import Flask
from sqlalchemy import create_engine, event, inspect as sa_inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def _create_engine(app: Flask, db_url: str) -> Engine:
    is_postgres = db_url.startswith("postgres")
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if is_postgres:
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    engine = create_engine(db_url, **engine_kwargs)
    if app.config.get("ENV") != "production":
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            app.logger.debug("DB connection checkout from pool (%s)", engine.url.get_backend_name())
    return engine


def _sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(app: Flask) -> None:
    engine = _create_engine(app, app.config["DATABASE_URL"])
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = _sessionmaker(engine)

    # Reads go to the replica only when one is configured AND preferred.
    replica_url = (app.config.get("DATABASE_REPLICA_URL") or "").strip()
    if replica_url and app.config.get("USE_READ_REPLICA"):
        replica = _create_engine(app, replica_url)
        app.extensions["sqlalchemy_read_engine"] = replica
        app.extensions["sqlalchemy_read_sessionmaker"] = _sessionmaker(replica)
        app.logger.info("Read queries routed to replica (%s)", replica.url.get_backend_name())


def has_read_replica(app: Flask) -> bool:
    return "sqlalchemy_read_sessionmaker" in app.extensions


def open_session(app: Flask, *, read: bool = False) -> Session:
    """
    Plain session for long-running jobs; caller owns commit/close.
    `read=True` returns a replica session when one is configured.
    """
    if read and has_read_replica(app):
        return app.extensions["sqlalchemy_read_sessionmaker"]()
    return app.extensions["sqlalchemy_sessionmaker"]()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts: yields a session and commits/rolls back.
    """
    sm = app.extensions["sqlalchemy_sessionmaker"]
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def missing_tables(engine: Engine, required: Iterable[str]) -> list[str]:
    """Tables from `required` that the connected database does not have."""
    insp = sa_inspect(engine)
    return [name for name in required if not insp.has_table(name)]


def dispose_engines(app: Flask) -> None:
    for key in ("sqlalchemy_engine", "sqlalchemy_read_engine"):
        engine = app.extensions.get(key)
        if engine is not None:
            engine.dispose()
