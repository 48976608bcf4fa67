from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from flask import Flask, current_app, g
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker


def _engine_options(db_url: str, writer_threads: int) -> dict[str, Any]:
    opts: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        # activity writes run on pool threads, not the request thread
        opts["connect_args"] = {"check_same_thread": False}
    elif db_url.startswith("postgres"):
        opts.update(
            pool_recycle=1800,
            pool_size=5 + writer_threads,
            max_overflow=10,
            pool_timeout=30,
        )
    return opts


def init_db(app: Flask) -> None:
    """Engine + sessionmaker, stored on app.extensions."""
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **_engine_options(db_url, int(app.config.get("ACTIVITY_LOG_WORKERS") or 0)))
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )
    app.logger.debug("Database engine ready (dialect=%s)", engine.dialect.name)


def db_session() -> Session:
    """Session bound to the current request; closed by teardown_db_session."""
    s: Session | None = g.get("db_session")
    if s is None:
        s = g.db_session = current_app.extensions["sqlalchemy_sessionmaker"]()
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is not None:
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """Outside a request (scripts, tests): commit on success, roll back on error."""
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
