from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_emr.core.settings import settings

logger = logging.getLogger("clinic_emr.db")

T = TypeVar("T")

READ_RETRY_MAX_SLEEP = 1.0


def build_engine(database_url: str, *, timeout_seconds: int) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False, "timeout": timeout_seconds}}
        if ":memory:" in database_url or database_url.rstrip("/") in {"sqlite:", "sqlite+pysqlite:"}:
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args={
            "connect_timeout": timeout_seconds,
            "options": f"-c statement_timeout={timeout_seconds * 1000}",
        },
    )


engine = build_engine(settings.database_url, timeout_seconds=settings.db_timeout_seconds)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def retry_read(
    db: Session,
    read: Callable[[], T],
    *,
    attempts: int | None = None,
    base_sleep: float | None = None,
) -> T:
    """Run an idempotent read, retrying transient connection failures.

    Only reads go through here. Edits and deletes are not idempotent and are
    never retried.
    """
    max_attempts = attempts if attempts is not None else settings.read_retry_attempts
    sleep_base = base_sleep if base_sleep is not None else settings.read_retry_base_sleep
    attempt = 0
    while True:
        try:
            return read()
        except OperationalError:
            attempt += 1
            db.rollback()
            if attempt >= max_attempts:
                raise
            sleep_for = min(sleep_base * (2 ** (attempt - 1)), READ_RETRY_MAX_SLEEP)
            logger.warning("Transient read failure, retrying (attempt %s/%s)", attempt, max_attempts)
            time.sleep(sleep_for)
