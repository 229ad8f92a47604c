import logging
import time
from typing import Callable, TypeVar

from fastapi import HTTPException, status
from sqlmodel import SQLModel, create_engine, Session, select
from .config import settings
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import NullPool


logger = logging.getLogger(__name__)

T = TypeVar("T")


if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        echo=settings.sql_echo,
        connect_args={"check_same_thread": False, "timeout": 60},
        poolclass=NullPool,  # avoid multiple pooled connections holding write locks
    )
    # Configure SQLite pragmas to reduce locking
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
            conn.exec_driver_sql("PRAGMA busy_timeout=60000;")
    except OperationalError:
        # The database may be momentarily locked during reloader startup.
        logger.warning("Could not set SQLite pragmas; database is locked")
else:
    engine = create_engine(
        settings.database_url,
        echo=settings.sql_echo,
    )


def get_session():
    with Session(engine) as session:
        yield session


def commit_with_retry(session: Session, stage: Callable[[], T], attempts: int = 3) -> T:
    """Run ``stage`` and commit, retrying transient SQLite lock errors.

    A rollback expunges pending objects and expires persistent ones, so
    ``stage`` must (re)apply every change; it runs once per attempt and its
    return value is passed through.
    """
    for attempt in range(attempts):
        try:
            result = stage()
            session.commit()
            return result
        except OperationalError:
            session.rollback()
            logger.warning("Commit failed (attempt %s/%s); database busy", attempt + 1, attempts)
            if attempt == attempts - 1:
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Database is busy, please retry",
                )
            time.sleep(0.25 * (attempt + 1))


def init_db():
    from .models import (  # noqa: F401
        alert_state,
        budget,
        category,
        household,
        notification,
        settlement,
        transaction,
        user,
    )

    SQLModel.metadata.create_all(engine)
    seed_default_categories()


def seed_default_categories():
    """Insert any missing system categories (household_id NULL)."""
    from .models.category import DEFAULT_CATEGORIES, Category

    with Session(engine) as session:
        existing = set(
            session.exec(
                select(Category.name).where(Category.is_default.is_(True), Category.household_id.is_(None))
            ).all()
        )
        missing = [(name, icon) for name, icon in DEFAULT_CATEGORIES if name not in existing]
        for name, icon in missing:
            session.add(Category(name=name, icon=icon, is_default=True))
        if missing:
            session.commit()
            logger.info("Seeded %s default categories", len(missing))
