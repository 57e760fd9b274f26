# psychi/database.py
"""
SQLAlchemy engine and session factory for the SQL-backed stores.

The engine is built lazily so importing the package never opens a
connection; tests build their own in-memory engine with ``build_engine``.
"""

from datetime import datetime
import logging
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    url = url or settings.database_url
    kwargs: dict[str, Any] = {
        "echo": settings.database_echo if echo is None else echo,
        "future": True,
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(pool_size=10, max_overflow=5, pool_pre_ping=True, pool_recycle=3600)

    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


def get_db() -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def create_all(engine: Optional[Engine] = None) -> None:
    """Create every table registered on ``Base`` (used by tests and local setup)."""
    from . import models  # noqa: F401  (registers tables)

    Base.metadata.create_all(bind=engine or get_engine())
