import logging

from sqlalchemy import create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from warehouse_assignment.core.config import get_database_url

logger = logging.getLogger(__name__)

Base = declarative_base()

# Built on first use so tests can point DATABASE_URL elsewhere beforehand
_engine = None
_engine_url = None
_session_factory = None


def _build_engine(database_url: str):
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)
    connect_args = {"check_same_thread": False}
    if url.database in (None, "", ":memory:"):
        # One shared connection, so sync worker threads see the same tables
        return create_engine(
            database_url, connect_args=connect_args, poolclass=StaticPool
        )
    return create_engine(database_url, connect_args=connect_args)


def get_engine():
    """Engine for the current DATABASE_URL, rebuilt when the URL changes."""
    global _engine, _engine_url, _session_factory
    database_url = get_database_url()
    if _engine is None or _engine_url != database_url:
        if _engine is not None:
            _engine.dispose()
        _engine = _build_engine(database_url)
        _engine_url = database_url
        _session_factory = sessionmaker(
            autocommit=False, autoflush=False, bind=_engine
        )
        logger.debug(
            "Database engine ready",
            extra={
                "context": {
                    "dialect": _engine.dialect.name,
                    "url": _engine.url.render_as_string(hide_password=True),
                }
            },
        )
    return _engine


def SessionLocal():
    """New session bound to the lazily created engine."""
    get_engine()
    return _session_factory()


def create_tables():
    # Model import registers the tables on Base.metadata
    from warehouse_assignment.db import base  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def drop_tables():
    from warehouse_assignment.db import base  # noqa: F401

    Base.metadata.drop_all(bind=get_engine())
