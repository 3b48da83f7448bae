"""
database.py — SQLAlchemy engine and session management.

Provides:
  engine       — the shared SQLAlchemy engine
  SessionLocal — sessionmaker bound to the engine
  init_db()    — create all tables (startup and `manage.py init-db`)

All SQLAlchemy calls are synchronous. Async code calls them through
starlette.concurrency.run_in_threadpool so the event loop is never blocked
while a completion request is in flight elsewhere.
"""

import os
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from models import db

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = 'sqlite:///itinerary_generation.db'


def normalize_db_url(url: str) -> str:
    """Some hosts inject postgres:// which SQLAlchemy no longer accepts."""
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    return url


def make_engine(url: str) -> Engine:
    """
    Build an engine for url. SQLite connections are shared across threadpool
    workers, so same-thread checking is disabled and WAL is switched on for
    file databases (concurrent readers alongside the single writer).
    """
    connect_args: dict = {}
    if url.startswith('sqlite'):
        connect_args = {'timeout': 15, 'check_same_thread': False}

    new_engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)

    if url.startswith('sqlite') and url not in ('sqlite://', 'sqlite:///:memory:'):
        @event.listens_for(new_engine, 'connect')
        def _set_sqlite_wal(dbapi_conn, _connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute('PRAGMA journal_mode=WAL')
            cursor.close()

    return new_engine


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,          # run mutations stay in the unit of work until commit
        expire_on_commit=False,   # rows stay readable after their session closes
    )


engine       = make_engine(normalize_db_url(os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL)))
SessionLocal = make_session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    """Create every table that does not exist yet."""
    db.metadata.create_all(bind or engine)
    logger.info('Database tables ensured')

