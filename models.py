"""
SQLAlchemy ORM models for itinerary generation.

Three models:
  Itinerary           — the travel itinerary being generated for (owned elsewhere;
                        generation only writes sources['ai'] and summary)
  GenerationJob       — one row per run: running → completed | failed
  StageInvocationLog  — append-only audit row for every stage attempt

Default database: SQLite (itinerary_generation.db).
Production: set DATABASE_URL env var to a PostgreSQL connection string.
"""

import json
from datetime import datetime, timezone

from sqlalchemy import (
    Column, DateTime, ForeignKey, Index, Integer, String, Text, text,
)
from sqlalchemy.orm import declarative_base, relationship


def _utcnow():
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _loads(raw, default=None):
    return json.loads(raw) if raw else default


# db is kept as a module-level name so external imports (database.py, manage.py,
# migrations/env.py) can reference db.metadata for table creation.
db = declarative_base()

JOB_RUNNING   = 'running'
JOB_COMPLETED = 'completed'
JOB_FAILED    = 'failed'
JOB_TERMINAL  = (JOB_COMPLETED, JOB_FAILED)

LOG_SUCCESS = 'success'
LOG_FAILURE = 'failure'


# ---------------------------------------------------------------------------
# Itinerary
# ---------------------------------------------------------------------------

class Itinerary(db):
    __tablename__ = 'itineraries'

    id          = Column(Integer, primary_key=True)
    title       = Column(String(255), nullable=True)
    destination = Column(String(255), nullable=True)
    summary     = Column(Text,        nullable=True)
    sources     = Column(Text,        nullable=True)   # JSON object; AI output under 'ai'
    created_at  = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at  = Column(DateTime(timezone=True), nullable=False, default=_utcnow,
                         onupdate=_utcnow)

    jobs = relationship('GenerationJob', backref='itinerary', lazy='dynamic')

    @property
    def sources_dict(self) -> dict:
        return _loads(self.sources, {})

    @property
    def ai_sources(self) -> dict:
        return dict(self.sources_dict.get('ai') or {})

    def __repr__(self):
        return f'<Itinerary #{self.id} {self.destination or self.title!r}>'


# ---------------------------------------------------------------------------
# GenerationJob
# ---------------------------------------------------------------------------

class GenerationJob(db):
    __tablename__ = 'generation_jobs'

    id            = Column(Integer, primary_key=True)
    itinerary_id  = Column(Integer, ForeignKey('itineraries.id'), nullable=False, index=True)
    status        = Column(String(16), nullable=False, default=JOB_RUNNING)
    error_message = Column(Text, nullable=True)
    started_at    = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at  = Column(DateTime(timezone=True), nullable=True)

    # At most one running job per itinerary, enforced by the database.
    __table_args__ = (
        Index(
            'uq_generation_jobs_one_running',
            'itinerary_id',
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in JOB_TERMINAL

    def to_dict(self):
        return {
            'id':            self.id,
            'itinerary_id':  self.itinerary_id,
            'status':        self.status,
            'started_at':    _iso(self.started_at),
            'completed_at':  _iso(self.completed_at),
            'error_message': self.error_message,
        }

    def __repr__(self):
        return f'<GenerationJob #{self.id} itinerary={self.itinerary_id} status={self.status}>'


# ---------------------------------------------------------------------------
# StageInvocationLog
# ---------------------------------------------------------------------------

class StageInvocationLog(db):
    __tablename__ = 'stage_invocation_logs'

    id            = Column(Integer, primary_key=True)
    itinerary_id  = Column(Integer, ForeignKey('itineraries.id'), nullable=False, index=True)
    stage         = Column(String(64), nullable=False)
    status        = Column(String(16), nullable=False)   # 'success' | 'failure'
    prompt_json   = Column(Text, nullable=False)         # JSON {"prompt": ..., "extra": ...}
    response_json = Column(Text, nullable=True)          # JSON {"text": ...} on success
    error_message = Column(Text, nullable=True)
    created_at    = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            'id':            self.id,
            'itinerary_id':  self.itinerary_id,
            'stage':         self.stage,
            'status':        self.status,
            'prompt':        _loads(self.prompt_json, {}),
            'response':      _loads(self.response_json),
            'error_message': self.error_message,
            'created_at':    _iso(self.created_at),
        }

    def __repr__(self):
        return f'<StageInvocationLog #{self.id} {self.stage} status={self.status}>'
