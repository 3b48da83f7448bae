"""
jobs.py — Persistence for generation runs and their stage audit trail.

  JobStore — GenerationJob rows: create running, finalise once, query latest
  LogStore — StageInvocationLog rows: append-only, one per stage attempt

Both stores open a short-lived session per call and commit before returning,
so job state and log rows are durable independently of the run's own unit
of work (which may be rolled back).
"""

import json
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from errors import GenerationConflict
from models import (
    JOB_COMPLETED, JOB_FAILED, JOB_RUNNING, LOG_FAILURE, LOG_SUCCESS,
    GenerationJob, StageInvocationLog,
)

logger = logging.getLogger(__name__)

ABANDONED_RUN_MESSAGE = 'Run abandoned before completion'
SERIALIZATION_FALLBACK = {'note': 'payload serialization failed'}


def safe_json(payload) -> str:
    """
    Serialise a log payload. Anything json can't encode (or a circular
    structure) is replaced by a placeholder note instead of failing the run.
    """
    try:
        return json.dumps(payload if payload is not None else {})
    except (TypeError, ValueError) as exc:
        logger.warning('Log payload serialization failed: %s', exc)
        return json.dumps(SERIALIZATION_FALLBACK)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

class JobStore:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def find_running(self, itinerary_id: int) -> GenerationJob | None:
        with self._session_factory() as session:
            return (
                session.query(GenerationJob)
                .filter_by(itinerary_id=itinerary_id, status=JOB_RUNNING)
                .first()
            )

    def create_running(self, itinerary_id: int) -> GenerationJob:
        """
        Insert a running job. Raises GenerationConflict if the database
        already holds a running job for the itinerary.
        """
        with self._session_factory() as session:
            job = GenerationJob(itinerary_id=itinerary_id, status=JOB_RUNNING)
            session.add(job)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise GenerationConflict(itinerary_id)
            session.refresh(job)
            return job

    def mark_completed(self, job_id: int) -> GenerationJob:
        return self._finish(job_id, JOB_COMPLETED, None)

    def mark_failed(self, job_id: int, error_message: str) -> GenerationJob:
        return self._finish(job_id, JOB_FAILED, error_message)

    def _finish(self, job_id: int, status: str, error_message: str | None) -> GenerationJob:
        with self._session_factory() as session:
            job = session.get(GenerationJob, job_id)
            if job is None:
                raise LookupError(f'Generation job {job_id} not found')
            if job.is_terminal:
                raise ValueError(f'Generation job {job_id} is already {job.status}')
            job.status        = status
            job.error_message = error_message
            job.completed_at  = datetime.now(timezone.utc)
            session.commit()
            session.refresh(job)
            return job

    def latest(self, itinerary_id: int) -> GenerationJob | None:
        with self._session_factory() as session:
            return (
                session.query(GenerationJob)
                .filter_by(itinerary_id=itinerary_id)
                .order_by(GenerationJob.started_at.desc(), GenerationJob.id.desc())
                .first()
            )

    def fail_stale(self, older_than: timedelta) -> list[int]:
        """Fail running jobs started before now - older_than. Returns their ids."""
        cutoff = datetime.now(timezone.utc) - older_than
        with self._session_factory() as session:
            stale = (
                session.query(GenerationJob)
                .filter(GenerationJob.status == JOB_RUNNING,
                        GenerationJob.started_at < cutoff)
                .all()
            )
            now = datetime.now(timezone.utc)
            for job in stale:
                job.status        = JOB_FAILED
                job.error_message = ABANDONED_RUN_MESSAGE
                job.completed_at  = now
            session.commit()
            ids = [job.id for job in stale]

        if ids:
            logger.warning('Failed %d stale generation job(s): %s', len(ids), ids)
        return ids


# ---------------------------------------------------------------------------
# Stage logs
# ---------------------------------------------------------------------------

class LogStore:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def append(self, itinerary_id: int, stage: str, prompt_payload: dict,
               text: str | None = None, error_message: str | None = None) -> StageInvocationLog:
        """Record one stage attempt. A row with error_message set is a failure."""
        failed = error_message is not None
        with self._session_factory() as session:
            row = StageInvocationLog(
                itinerary_id  = itinerary_id,
                stage         = stage,
                status        = LOG_FAILURE if failed else LOG_SUCCESS,
                prompt_json   = safe_json(prompt_payload),
                response_json = None if failed else safe_json({'text': text}),
                error_message = error_message,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def list_for_itinerary(self, itinerary_id: int, newest_first: bool = True) -> list[StageInvocationLog]:
        with self._session_factory() as session:
            q = session.query(StageInvocationLog).filter_by(itinerary_id=itinerary_id)
            if newest_first:
                q = q.order_by(StageInvocationLog.created_at.desc(), StageInvocationLog.id.desc())
            else:
                q = q.order_by(StageInvocationLog.created_at.asc(), StageInvocationLog.id.asc())
            return q.all()

    def logged_stages(self, itinerary_id: int) -> list[str]:
        """Distinct stage ids with at least one log row, in first-logged order."""
        seen: list[str] = []
        for row in self.list_for_itinerary(itinerary_id, newest_first=False):
            if row.stage not in seen:
                seen.append(row.stage)
        return seen
