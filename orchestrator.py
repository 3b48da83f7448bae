"""
orchestrator.py — Runs multi-stage content generation against one itinerary.

A run:
  1. resolves the itinerary (ItineraryNotFound if absent)
  2. claims the itinerary: no running job in the database, then the
     active-run pointer, then the job insert itself (GenerationConflict)
  3. executes each stage strictly in order: build prompt → completion call →
     apply result → append a log row
  4. on the first stage failure appends a failure log row and stops
  5. if the task is cancelled mid-run, logs the interrupted stage and marks
     the job failed before the cancellation propagates

Itinerary writes for the whole run share one session (the run's unit of
work) that is committed only after the last stage succeeds. A failure at
any stage rolls back every itinerary write of that run, including those of
earlier stages that had succeeded. Log rows and job state are committed by
their own stores as they happen, so the audit trail of a failed run is
kept in full.

Stages never run in parallel. Every completion call is awaited before the
next stage starts, which keeps log rows in execution order.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from completion import DEFAULT_PROVIDER, DEFAULT_TEMPERATURE, CompletionClient
from errors import GenerationConflict, InvalidStage, ItineraryNotFound, StageExecutionFailure
from itineraries import ItineraryRepository, apply_stage_result
from jobs import JobStore, LogStore
from models import GenerationJob, Itinerary
from prompts import build_messages, build_prompt
from run_guard import RunGuard
from stages import is_valid_stage, normalize_stages

logger = logging.getLogger(__name__)

NO_JOB_STATUS = 'none'
RUN_CANCELLED_MESSAGE = 'Run cancelled'


@dataclass
class RunResult:
    job_id: int
    stages: list[str] = field(default_factory=list)

    def to_dict(self):
        return {'job_id': self.job_id, 'stages': list(self.stages)}


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class GenerationOrchestrator:

    def __init__(self, session_factory: sessionmaker, completion_client: CompletionClient,
                 run_guard: RunGuard | None = None, default_provider: str = DEFAULT_PROVIDER,
                 temperature: float = DEFAULT_TEMPERATURE):
        self._session_factory = session_factory
        self.completion       = completion_client
        self.guard            = run_guard or RunGuard()
        self.jobs             = JobStore(session_factory)
        self.logs             = LogStore(session_factory)
        self.default_provider = default_provider
        self.temperature      = temperature

    # ── Runs ─────────────────────────────────────────────────────────────────

    async def execute_run(self, itinerary_id: int, stages: list[str] | None = None,
                          provider: str | None = None, extra: dict | None = None) -> RunResult:
        """
        Run the requested stages (all of them by default) and return the job.

        Raises ItineraryNotFound or GenerationConflict before any job exists,
        and StageExecutionFailure after the job has been marked failed.
        """
        stage_list = normalize_stages(stages)
        return await self._run(itinerary_id, stage_list, provider, extra)

    async def execute_single_stage(self, itinerary_id: int, stage_id: str,
                                   prompt: str | None = None,
                                   provider: str | None = None) -> RunResult:
        """Re-run one stage, optionally with extra guidance appended to its prompt."""
        if not is_valid_stage(stage_id):
            raise InvalidStage(stage_id)
        return await self._run(itinerary_id, [stage_id], provider, {'prompt': prompt})

    async def _run(self, itinerary_id: int, stage_list: list[str],
                   provider: str | None, extra: dict | None) -> RunResult:
        provider = provider or self.default_provider
        unit = self._session_factory()
        try:
            itineraries = ItineraryRepository(unit)
            itinerary = await run_in_threadpool(itineraries.find_by_id, itinerary_id)
            if itinerary is None:
                raise ItineraryNotFound(itinerary_id)

            job, token = await run_in_threadpool(self._start_job, itinerary_id)
            logger.info('Run job=%d itinerary=%d started: stages=%s provider=%s',
                        job.id, itinerary_id, ','.join(stage_list) or '-', provider)
            try:
                for stage_id in stage_list:
                    itinerary = await self._execute_stage(
                        job, itineraries, itinerary, stage_id, provider, extra,
                    )
                await run_in_threadpool(unit.commit)
            except asyncio.CancelledError:
                # A cancelled run still ends with its job failed.
                await asyncio.shield(self._abandon(unit, job.id))
                logger.warning('Run job=%d itinerary=%d cancelled', job.id, itinerary_id)
                raise
            except Exception as exc:
                await run_in_threadpool(unit.rollback)
                await run_in_threadpool(self.jobs.mark_failed, job.id, _error_text(exc))
                logger.warning('Run job=%d itinerary=%d failed: %s', job.id, itinerary_id, exc)
                raise
            else:
                await run_in_threadpool(self.jobs.mark_completed, job.id)
                logger.info('Run job=%d itinerary=%d completed', job.id, itinerary_id)
            finally:
                self.guard.release(itinerary_id, token)
        finally:
            await run_in_threadpool(unit.close)

        return RunResult(job_id=job.id, stages=stage_list)

    async def _abandon(self, unit, job_id: int) -> None:
        await run_in_threadpool(unit.rollback)
        await run_in_threadpool(self.jobs.mark_failed, job_id, RUN_CANCELLED_MESSAGE)

    def _start_job(self, itinerary_id: int) -> tuple[GenerationJob, str]:
        if self.jobs.find_running(itinerary_id) is not None:
            raise GenerationConflict(itinerary_id)

        token = self.guard.claim(itinerary_id)
        if token is None:
            raise GenerationConflict(itinerary_id)

        try:
            job = self.jobs.create_running(itinerary_id)
        except Exception:
            self.guard.release(itinerary_id, token)
            raise
        return job, token

    async def _execute_stage(self, job: GenerationJob, itineraries: ItineraryRepository,
                             itinerary: Itinerary, stage_id: str, provider: str,
                             extra: dict | None) -> Itinerary:
        prompt = build_prompt(itinerary, stage_id, extra)
        prompt_payload = {'prompt': prompt, 'extra': extra}

        try:
            text = await self.completion.complete(
                provider, build_messages(prompt), self.temperature,
            )
            itinerary = await run_in_threadpool(
                apply_stage_result, itineraries, itinerary, stage_id, text,
            )
            await run_in_threadpool(self.logs.append, itinerary.id, stage_id, prompt_payload, text)
        except asyncio.CancelledError:
            await asyncio.shield(run_in_threadpool(
                self.logs.append, itinerary.id, stage_id, prompt_payload, None, RUN_CANCELLED_MESSAGE,
            ))
            raise
        except Exception as exc:
            message = _error_text(exc)
            await run_in_threadpool(
                self.logs.append, itinerary.id, stage_id, prompt_payload, None, message,
            )
            logger.warning('Run job=%d stage %s failed: %s', job.id, stage_id, message)
            raise StageExecutionFailure(message, stage=stage_id, job_id=job.id) from exc

        logger.info('Run job=%d stage %s succeeded (%d chars)', job.id, stage_id, len(text))
        return itinerary

    # ── Queries ──────────────────────────────────────────────────────────────

    async def get_status(self, itinerary_id: int) -> dict:
        """
        Latest job for the itinerary plus every stage that has a log row.

        With no job yet the job entry is a 'none' placeholder and stages is empty.
        """
        await self._require_itinerary(itinerary_id)

        job = await run_in_threadpool(self.jobs.latest, itinerary_id)
        if job is None:
            return {
                'job': {
                    'status':        NO_JOB_STATUS,
                    'started_at':    None,
                    'completed_at':  None,
                    'error_message': None,
                },
                'stages': [],
            }

        stages = await run_in_threadpool(self.logs.logged_stages, itinerary_id)
        d = job.to_dict()
        return {
            'job': {
                'id':            d['id'],
                'status':        d['status'],
                'started_at':    d['started_at'],
                'completed_at':  d['completed_at'],
                'error_message': d['error_message'],
            },
            'stages': stages,
        }

    async def list_logs(self, itinerary_id: int) -> list[dict]:
        """Every stage attempt for the itinerary, most recent first."""
        await self._require_itinerary(itinerary_id)
        rows = await run_in_threadpool(self.logs.list_for_itinerary, itinerary_id)
        return [row.to_dict() for row in rows]

    async def _require_itinerary(self, itinerary_id: int) -> None:
        def _exists():
            with self._session_factory() as session:
                return ItineraryRepository(session).find_by_id(itinerary_id) is not None

        if not await run_in_threadpool(_exists):
            raise ItineraryNotFound(itinerary_id)
