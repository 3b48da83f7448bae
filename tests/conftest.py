"""Shared fixtures: a fresh file-backed SQLite database per test, a scripted
completion client and an orchestrator wired to both. No network, no Redis."""

import os

# Must be set before any project module builds the module-level engine.
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ.pop('REDIS_URL', None)

import asyncio  # noqa: E402
import json  # noqa: E402

import pytest  # noqa: E402

from database import init_db, make_engine, make_session_factory  # noqa: E402
from models import GenerationJob, Itinerary, StageInvocationLog  # noqa: E402
from orchestrator import GenerationOrchestrator  # noqa: E402
from run_guard import RunGuard  # noqa: E402


class ScriptedCompletionClient:
    """
    Stand-in for CompletionClient. Replies are consumed in call order; an
    Exception instance in the script is raised instead of returned. Once the
    script is exhausted every call returns `default`. If `gate` is set, each
    call waits on it first.
    """

    def __init__(self, replies=None, default='Generated text'):
        self.replies = list(replies or [])
        self.default = default
        self.calls = []
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    def script(self, *replies):
        self.replies = list(replies)

    async def complete(self, provider, messages, temperature=0.7):
        self.calls.append({'provider': provider, 'messages': messages, 'temperature': temperature})
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self):
        pass


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f'sqlite:///{tmp_path / "generation.db"}')
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def make_itinerary(session_factory):
    def _make(**fields) -> Itinerary:
        values = {'title': 'Autumn in Kyoto', 'destination': 'Kyoto'}
        values.update(fields)
        if isinstance(values.get('sources'), dict):
            values['sources'] = json.dumps(values['sources'])
        with session_factory() as session:
            itinerary = Itinerary(**values)
            session.add(itinerary)
            session.commit()
            session.refresh(itinerary)
            return itinerary
    return _make


@pytest.fixture
def fetch_itinerary(session_factory):
    def _fetch(itinerary_id) -> Itinerary:
        with session_factory() as session:
            return session.get(Itinerary, itinerary_id)
    return _fetch


@pytest.fixture
def all_jobs(session_factory):
    def _jobs(itinerary_id) -> list[GenerationJob]:
        with session_factory() as session:
            return (session.query(GenerationJob)
                    .filter_by(itinerary_id=itinerary_id)
                    .order_by(GenerationJob.id).all())
    return _jobs


@pytest.fixture
def all_logs(session_factory):
    def _logs(itinerary_id) -> list[StageInvocationLog]:
        with session_factory() as session:
            return (session.query(StageInvocationLog)
                    .filter_by(itinerary_id=itinerary_id)
                    .order_by(StageInvocationLog.id).all())
    return _logs


@pytest.fixture
def completion():
    return ScriptedCompletionClient()


@pytest.fixture
def guard():
    return RunGuard(redis_getter=lambda: None)


@pytest.fixture
def orchestrator(session_factory, completion, guard):
    return GenerationOrchestrator(session_factory, completion, run_guard=guard,
                                  default_provider='deepseek')
