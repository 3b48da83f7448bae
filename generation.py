"""
generation.py — Itinerary generation router

Routes:
  POST /itineraries/{id}/generate           — run stages (all by default)
  GET  /itineraries/{id}/generate/status    — latest job + stages with log rows
  POST /itineraries/{id}/generate/{stage}   — re-run a single stage
  GET  /itineraries/{id}/ai/logs            — stage attempts, newest first

Runs execute inside the request: the response comes back once the last
stage has finished or one has failed. A failed stage answers 502 with the
job id (see the GenerationError handler in app.py).
"""

from fastapi import APIRouter, Depends

from completion import build_completion_client
from database import SessionLocal
from orchestrator import GenerationOrchestrator
from schemas import GenerationRequest, StageRequest

generation_router = APIRouter(prefix='/itineraries/{itinerary_id}', tags=['generation'])

_orchestrator: GenerationOrchestrator | None = None


def get_orchestrator() -> GenerationOrchestrator:
    """Process-wide orchestrator, built on first use."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = GenerationOrchestrator(SessionLocal, build_completion_client())
    return _orchestrator


async def close_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.completion.aclose()
        _orchestrator = None


# ── Routes ────────────────────────────────────────────────────────────────────

@generation_router.post('/generate')
async def start_generation(
    itinerary_id: int,
    body: GenerationRequest | None = None,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """POST /itineraries/{id}/generate — { stages?, provider?, extra? } → { job_id, stages }"""
    body = body or GenerationRequest()
    result = await orchestrator.execute_run(
        itinerary_id, stages=body.stages, provider=body.provider, extra=body.extra,
    )
    return result.to_dict()


@generation_router.get('/generate/status')
async def generation_status(
    itinerary_id: int,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_status(itinerary_id)


@generation_router.post('/generate/{stage}')
async def run_stage(
    itinerary_id: int,
    stage: str,
    body: StageRequest | None = None,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """POST /itineraries/{id}/generate/{stage} — { prompt?, provider? } → { job_id, stages: [stage] }"""
    body = body or StageRequest()
    result = await orchestrator.execute_single_stage(
        itinerary_id, stage, prompt=body.prompt, provider=body.provider,
    )
    return result.to_dict()


@generation_router.get('/ai/logs')
async def list_logs(
    itinerary_id: int,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    return {'logs': await orchestrator.list_logs(itinerary_id)}
