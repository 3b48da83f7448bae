#!/usr/bin/env python3
"""
Itinerary Generation — Backend API (FastAPI, async)

- Multi-stage AI content generation per itinerary (generation.py router)
- Sync SQLAlchemy wrapped in run_in_threadpool; completion calls are async
- GenerationError and HTTPException both answer { "error": "..." }
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from database import init_db
from errors import GenerationError, StageExecutionFailure
from generation import close_orchestrator, generation_router
from redis_client import get_redis

# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

load_dotenv(os.path.join(os.path.dirname(__file__), '.env'))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(title='Itinerary Generation API')

# ── CORS ─────────────────────────────────────────────────────────────────────
_cors_origins = [
    o.strip()
    for o in os.getenv(
        'CORS_ORIGINS', 'http://localhost:5000,http://127.0.0.1:5000'
    ).split(',')
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


# ── Security headers ──────────────────────────────────────────────────────────
@app.middleware('http')
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options']        = 'DENY'
    response.headers['Referrer-Policy']        = 'strict-origin-when-cross-origin'
    return response


# ── Map errors → { "error": "..." } ──────────────────────────────────────────
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={'error': exc.detail})


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    content = {'error': exc.message}
    if isinstance(exc, StageExecutionFailure):
        content['job_id'] = exc.job_id
        content['stage']  = exc.stage
    return JSONResponse(status_code=exc.status_code, content=content)


# ── Router registration ───────────────────────────────────────────────────────
app.include_router(generation_router)

# ---------------------------------------------------------------------------
# Startup / shutdown
# ---------------------------------------------------------------------------

@app.on_event('startup')
async def startup():
    await run_in_threadpool(init_db)

    if get_redis() is not None:
        logger.warning('Redis connected — active-run pointer shared across workers')
    else:
        logger.warning('Redis unavailable — active-run pointer is per-process (set REDIS_URL to share it)')


@app.on_event('shutdown')
async def shutdown():
    await close_orchestrator()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get('/health')
async def health():
    return {'status': 'ok'}
