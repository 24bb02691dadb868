"""FastAPI application entry point for the Bloom scan backend."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bloom.agents.routine_agent import RoutineAgent
from bloom.agents.scan_agent import ScanAgent
from bloom.api.routes import router, set_routine_agent, set_scan_agent
from bloom.config import missing_haut_settings, missing_openai_settings, settings
from bloom.errors import BloomError
from bloom.models.haut_client import HautClient
from bloom.models.routine_llm import RoutineLLM
from bloom.services.metrics import AlgorithmDictionary, MetricNormalizer
from bloom.services.pipeline import UploadPipeline
from bloom.services.poller import ResultPoller

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

_haut_client: HautClient | None = None
_routine_llm: RoutineLLM | None = None


def load_scan_agent() -> ScanAgent | None:
    """Build the shared vendor client and the scan agent on top of it.

    Returns ``None`` when credentials are missing; requests then fail with a
    configuration error naming the missing variables.
    """
    global _haut_client

    missing = missing_haut_settings()
    if missing:
        logger.warning("Haut.AI settings missing (%s); scans are disabled.", ", ".join(missing))
        return None

    _haut_client = HautClient(
        settings.HAUT_API_KEY,
        base_url=settings.HAUT_BASE_URL,
        timeout=settings.HAUT_TIMEOUT_S,
    )
    pipeline = UploadPipeline(
        _haut_client,
        settings.HAUT_COMPANY_ID,
        settings.HAUT_DATASET_ID,
        default_subject_name=settings.DEFAULT_SUBJECT_NAME,
    )
    poller = ResultPoller(
        _haut_client,
        settings.HAUT_COMPANY_ID,
        max_attempts=settings.POLL_MAX_ATTEMPTS,
        delay_ms=settings.POLL_DELAY_MS,
    )
    normalizer = MetricNormalizer(AlgorithmDictionary(_haut_client.fetch_algorithms))
    logger.info(
        "ScanAgent ready (base_url=%s, max_attempts=%d, delay_ms=%d).",
        settings.HAUT_BASE_URL, settings.POLL_MAX_ATTEMPTS, settings.POLL_DELAY_MS,
    )
    return ScanAgent(pipeline, poller, normalizer)


def load_routine_agent() -> RoutineAgent | None:
    global _routine_llm

    missing = missing_openai_settings()
    if missing:
        logger.warning("Generator settings missing (%s); routines and chat are disabled.", ", ".join(missing))
        return None

    _routine_llm = RoutineLLM(
        settings.OPENAI_MODEL,
        settings.OPENAI_API_KEY,
        project=settings.OPENAI_PROJECT_ID,
        mock=settings.MOCK_MODELS,
        routine_max_tokens=settings.ROUTINE_MAX_OUTPUT_TOKENS,
        chat_max_tokens=settings.CHAT_MAX_OUTPUT_TOKENS,
    )
    _routine_llm.load()
    return RoutineAgent(_routine_llm)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    logger.info("Starting Bloom scan API (mock=%s).", settings.MOCK_MODELS)
    set_scan_agent(load_scan_agent())
    set_routine_agent(load_routine_agent())

    yield

    # Shutdown
    logger.info("Shutting down Bloom scan API.")
    set_scan_agent(None)
    set_routine_agent(None)
    if _haut_client is not None:
        await _haut_client.aclose()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Bloom Scan API",
    version="0.1.0",
    description="Skin scan orchestration and routine generation on top of Haut.AI.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BloomError)
async def bloom_error_handler(request: Request, exc: BloomError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": jsonable_encoder(exc.details)},
    )


app.include_router(router, prefix="/api")


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health")
def health_check() -> dict[str, Any]:
    return {
        "status": "ok",
        "mock_mode": str(settings.MOCK_MODELS),
        "missing_settings": missing_haut_settings() + missing_openai_settings(),
    }
