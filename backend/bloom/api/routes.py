"""API routes: skin scans, routine recommendations and chat."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import TypeAdapter, ValidationError

from bloom.agents.routine_agent import RoutineAgent
from bloom.agents.scan_agent import ScanAgent
from bloom.config import require_haut_settings, require_openai_settings
from bloom.errors import BloomError, ConfigurationError, InvalidRequestError
from bloom.schemas.scan import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    Metric,
    NormalizeRequest,
    NormalizeResponse,
    RecommendationRequest,
    RoutineDocument,
    ScanRequest,
    ScanResult,
)

logger = logging.getLogger(__name__)
router = APIRouter()

# ---------------------------------------------------------------------------
# Global agent references, set from main.py during startup
# ---------------------------------------------------------------------------
_scan_agent: ScanAgent | None = None
_routine_agent: RoutineAgent | None = None


def set_scan_agent(agent: ScanAgent | None) -> None:
    global _scan_agent
    _scan_agent = agent


def get_scan_agent() -> ScanAgent:
    if _scan_agent is None:
        # Names the missing variables when credentials are the cause.
        require_haut_settings()
        raise ConfigurationError("Scan service not initialised.")
    return _scan_agent


def set_routine_agent(agent: RoutineAgent | None) -> None:
    global _routine_agent
    _routine_agent = agent


def get_routine_agent() -> RoutineAgent:
    if _routine_agent is None:
        require_openai_settings()
        raise ConfigurationError("Routine service not initialised.")
    return _routine_agent


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CLIENT_ERRORS = {code: {"model": ErrorResponse} for code in (400, 500)}
_METRICS = TypeAdapter(list[Metric])
_MESSAGES = TypeAdapter(list[ChatMessage])


def _validate_list(adapter: TypeAdapter, items: list, field: str) -> list:
    try:
        return adapter.validate_python(items)
    except ValidationError as exc:
        raise InvalidRequestError(
            f"{field} contains invalid entries.",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc


# ---------------------------------------------------------------------------
# Scans
# ---------------------------------------------------------------------------

@router.post(
    "/haut-inference",
    response_model=ScanResult,
    responses={code: {"model": ErrorResponse} for code in (400, 500, 502, 504)},
)
async def haut_inference(body: ScanRequest | None = None) -> ScanResult:
    if body is None or not isinstance(body.base64_image, str) or not body.base64_image:
        raise InvalidRequestError("base64Image is required and must be a string.")

    agent = get_scan_agent()
    try:
        return await agent.scan(body.base64_image, body.subject_name)
    except BloomError:
        raise
    except Exception as exc:
        logger.exception("Scan failed")
        raise BloomError("Unexpected error during skin scan.", details=str(exc)) from exc


@router.post("/metrics/normalize", response_model=NormalizeResponse, responses=_CLIENT_ERRORS)
async def normalize_metrics(body: NormalizeRequest | None = None) -> NormalizeResponse:
    """Re-run normalization over a stored results payload."""
    if body is None or body.raw_results is None:
        raise InvalidRequestError("rawResults is required.")

    agent = get_scan_agent()
    metrics, overall = await agent.summarise(body.raw_results)
    return NormalizeResponse(metrics=metrics, overall_health=overall)


# ---------------------------------------------------------------------------
# Routines and chat
# ---------------------------------------------------------------------------

@router.post("/recommendations", response_model=RoutineDocument, responses=_CLIENT_ERRORS)
async def recommendations(body: RecommendationRequest | None = None) -> RoutineDocument:
    if body is None or not isinstance(body.skin_metrics, list) or not body.skin_metrics:
        raise InvalidRequestError("skinMetrics array is required for recommendations.")
    metrics = _validate_list(_METRICS, body.skin_metrics, "skinMetrics")

    agent = get_routine_agent()
    return await agent.recommend(metrics, body.overall_health)


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses=_CLIENT_ERRORS,
)
async def chat(body: ChatRequest | None = None) -> ChatResponse:
    if body is None or not isinstance(body.messages, list) or not body.messages:
        raise InvalidRequestError("messages array is required.")
    messages = [m.model_dump() for m in _validate_list(_MESSAGES, body.messages, "messages")]

    agent = get_routine_agent()
    reply, error = await agent.chat(messages, body.skin_context)
    return ChatResponse(reply=reply, error=error)
