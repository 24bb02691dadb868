"""Routine agent: generated skincare routines and scan-aware chat."""

from __future__ import annotations

import logging
from typing import Any

from bloom.errors import GenerationError
from bloom.models.routine_llm import RoutineLLM
from bloom.schemas.scan import Metric, RoutineDocument
from bloom.services.recovery import fallback_routine, recover_routine

logger = logging.getLogger(__name__)

FALLBACK_CHAT_REPLY = (
    "I'm having trouble reaching your full skin data right now, but here is some "
    "general advice: prioritise gentle cleansing, steady hydration and daily "
    "sunscreen. If you notice irritation, simplify your routine."
)


class RoutineAgent:
    def __init__(self, llm: RoutineLLM) -> None:
        self.llm = llm

    async def recommend(
        self,
        metrics: list[Metric],
        overall_health: dict[str, Any] | None = None,
    ) -> RoutineDocument:
        """Always returns a schema-valid routine, falling back when generation fails."""
        logger.info("Generating routine from %d metrics.", len(metrics))
        try:
            text = await self.llm.generate_routine(metrics, overall_health)
        except GenerationError as exc:
            logger.warning("Routine generation failed: %s, using generic routine.", exc)
            return fallback_routine()

        known = list(dict.fromkeys(m.id for m in metrics))
        return recover_routine(text, known_concerns=known)

    async def chat(
        self,
        messages: list[dict[str, str]],
        skin_context: dict[str, Any] | None = None,
    ) -> tuple[str, str | None]:
        """Return ``(reply, error)``; ``error`` is set when the fallback reply was used."""
        try:
            reply = await self.llm.chat(messages, skin_context)
        except GenerationError as exc:
            logger.warning("Chat generation failed: %s", exc)
            return FALLBACK_CHAT_REPLY, "Generation failed, a general reply was returned instead."
        if not reply.strip():
            return FALLBACK_CHAT_REPLY, "Empty reply from the model, a general reply was returned instead."
        return reply, None
