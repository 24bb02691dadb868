"""Routine LLM wrapper: skincare routine generation and scan-aware chat."""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from bloom.errors import GenerationError
from bloom.schemas.scan import Metric
from bloom.services.recovery import FALLBACK_ROUTINE

logger = logging.getLogger(__name__)

# Concerns the routine prompt prioritises when they rank among the worst.
CLASSIC_CONCERNS = (
    "acne", "pores", "redness", "pigmentation", "lines_wrinkles", "sagging", "dark_circles",
)

# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

ROUTINE_SCHEMA_EXAMPLE: dict[str, Any] = {
    "summary": "Short overview of the skin situation and what the routine will focus on.",
    "mainConcerns": ["acne", "pores", "lines_wrinkles"],
    "sections": [
        {
            "id": "morning",
            "title": "Morning Routine",
            "steps": [
                {
                    "id": "cleanser",
                    "title": "Gentle Cleanser",
                    "subtitle": "Maintain barrier function",
                    "concerns": ["acne", "pores"],
                    "usageNotes": "Use every morning on damp skin.",
                },
            ],
        },
        {"id": "evening", "title": "Evening Routine", "steps": []},
        {"id": "weekly", "title": "Weekly Treatments", "steps": []},
    ],
    "disclaimer": "This routine is cosmetic advice only and does not replace a visit to a dermatologist.",
}


def _metric_view(metrics: list[Metric]) -> list[dict[str, Any]]:
    """The slice of each metric the model needs; raw payloads are left out."""
    return [
        {"id": m.id, "techName": m.tech_name, "value": m.value, "tag": m.tag}
        for m in metrics
    ]


def build_routine_prompt(metrics: list[Metric], overall_health: dict[str, Any] | None) -> str:
    return f"""\
You are Bloom, an expert skincare assistant for a digital skin-analysis product.

User data:
- Dynamic overall health object (may be partial):
{json.dumps(overall_health or {}, indent=2)}

- Metrics from the last scan (array with id, techName, value, tag):
{json.dumps(_metric_view(metrics), indent=2)}

TASK:
Create a personalized skincare routine.

ANALYSIS RULES:
- First, carefully analyze the metrics to identify the 2-4 WORST concerns.
- "Worst" means lower numeric scores and/or tags like "Bad" or "Poor".
- Give special priority to classic concerns: {", ".join(CLASSIC_CONCERNS)} when they appear among the worst metrics.
- The 2-4 worst concerns you identify will be your "mainConcerns".

OUTPUT RULES:
- Answer ONLY with valid JSON.
- Do NOT include backticks, markdown, or explanations.
- The JSON MUST follow exactly this structure (same keys, but with your own values):

{json.dumps(ROUTINE_SCHEMA_EXAMPLE, indent=2)}

DETAILS:
- summary: 1-3 short sentences. The FIRST sentence MUST name the mainConcerns in natural language.
  If any acne-related metric is among the worst, you MUST mention acne.
- mainConcerns: 2-4 concern ids in snake_case, taken from the metric ids above.
- sections: always 3 items with ids "morning", "evening" and "weekly";
  3-5 steps for morning, 3-5 for evening, 2-4 for weekly.
  step.title <= 30 characters, step.subtitle <= 80 characters.
  concerns: concern ids this step helps with.
- disclaimer: brief safety note reminding the user this is not medical advice.

If data is incomplete, make safe, generic assumptions.
Keep the JSON as compact as possible (short subtitles and usageNotes).
"""


def build_chat_prompt(messages: list[dict[str, str]], skin_context: dict[str, Any] | None) -> str:
    history = "\n".join(
        f"{'Bloom' if m.get('role') == 'assistant' else 'User'}: {m.get('content', '')}"
        for m in messages
    )
    return f"""\
You are Bloom, an expert AI skincare assistant.
Always answer in English, with a calm, minimal, and clear tone.

### FORMATTING RULES
- Write 2 to 4 short paragraphs of 1-3 concise sentences each.
- Always insert a blank line between paragraphs.

### DATA RULES
- ALWAYS use the latest skin context values provided below.
- If the user asks about a metric, answer based on the actual scan values.
- Do NOT invent numbers. Use ONLY metrics that exist.
- If something is missing, give a safe general explanation.
- Do NOT mention the analysis vendor, algorithms, scoring systems or internal terms.

### SKIN CONTEXT (latest scan):
{json.dumps(skin_context or {}, indent=2)}

### CHAT HISTORY:
{history}

### TASK
Respond to the user's LAST message using the real scan data.
Keep the tone warm, supportive and professional."""


# ---------------------------------------------------------------------------
# Mock helpers
# ---------------------------------------------------------------------------

def _worst_concerns(metrics: list[Metric], limit: int = 3) -> list[str]:
    classic = [m for m in metrics if m.id in CLASSIC_CONCERNS]
    ranked = sorted(classic or metrics, key=lambda m: m.value)
    picked: list[str] = []
    for m in ranked:
        if m.id not in picked:
            picked.append(m.id)
        if len(picked) == limit:
            break
    return picked


def _mock_routine(metrics: list[Metric]) -> str:
    doc = copy.deepcopy(FALLBACK_ROUTINE)
    concerns = _worst_concerns(metrics)
    if len(concerns) >= 2:
        doc["mainConcerns"] = concerns
        named = ", ".join(c.replace("_", " ") for c in concerns[:-1]) + f" and {concerns[-1].replace('_', ' ')}"
        doc["summary"] = f"Your scan points to {named} as the areas to focus on. {doc['summary']}"
    return json.dumps(doc)


# ---------------------------------------------------------------------------
# Wrapper
# ---------------------------------------------------------------------------

class RoutineLLM:
    """Thin wrapper around the OpenAI Responses API."""

    def __init__(
        self,
        model_name: str,
        api_key: str,
        *,
        project: str | None = None,
        mock: bool = False,
        routine_max_tokens: int = 2000,
        chat_max_tokens: int = 600,
    ) -> None:
        self.model_name = model_name
        self.api_key = api_key
        self.project = project or None
        self.mock = mock
        self.routine_max_tokens = routine_max_tokens
        self.chat_max_tokens = chat_max_tokens
        self._client: Any = None

    def load(self) -> None:
        if self.mock:
            logger.info("Routine LLM running in MOCK mode.")
            return
        logger.info("Initialising OpenAI client for model %s.", self.model_name)
        self._client = AsyncOpenAI(api_key=self.api_key.strip(), project=self.project)

    async def _complete(self, prompt: str, max_tokens: int) -> str:
        if self._client is None:
            raise GenerationError("Routine LLM not loaded")
        try:
            response = await self._client.responses.create(
                model=self.model_name,
                input=prompt,
                max_output_tokens=max_tokens,
            )
        except OpenAIError as exc:
            raise GenerationError(f"OpenAI request failed: {exc}") from exc
        text = response.output_text or ""
        logger.debug("Routine LLM raw output (first 500 chars): %s", text[:500])
        return text

    # ---- Routine generation -------------------------------------------------

    async def generate_routine(
        self,
        metrics: list[Metric],
        overall_health: dict[str, Any] | None = None,
    ) -> str:
        """Return the model's raw text; parsing is the caller's job."""
        if self.mock:
            return _mock_routine(metrics)
        prompt = build_routine_prompt(metrics, overall_health)
        return await self._complete(prompt, self.routine_max_tokens)

    # ---- Chat ---------------------------------------------------------------

    async def chat(
        self,
        messages: list[dict[str, str]],
        skin_context: dict[str, Any] | None = None,
    ) -> str:
        if self.mock:
            return (
                "Thanks for your question. Based on your latest scan, keep your routine "
                "simple: gentle cleansing, steady hydration and daily sunscreen.\n\n"
                "If you notice irritation, pause active ingredients for a few days."
            )
        prompt = build_chat_prompt(messages, skin_context)
        return await self._complete(prompt, self.chat_max_tokens)
