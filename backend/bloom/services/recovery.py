"""Structured-output recovery for generated skincare routines.

The generator is asked for exactly one JSON object but does not always
comply. Recovery ladder:

1. parse the whole text (after stripping a markdown code fence, if any);
2. cut at the last ``}`` and parse the prefix, which recovers an object
   followed by trailing commentary;
3. return the built-in fallback routine.

A parsed object that does not fit the schema is repaired field by field
from the fallback. ``recover_routine`` never raises.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from typing import Any, Iterable

from pydantic import ValidationError

from bloom.errors import ParseRecoveryExhausted
from bloom.schemas.scan import SECTION_IDS, RoutineDocument, RoutineSection, RoutineStep

logger = logging.getLogger(__name__)

FALLBACK_ROUTINE: dict[str, Any] = {
    "summary": (
        "We detected some imbalances in your skin barrier and will focus on "
        "gentle cleansing, hydration and protection."
    ),
    "mainConcerns": ["acne", "pores", "lines_wrinkles"],
    "sections": [
        {
            "id": "morning",
            "title": "Morning Routine",
            "steps": [
                {
                    "id": "cleanser",
                    "title": "Gentle Cleanser",
                    "subtitle": "Cleanses without stripping the skin barrier.",
                    "concerns": ["acne", "pores"],
                    "usageNotes": "Use every morning on damp skin.",
                },
                {
                    "id": "moisturizer",
                    "title": "Light Moisturizer",
                    "subtitle": "Keeps skin hydrated and comfortable.",
                    "concerns": ["lines_wrinkles"],
                    "usageNotes": "Apply after cleanser while skin is slightly damp.",
                },
                {
                    "id": "sunscreen",
                    "title": "Broad-Spectrum SPF",
                    "subtitle": "Protects against daily UV damage.",
                    "concerns": ["pigmentation", "lines_wrinkles"],
                    "usageNotes": "Use every morning as the last step of your routine.",
                },
            ],
        },
        {
            "id": "evening",
            "title": "Evening Routine",
            "steps": [
                {
                    "id": "double_cleanse",
                    "title": "Thorough Cleanse",
                    "subtitle": "Removes sunscreen, sweat and excess oil.",
                    "concerns": ["acne", "pores"],
                },
                {
                    "id": "treatment",
                    "title": "Targeted Treatment",
                    "subtitle": "Use a gentle serum adapted to your main concerns.",
                    "concerns": ["acne", "pores", "lines_wrinkles"],
                },
                {
                    "id": "night_cream",
                    "title": "Repairing Moisturizer",
                    "subtitle": "Supports overnight skin recovery.",
                    "concerns": ["lines_wrinkles"],
                },
            ],
        },
        {
            "id": "weekly",
            "title": "Weekly Treatments",
            "steps": [
                {
                    "id": "exfoliation",
                    "title": "Gentle Exfoliation",
                    "subtitle": "Smooths texture and unclogs pores.",
                    "concerns": ["pores", "acne"],
                    "usageNotes": "Use 1-2 times per week, never on irritated skin.",
                },
            ],
        },
    ],
    "disclaimer": (
        "This routine is cosmetic advice only and does not replace a visit "
        "to a dermatologist."
    ),
}

_FENCE = re.compile(r"^\s*```(?:json)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def fallback_routine() -> RoutineDocument:
    """A fresh copy of the built-in routine."""
    return RoutineDocument.model_validate(copy.deepcopy(FALLBACK_ROUTINE))


def _strip_fence(text: str) -> str:
    match = _FENCE.match(text)
    return match.group(1) if match else text


def parse_generated_object(text: str) -> tuple[dict[str, Any], str]:
    """Return the decoded object and the rung (``direct``/``trimmed``) that worked.

    Raises ``ParseRecoveryExhausted`` when neither rung yields a JSON object.
    """
    text = _strip_fence(text or "")
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data, "direct"
    except (ValueError, RecursionError) as exc:
        logger.info("Generated text is not valid JSON: %s", exc)

    last_brace = text.rfind("}")
    if last_brace != -1:
        try:
            data = json.loads(text[: last_brace + 1])
            if isinstance(data, dict):
                return data, "trimmed"
        except (ValueError, RecursionError) as exc:
            logger.info("Trimmed text is still not valid JSON: %s", exc)

    raise ParseRecoveryExhausted("no JSON object in generated text")


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------

def _text(value: Any, default: str) -> str:
    return value.strip() if isinstance(value, str) and value.strip() else default


def _concerns(raw: Any, known: list[str] | None, fallback: Iterable[str]) -> list[str]:
    picked: list[str] = []
    for c in raw if isinstance(raw, list) else []:
        if isinstance(c, str) and c.strip() and c.strip() not in picked:
            picked.append(c.strip())
    if known is not None:
        picked = [c for c in picked if c in known]
    picked = picked[:4]

    pool = list(known) if known and len(known) >= 2 else list(fallback)
    for c in pool:
        if len(picked) >= 2:
            break
        if c not in picked:
            picked.append(c)
    return picked


def _section(raw: Any, fallback: RoutineSection) -> RoutineSection:
    if not isinstance(raw, dict):
        return fallback
    steps: list[RoutineStep] = []
    raw_steps = raw.get("steps")
    for s in raw_steps if isinstance(raw_steps, list) else []:
        try:
            steps.append(RoutineStep.model_validate(s))
        except ValidationError:
            logger.debug("Dropping malformed step in section %s: %.120s", fallback.id, s)
    return RoutineSection(id=fallback.id, title=_text(raw.get("title"), fallback.title), steps=steps)


def repair_routine(data: dict[str, Any], known_concerns: list[str] | None = None) -> RoutineDocument:
    """Coerce a decoded object into a schema-valid routine."""
    fallback = fallback_routine()
    raw_sections = data.get("sections")
    by_id = {
        s.get("id"): s
        for s in (raw_sections if isinstance(raw_sections, list) else [])
        if isinstance(s, dict)
    }
    fallback_sections = {s.id: s for s in fallback.sections}

    return RoutineDocument(
        summary=_text(data.get("summary"), fallback.summary),
        main_concerns=_concerns(
            data.get("mainConcerns", data.get("main_concerns")),
            known_concerns,
            fallback.main_concerns,
        ),
        sections=[_section(by_id.get(sid), fallback_sections[sid]) for sid in SECTION_IDS],
        disclaimer=_text(data.get("disclaimer"), fallback.disclaimer),
    )


def recover_routine(text: str, *, known_concerns: list[str] | None = None) -> RoutineDocument:
    """Turn generator output into a ``RoutineDocument``. Never raises.

    ``known_concerns``, when given, restricts ``mainConcerns`` to ids the
    caller can map back to its metrics.
    """
    try:
        data, rung = parse_generated_object(text)
    except ParseRecoveryExhausted:
        logger.warning("Falling back to generic routine; generated text: %.300s", text)
        return fallback_routine()

    try:
        doc = repair_routine(data, known_concerns)
    except (ValidationError, TypeError, ValueError) as exc:
        logger.warning("Routine repair failed (%s); using generic routine.", exc)
        return fallback_routine()

    logger.info("Routine recovered from generated text (%s parse).", rung)
    return doc
