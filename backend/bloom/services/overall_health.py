"""Overall skin-health summary derived from a Face Skin 3.0 result block."""

from __future__ import annotations

import math
from typing import Any, Mapping

from bloom.schemas.scan import OverallHealth
from bloom.services.metrics import FACE_SKIN_FAMILY, is_number

KNOWN_SKIN_TYPES = ("oily", "dry", "combination", "normal", "sensitive", "balanced")
ITA_KEYS = ("ita", "ita_angle", "ita_value", "ita_score")
DEFAULT_SCORE = 72
NOT_AVAILABLE = "Not available"


def _first_number(*candidates: Any) -> float | None:
    return next((c for c in candidates if is_number(c)), None)


def _first_string(*candidates: Any) -> str | None:
    return next((c.strip() for c in candidates if isinstance(c, str) and c.strip()), None)


def _round(v: float) -> int:
    return math.floor(v + 0.5)


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, Mapping) else None


def _mapping(obj: Any) -> Mapping[str, Any]:
    return obj if isinstance(obj, Mapping) else {}


def find_number_by_keys(obj: Any, keys: tuple[str, ...]) -> float | None:
    """Depth-first search for a numeric value under any of ``keys``.

    Matching is case-insensitive; a matched dict contributes its ``value``.
    """
    if not isinstance(obj, Mapping):
        return None
    for k, v in obj.items():
        if str(k).lower() in keys:
            if is_number(v):
                return v
            if is_number(_get(v, "value")):
                return v["value"]
        if isinstance(v, Mapping):
            nested = find_number_by_keys(v, keys)
            if nested is not None:
                return nested
    return None


def _age_advantage(perceived: int | None, actual: int | None) -> str:
    if perceived is None or actual is None:
        return "—"
    diff = actual - perceived
    if diff == 0:
        return "Same as your age"
    if diff > 0:
        return f"~{diff} years younger"
    return f"~{abs(diff)} years older"


def _skin_type(labels: Mapping[str, Any], param: Any) -> str:
    found = _first_string(
        labels.get("skin_type"),
        labels.get("skin_type_label"),
        _get(param, "type_label"),
        _get(param, "skin_type"),
        _get(param, "category"),
        _get(param, "tag"),
    )
    if found:
        return found
    if isinstance(param, Mapping):
        for value in param.values():
            if isinstance(value, str) and value.lower() in KNOWN_SKIN_TYPES:
                return value
    return NOT_AVAILABLE


def map_overall_health(
    block: Mapping[str, Any] | None,
    actual_age: int | None = None,
) -> OverallHealth | None:
    """Summarise age, skin type, ITA and overall score. ``None`` for legacy payloads."""
    fs3 = _get(block, FACE_SKIN_FAMILY)
    if not isinstance(fs3, Mapping):
        return None

    params = fs3.get("parameters") if isinstance(fs3.get("parameters"), Mapping) else {}
    labels = {**_mapping(_get(block, "predicted_labels")), **_mapping(fs3.get("predicted_labels"))}

    age_param = params.get("age") or params.get("skin_age")
    ita_param = next((params[k] for k in ("ita", "ITA", "ItA", "itA") if params.get(k)), None)

    perceived_raw = _first_number(
        labels.get("perceived_age"),
        _get(age_param, "age"),
        _get(age_param, "predicted_age"),
        _get(age_param, "apparent_age"),
        _get(age_param, "biological_age"),
        _get(age_param, "eyes_age"),
    )
    actual_raw = _first_number(
        actual_age,
        labels.get("actual_age"),
        _get(age_param, "calendar_age"),
        _get(age_param, "chronological_age"),
        _get(age_param, "real_age"),
    )
    perceived = _round(perceived_raw) if perceived_raw is not None else None
    actual = _round(actual_raw) if actual_raw is not None else None

    ita = _first_number(
        labels.get("ita"),
        labels.get("ITA"),
        labels.get("ita_angle"),
        labels.get("ita_value"),
        find_number_by_keys(ita_param, ITA_KEYS),
    )
    ita_text = str(_round(ita)) if ita is not None else "—"

    score_raw = _first_number(_get(age_param, "score"), fs3.get("overall_score"))

    return OverallHealth(
        score=_round(score_raw) if score_raw is not None else DEFAULT_SCORE,
        skin_tone=ita_text if ita is not None else NOT_AVAILABLE,
        ita_angle=ita_text,
        perceived_age=perceived if perceived is not None else (actual or 0),
        actual_age=actual if actual is not None else (perceived or 0),
        age_advantage=_age_advantage(perceived, actual),
        skin_type=_skin_type(labels, params.get("skin_type")),
    )
