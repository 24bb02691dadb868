"""Metric normalizer: vendor result payloads → stable internal metric list.

Two response generations exist in the wild:

* **modern** (Face Skin Metrics 3.0): the first result carries a
  ``face_skin_metrics_3.parameters`` map; metrics are read through a fixed
  allow-list of (internal id, vendor parameter key) pairs.
* **legacy**: a list of per-algorithm results keyed by
  ``algorithm_version_id``; names come from the vendor algorithm dictionary.

Payloads are classified once at the boundary (``classify_payload``) and each
variant is normalized by its own total function. Normalization never mutates
the input, so normalizing the same payload twice gives identical output.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from bloom.schemas.scan import Metric
from bloom.services.grading import clamp_score, grade_for

logger = logging.getLogger(__name__)

FACE_SKIN_FAMILY = "face_skin_metrics_3"

# (internal metric id, vendor parameter key), in output order.
ALLOW_LIST: tuple[tuple[str, str], ...] = (
    ("lines", "lines"),
    ("pores", "pores"),
    ("redness", "redness"),
    ("pigmentation", "pigmentation"),
    ("acne", "breakouts"),
    ("sagging", "sagging"),
    ("dark_circles", "dark_circles"),
    ("skin_type", "skin_type"),
    ("skin_tone", "skintone"),
    ("age", "age"),
    ("eyes_age", "eyes_age"),
    ("sun_spots", "sun_spots"),
)

VALUE_KEYS = ("score", "age", "eyes_age", "amount", "density")
MASK_VARIANTS = ("aligned_face", "anonymised", "original")

# Sub-blocks attached during enrichment, searched for a mask after the
# parameter itself.
MASK_SOURCES = (
    "enlarged_pores",
    "pimples",
    "inflammation",
    "irritation",
    "lacrimal_grooves",
    "jowls",
    "deep_lines",
    "fine_lines",
    "sun_spots",
    "melasma",
    "moles",
    "freckles",
)

LINES_WRINKLES_ID = "lines_wrinkles"


# ---------------------------------------------------------------------------
# Schema variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModernSchema:
    block: Mapping[str, Any]
    parameters: Mapping[str, Any]


@dataclass(frozen=True)
class LegacySchema:
    results: tuple[Mapping[str, Any], ...]


def classify_payload(
    raw_results: Sequence[Mapping[str, Any]] | Mapping[str, Any],
) -> ModernSchema | LegacySchema | None:
    """Tag a raw payload with its schema generation. ``None`` when empty."""
    if isinstance(raw_results, Mapping):
        raw_results = [raw_results]
    if not raw_results:
        return None
    first = raw_results[0]
    fs3 = first.get(FACE_SKIN_FAMILY) if isinstance(first, Mapping) else None
    if isinstance(fs3, Mapping) and isinstance(fs3.get("parameters"), Mapping):
        return ModernSchema(block=first, parameters=fs3["parameters"])
    return LegacySchema(results=tuple(r for r in raw_results if isinstance(r, Mapping)))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and not math.isnan(v)


def pick_number(*candidates: Any) -> float | None:
    """First candidate that is a number or a numeric string."""
    for v in candidates:
        if is_number(v):
            return v
        if isinstance(v, str):
            try:
                n = float(v)
            except ValueError:
                continue
            if not math.isnan(n):
                return n
    return None


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, Mapping) else None


def _pick_mask(obj: Any) -> str | None:
    front = _get(_get(obj, "masks"), "front")
    for variant in MASK_VARIANTS:
        url = _get(front, variant)
        if url:
            return url
    return None


def _param_value(param: Mapping[str, Any]) -> float:
    for key in VALUE_KEYS:
        if is_number(param.get(key)):
            return param[key]
    return 0


def _fill_grade(metric: str, enriched: dict[str, Any]) -> None:
    if not is_number(enriched.get("score")):
        return
    meta = grade_for(metric, enriched["score"])
    if not enriched.get("tag"):
        enriched["tag"] = meta.tag
    if not enriched.get("grade"):
        enriched["grade"] = meta.grade
    if not enriched.get("score_description"):
        enriched["score_description"] = meta.description


def _enrich(param_key: str, param: Mapping[str, Any], params: Mapping[str, Any]) -> dict[str, Any]:
    """Copy ``param`` and attach the related sub-parameters for detail views."""
    enriched = dict(param)

    if param_key == "breakouts":
        enriched["inflammation"] = params.get("inflammation")
        enriched["pimples"] = params.get("pimples")

    elif param_key == "pores":
        enlarged = params.get("enlarged_pores")
        enriched["enlarged_pores"] = enlarged
        enriched["pores_amount"] = param.get("amount") if is_number(param.get("amount")) else None
        enriched["enlarged_pores_amount"] = _get(enlarged, "amount") if is_number(_get(enlarged, "amount")) else None
        _fill_grade("pores", enriched)

    elif param_key == "redness":
        irritation = params.get("irritation")
        enriched["irritation"] = irritation
        enriched["irritation_score"] = _get(irritation, "score") if is_number(_get(irritation, "score")) else None
        _fill_grade("redness", enriched)

    elif param_key == "sagging":
        jowls = params.get("jowls")
        lacrimal = params.get("lacrimal_grooves")
        enriched["jowls"] = jowls
        enriched["lacrimal_grooves"] = lacrimal
        enriched["jowls_grade"] = _get(jowls, "grade") if is_number(_get(jowls, "grade")) else None
        enriched["lacrimal_grooves_score"] = _get(lacrimal, "score") if is_number(_get(lacrimal, "score")) else None
        _fill_grade("sagging", enriched)

    elif param_key == "lines":
        deep = params.get("deep_lines")
        fine = params.get("fine_lines")
        enriched["deep_lines"] = deep
        enriched["fine_lines"] = fine
        enriched["deep_lines_score"] = pick_number(_get(deep, "score"), _get(deep, "value"), param.get("deep_lines_score"))
        enriched["fine_lines_score"] = pick_number(_get(fine, "score"), _get(fine, "value"), param.get("fine_lines_score"))
        _fill_grade("lines", enriched)

    elif param_key == "pigmentation":
        freckles = params.get("freckles")
        moles = params.get("moles")
        melasma = params.get("melasma")
        sun_spots = params.get("sun_spots")
        moles_count = pick_number(
            _get(moles, "number_of_moles"), _get(moles, "count"), _get(moles, "amount"),
            _get(moles, "moles_count"), _get(moles, "moles_amount"),
            _get(param.get("moles"), "count"), _get(param.get("moles"), "amount"),
        )
        enriched.update(
            freckles=freckles,
            moles=moles,
            melasma=melasma,
            sun_spots=sun_spots,
            freckles_density=_density(freckles, "freckles_density", param.get("freckles")) or 0,
            melasma_density=_density(melasma, "melasma_density", param.get("melasma")) or 0,
            sun_spots_density=_density(sun_spots, "sun_spots_density", param.get("sun_spots")) or 0,
            moles_amount=moles_count or 0,
            moles_count=moles_count or 0,
        )
        _fill_grade("pigmentation", enriched)

    return enriched


def _density(block: Any, alias: str, nested: Any) -> float | None:
    return pick_number(
        _get(block, "density"), _get(block, alias), _get(block, "density_value"), _get(nested, "density"),
    )


# ---------------------------------------------------------------------------
# Variant normalizers
# ---------------------------------------------------------------------------

def normalize_modern(schema: ModernSchema) -> list[Metric]:
    params = schema.parameters
    metrics: list[Metric] = []
    for metric_id, param_key in ALLOW_LIST:
        param = params.get(param_key)
        if not isinstance(param, Mapping):
            continue

        enriched = _enrich(param_key, param, params)
        mask_url = _pick_mask(enriched) or next(
            (url for url in (_pick_mask(enriched.get(k)) for k in MASK_SOURCES) if url), None,
        )
        tag = enriched.get("tag")
        metrics.append(
            Metric(
                id=metric_id,
                label=metric_id,
                value=_param_value(param),
                tech_name=metric_id,
                family_name=metric_id,
                tag=tag if isinstance(tag, str) else None,
                mask_url=mask_url,
                raw=enriched,
            )
        )
    return metrics


def _legacy_value(result: Any) -> float:
    if is_number(result):
        return result
    if isinstance(result, Mapping):
        if is_number(result.get("score")):
            return result["score"]
        main = result.get("main_metric")
        if isinstance(main, Mapping) and is_number(main.get("score")):
            return main["score"]
    return 0


def normalize_legacy(schema: LegacySchema, algorithms: Sequence[Mapping[str, Any]]) -> list[Metric]:
    by_id = {a.get("id"): a for a in algorithms if isinstance(a, Mapping)}
    metrics: list[Metric] = []
    for result in schema.results:
        version_id = result.get("algorithm_version_id")
        algo = by_id.get(version_id, {})
        tech_name = algo.get("algorithm_tech_name") or algo.get("tech_name") or None
        family_name = _get(algo.get("algorithm_family"), "name") or None

        if version_id is not None:
            metric_id = str(version_id)
        else:
            metric_id = tech_name or family_name or "unknown"

        metrics.append(
            Metric(
                id=metric_id,
                label=family_name or tech_name or f"Metric {version_id}",
                value=_legacy_value(result.get("result")),
                tech_name=tech_name,
                family_name=family_name,
                raw=result,
            )
        )
    return metrics


# ---------------------------------------------------------------------------
# Lines & wrinkles
# ---------------------------------------------------------------------------

def _score_or_value(block: Any) -> float:
    for key in ("score", "value"):
        if is_number(_get(block, key)):
            return block[key]
    return 0


def map_lines_to_wrinkles(block: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Derive the Lines & Wrinkles summary from a Face Skin 3.0 result block.

    Scores at or below 1 are treated as fractions and scaled to 0-100.
    """
    params = _get(_get(block, FACE_SKIN_FAMILY), "parameters")
    lines = _get(params, "lines")
    if not isinstance(lines, Mapping):
        return None

    deep = params.get("deep_lines")
    fine = params.get("fine_lines")
    raw_score = _score_or_value(lines)
    score = math.floor(raw_score * 100 + 0.5) if raw_score <= 1 else math.floor(raw_score + 0.5)
    meta = grade_for("lines", score)

    return {
        "id": LINES_WRINKLES_ID,
        "score": score,
        "rawScore": raw_score,
        "tag": lines.get("tag") or meta.tag,
        "grade": lines.get("grade") or meta.grade,
        "description": lines.get("score_description") or meta.description,
        "details": {
            "deepLinesScore": clamp_score(_score_or_value(deep)),
            "fineLinesScore": clamp_score(_score_or_value(fine)),
            "lines": lines,
            "deep_lines": deep,
            "fine_lines": fine,
            "areas": lines.get("areas"),
        },
    }


def lines_wrinkles_metric(block: Mapping[str, Any] | None) -> Metric | None:
    summary = map_lines_to_wrinkles(block)
    if summary is None:
        return None
    return Metric(
        id=LINES_WRINKLES_ID,
        label="Lines & Wrinkles",
        value=summary["score"],
        tech_name="lines",
        family_name="Lines",
        tag=summary["tag"] if isinstance(summary["tag"], str) else None,
        raw=summary,
    )


# ---------------------------------------------------------------------------
# Algorithm dictionary + normalizer
# ---------------------------------------------------------------------------

class AlgorithmDictionary:
    """Lazily populated read-through cache of the vendor algorithm dictionary.

    The dictionary is immutable reference data: two concurrent first readers
    may both fetch it and the later write wins, which is harmless.
    """

    def __init__(self, fetch: Callable[[], Awaitable[list[dict[str, Any]]]]) -> None:
        self._fetch = fetch
        self._entries: list[dict[str, Any]] | None = None

    @property
    def loaded(self) -> bool:
        return self._entries is not None

    async def get(self) -> list[dict[str, Any]]:
        if self._entries is None:
            entries = await self._fetch()
            logger.info("Loaded %d algorithm definitions.", len(entries))
            self._entries = entries
        return self._entries


class MetricNormalizer:
    def __init__(self, algorithms: AlgorithmDictionary) -> None:
        self.algorithms = algorithms

    async def normalize(
        self,
        raw_results: Sequence[Mapping[str, Any]] | Mapping[str, Any],
    ) -> list[Metric]:
        """Map raw vendor results to metrics, appending ``lines_wrinkles``.

        ``lines_wrinkles`` is added next to the allow-list ``lines`` entry;
        the two are not merged.
        """
        schema = classify_payload(raw_results)
        if schema is None:
            return []

        if isinstance(schema, ModernSchema):
            metrics = normalize_modern(schema)
            extra = lines_wrinkles_metric(schema.block)
            if extra is not None:
                metrics.append(extra)
            return metrics

        return normalize_legacy(schema, await self.algorithms.get())
