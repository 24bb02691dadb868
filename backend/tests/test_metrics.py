"""Tests for metric normalization across both payload generations."""

from __future__ import annotations

import asyncio
import copy

from bloom.services.grading import clamp_score, grade_for
from bloom.services.metrics import (
    ALLOW_LIST,
    AlgorithmDictionary,
    LegacySchema,
    MetricNormalizer,
    ModernSchema,
    classify_payload,
    map_lines_to_wrinkles,
)
from haut_stub import ALGORITHMS, LEGACY_RESULTS, MODERN_PARAMETERS, modern_payload


class CountingFetch:
    def __init__(self, entries=None) -> None:
        self.entries = copy.deepcopy(ALGORITHMS if entries is None else entries)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.entries


def _normalize(raw, fetch=None):
    normalizer = MetricNormalizer(AlgorithmDictionary(fetch or CountingFetch()))
    return asyncio.run(normalizer.normalize(raw))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def test_classify_modern_and_legacy():
    assert isinstance(classify_payload(modern_payload()), ModernSchema)
    assert isinstance(classify_payload([modern_payload()]), ModernSchema)
    assert isinstance(classify_payload(LEGACY_RESULTS), LegacySchema)
    assert classify_payload([]) is None


def test_block_without_parameters_is_legacy():
    assert isinstance(classify_payload(modern_payload(complete=False)), LegacySchema)


# ---------------------------------------------------------------------------
# Modern payloads
# ---------------------------------------------------------------------------

def test_modern_metrics_follow_allow_list_order():
    metrics = _normalize(modern_payload())
    assert [m.id for m in metrics] == [
        "lines", "pores", "redness", "acne", "skin_type", "skin_tone", "age", "lines_wrinkles",
    ]


def test_every_allow_listed_parameter_is_emitted():
    params = {key: {"score": 50} for _, key in ALLOW_LIST}
    metrics = _normalize(modern_payload(parameters=params))
    ids = [m.id for m in metrics]
    assert ids[: len(ALLOW_LIST)] == [metric_id for metric_id, _ in ALLOW_LIST]
    assert ids[-1] == "lines_wrinkles"
    assert len(ids) == len(set(ids))


def test_parameters_outside_allow_list_are_ignored():
    ids = {m.id for m in _normalize(modern_payload())}
    assert "wrinkle_depth_experimental" not in ids


def test_value_key_precedence():
    params = {
        "age": {"age": 31, "score": 88},
        "pores": {"amount": 5, "density": 0.3},
        "redness": {"density": 0.7},
        "sagging": {"tag": "Good"},
    }
    values = {m.id: m.value for m in _normalize(modern_payload(parameters=params))}
    assert values == {"age": 88, "pores": 5, "redness": 0.7, "sagging": 0}


def test_mask_preference_order():
    metrics = {m.id: m for m in _normalize(modern_payload())}
    # anonymised beats original when aligned_face is absent
    assert metrics["lines"].mask_url == "https://m.test/lines-anon.png"
    # found on the attached enlarged_pores sub-block
    assert metrics["pores"].mask_url == "https://m.test/enlarged.png"
    assert metrics["redness"].mask_url is None


def test_modern_metric_identity_fields():
    acne = next(m for m in _normalize(modern_payload()) if m.id == "acne")
    assert acne.label == acne.tech_name == acne.family_name == "acne"
    assert acne.tag == "Great"
    assert acne.raw["pimples"] == {"amount": 2}


def test_enrichment_fills_grade_without_overwriting_vendor_tag():
    metrics = {m.id: m for m in _normalize(modern_payload())}
    pores = metrics["pores"].raw
    assert pores["tag"] == "Good"
    assert pores["grade"] == 2
    assert pores["enlarged_pores_amount"] == 12
    assert metrics["redness"].raw["irritation_score"] == 35
    assert metrics["lines"].raw["tag"] == "Average"


def test_lines_wrinkles_sits_next_to_lines():
    metrics = {m.id: m for m in _normalize(modern_payload())}
    assert metrics["lines"].value == 0.62
    wrinkles = metrics["lines_wrinkles"]
    assert wrinkles.label == "Lines & Wrinkles"
    assert wrinkles.value == 62
    assert wrinkles.tag == "Average"


def test_map_lines_to_wrinkles_details():
    summary = map_lines_to_wrinkles(modern_payload())
    assert summary["score"] == 62
    assert summary["rawScore"] == 0.62
    assert summary["grade"] == 3
    assert summary["details"]["deepLinesScore"] == 55
    assert summary["details"]["fineLinesScore"] == 70
    assert map_lines_to_wrinkles({"face_skin_metrics_3": {"parameters": {}}}) is None


def test_normalization_is_idempotent_and_does_not_mutate_input():
    raw = modern_payload()
    snapshot = copy.deepcopy(raw)

    first = _normalize(raw)
    second = _normalize(raw)

    assert [m.model_dump() for m in first] == [m.model_dump() for m in second]
    assert raw == snapshot


def test_metric_value_never_null():
    metrics = _normalize(modern_payload(parameters={"pores": {"score": None}}))
    assert metrics[0].value == 0


# ---------------------------------------------------------------------------
# Legacy payloads
# ---------------------------------------------------------------------------

def test_legacy_metrics_use_algorithm_dictionary():
    metrics = _normalize(LEGACY_RESULTS)
    assert [(m.id, m.label, m.value) for m in metrics] == [
        ("11", "Wrinkles", 73),
        ("12", "Acne", 5),
        ("99", "Metric 99", 4),
    ]
    assert metrics[0].tech_name == "wrinkles_v2"
    assert metrics[1].tech_name == "acne_v1"
    assert metrics[2].tech_name is None


def test_algorithm_dictionary_fetched_once():
    fetch = CountingFetch()
    normalizer = MetricNormalizer(AlgorithmDictionary(fetch))

    async def run_twice():
        await normalizer.normalize(LEGACY_RESULTS)
        await normalizer.normalize(LEGACY_RESULTS)

    asyncio.run(run_twice())
    assert fetch.calls == 1
    assert normalizer.algorithms.loaded


def test_modern_payload_never_fetches_dictionary():
    fetch = CountingFetch()
    _normalize(modern_payload(), fetch)
    assert fetch.calls == 0


def test_empty_payload_gives_no_metrics():
    assert _normalize([]) == []


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------

def test_grade_bands():
    assert grade_for("pores", 95) == (1, "Great", "No visible pores")
    assert grade_for("pores", 89.5).grade == 1
    assert grade_for("redness", 80).tag == "Good"
    assert grade_for("sagging", 50).grade == 3
    assert grade_for("lines", 30).tag == "Poor"
    assert grade_for("pigmentation", 12).grade == 5


def test_clamp_score_rounds_half_up():
    assert clamp_score(2.5) == 3
    assert clamp_score(150) == 100
    assert clamp_score(-4) == 0
