"""Tests for structured-output recovery of generated routines."""

from __future__ import annotations

import copy
import json

import pytest

from bloom.errors import ParseRecoveryExhausted
from bloom.schemas.scan import SECTION_IDS
from bloom.services.recovery import (
    FALLBACK_ROUTINE,
    fallback_routine,
    parse_generated_object,
    recover_routine,
)


def _routine(**overrides) -> dict:
    doc = copy.deepcopy(FALLBACK_ROUTINE)
    doc.update(summary="Focus on acne and pores.", mainConcerns=["acne", "pores"])
    doc.update(overrides)
    return doc


def test_direct_parse():
    data, rung = parse_generated_object(json.dumps(_routine()))
    assert rung == "direct"
    assert data["summary"] == "Focus on acne and pores."


def test_trailing_commentary_is_trimmed():
    text = json.dumps(_routine()) + "\n\nHope this helps! Let me know if you need anything else."
    data, rung = parse_generated_object(text)
    assert rung == "trimmed"
    assert data == _routine()


def test_code_fence_is_stripped():
    text = "```json\n" + json.dumps(_routine()) + "\n```"
    _, rung = parse_generated_object(text)
    assert rung == "direct"


def test_non_object_json_is_rejected():
    with pytest.raises(ParseRecoveryExhausted):
        parse_generated_object("[1, 2, 3]")


def test_recover_well_formed_output():
    doc = recover_routine(json.dumps(_routine()) + " trailing")
    assert doc.summary == "Focus on acne and pores."
    assert doc.main_concerns == ["acne", "pores"]
    assert [s.id for s in doc.sections] == list(SECTION_IDS)


@pytest.mark.parametrize("text", ["", "I cannot help with that.", "{not json at all}", "null"])
def test_garbage_returns_unchanged_fallback(text):
    assert recover_routine(text) == fallback_routine()


@pytest.mark.parametrize("text", ["[" * 200000, '{"a":' * 200000 + "}"])
def test_deeply_nested_output_returns_fallback(text):
    assert recover_routine(text) == fallback_routine()


def test_fallback_is_a_fresh_copy():
    doc = fallback_routine()
    doc.sections[0].steps.clear()
    assert len(fallback_routine().sections[0].steps) == 3


def test_partial_object_is_repaired():
    partial = {
        "summary": "Focus on redness.",
        "mainConcerns": ["redness"],
        "sections": [
            {"id": "morning", "title": "AM", "steps": [{"id": "spf", "title": "SPF"}, {"title": "no id"}]},
        ],
    }
    doc = recover_routine(json.dumps(partial), known_concerns=["redness", "pores", "acne"])
    fallback = fallback_routine()

    assert doc.summary == "Focus on redness."
    assert doc.main_concerns == ["redness", "pores"]
    assert doc.sections[0].title == "AM"
    assert [s.id for s in doc.sections[0].steps] == ["spf"]
    assert doc.sections[1] == fallback.sections[1]
    assert doc.sections[2] == fallback.sections[2]
    assert doc.disclaimer == fallback.disclaimer


def test_concerns_are_filtered_and_capped():
    raw = _routine(mainConcerns=["acne", "acne", "pores", "made_up", "redness", "sagging", "lines"])
    known = ["acne", "pores", "redness", "sagging", "lines"]
    doc = recover_routine(json.dumps(raw), known_concerns=known)
    assert doc.main_concerns == ["acne", "pores", "redness", "sagging"]


def test_sections_are_reordered_to_fixed_ids():
    raw = _routine()
    raw["sections"] = list(reversed(raw["sections"]))
    doc = recover_routine(json.dumps(raw))
    assert [s.id for s in doc.sections] == list(SECTION_IDS)
