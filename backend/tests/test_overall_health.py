"""Tests for the overall skin-health summary."""

from __future__ import annotations

from bloom.services.overall_health import find_number_by_keys, map_overall_health
from haut_stub import LEGACY_RESULTS, modern_payload


def test_summary_from_parameters():
    health = map_overall_health(modern_payload())
    assert health.score == 88
    assert health.perceived_age == 31
    assert health.actual_age == 31
    assert health.age_advantage == "—"
    assert health.skin_type == "combination"
    assert health.skin_tone == "Not available"
    assert health.ita_angle == "—"


def test_age_advantage_against_actual_age():
    assert map_overall_health(modern_payload(), actual_age=35).age_advantage == "~4 years younger"
    assert map_overall_health(modern_payload(), actual_age=28).age_advantage == "~3 years older"
    assert map_overall_health(modern_payload(), actual_age=31).age_advantage == "Same as your age"


def test_predicted_labels_take_priority():
    block = {
        "face_skin_metrics_3": {
            "parameters": {"age": {"age": 40}},
            "predicted_labels": {"ita": 12.4, "skin_type": "oily", "perceived_age": 38.6},
        }
    }
    health = map_overall_health(block)
    assert health.skin_tone == "12"
    assert health.ita_angle == "12"
    assert health.perceived_age == 39
    assert health.skin_type == "oily"
    assert health.score == 72


def test_non_mapping_predicted_labels_are_ignored():
    block = {
        "predicted_labels": "n/a",
        "face_skin_metrics_3": {
            "parameters": {"age": {"age": 40}},
            "predicted_labels": [{"name": "ita", "value": 12.4}],
        },
    }
    health = map_overall_health(block)
    assert health.perceived_age == 40
    assert health.ita_angle == "—"


def test_nested_ita_is_found():
    block = {"face_skin_metrics_3": {"parameters": {"ita": {"values": {"ITA_value": {"value": 28.7}}}}}}
    assert map_overall_health(block).ita_angle == "29"


def test_skin_type_from_known_value():
    block = {"face_skin_metrics_3": {"parameters": {"skin_type": {"result": "Dry"}}}}
    assert map_overall_health(block).skin_type == "Dry"


def test_missing_block_gives_none():
    assert map_overall_health(None) is None
    assert map_overall_health(LEGACY_RESULTS[0]) is None


def test_find_number_by_keys_is_case_insensitive():
    assert find_number_by_keys({"a": {"ITA": 5}}, ("ita",)) == 5
    assert find_number_by_keys({"a": {"b": "x"}}, ("ita",)) is None
