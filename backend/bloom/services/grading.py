"""Score → grade / tag / description tables for the Face Skin 3.0 metrics.

All tables share the same bands on a 0-100 score:
  90-100 → grade 1 Great
  80-89  → grade 2 Good
  50-79  → grade 3 Average
  30-49  → grade 4 Poor
  <30    → grade 5 Poor
Only the wording of each band differs per metric.
"""

from __future__ import annotations

import math
from typing import NamedTuple


class GradeMeta(NamedTuple):
    grade: int
    tag: str
    description: str


_BANDS: tuple[tuple[int, int, str], ...] = (
    (90, 1, "Great"),
    (80, 2, "Good"),
    (50, 3, "Average"),
    (30, 4, "Poor"),
    (0, 5, "Poor"),
)

_DESCRIPTIONS: dict[str, tuple[str, str, str, str, str]] = {
    "pores": (
        "No visible pores",
        "Minimal visible pores",
        "Moderate visible pores",
        "Numerous enlarged pores",
        "Extensive enlarged pores",
    ),
    "redness": (
        "Minimal redness, barely noticeable pink tint",
        "Light pink areas or mild flushing",
        "Moderate redness with visible blood vessels",
        "Significant redness with inflammation",
        "Severe redness with pronounced inflammation",
    ),
    "sagging": (
        "No visible skin sagging",
        "Mild sagging in nasolabial area or marionette lines",
        "Moderate sagging in the cheeks or jawline with visible softening of facial contours",
        "Pronounced sagging with deep folds and noticeable loss of definition in facial structure",
        "Severe sagging with significant drooping, jowls, and extensive volume loss",
    ),
    "pigmentation": (
        "Skin tone is even with minimal to no visible pigmented spots",
        "Mild pigmentation visible as small, localized spots",
        "Moderate pigmentation present, with noticeable uneven tone and several pigmented spots across face",
        "Extensive pigmentation with prominent hyperpigmented spots and areas",
        "Severe and widespread pigmentation with large, dense spots",
    ),
    "lines": (
        "Subtle signs of fine lines",
        "Multiple fine lines or a few deep lines",
        "Presence of both deep and fine lines",
        "Presence of severe deep lines",
        "Presence of severe deep lines",
    ),
}

def clamp_score(score: float) -> int:
    """Round half up and clamp to 0..100."""
    return max(0, min(100, math.floor(score + 0.5)))


def grade_for(metric: str, score: float) -> GradeMeta:
    """Look up the grade band of ``score`` for one of the graded metrics."""
    descriptions = _DESCRIPTIONS[metric]
    s = clamp_score(score)
    grade, tag = next((g, t) for floor, g, t in _BANDS if s >= floor)
    return GradeMeta(grade, tag, descriptions[grade - 1])
