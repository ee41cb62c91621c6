# services/exam_management/engine/grading.py
"""
Grading-system validation.

A band table must cover [0, 100] with no gaps and no overlaps. Two
conventions are accepted between neighbouring bands: continuous
(next.lower == prev.upper) and whole-mark steps (next.lower == prev.upper + 1,
as in the KCSE table below).
"""

import math
from typing import List, Sequence

from services.exam_management.engine.errors import GradingSystemInvalid
from services.exam_management.engine.records import GradeBand

SCALE_MIN = 0.0
SCALE_MAX = 100.0


def _same(a: float, b: float) -> bool:
    return math.isclose(a, b, abs_tol=1e-9)


def validate_bands(bands: Sequence[GradeBand]) -> List[GradeBand]:
    """Return the bands sorted low-to-high, or raise GradingSystemInvalid."""
    if not bands:
        raise GradingSystemInvalid("Grading system has no grade bands")

    labels = [band.label for band in bands]
    if len(set(labels)) != len(labels):
        raise GradingSystemInvalid("Grade labels must be unique")

    for band in bands:
        if band.lower > band.upper:
            raise GradingSystemInvalid(f"Band {band.label} has lower bound above upper bound")
        if band.lower < SCALE_MIN or band.upper > SCALE_MAX:
            raise GradingSystemInvalid(f"Band {band.label} lies outside 0-100")

    ordered = sorted(bands, key=lambda band: band.lower)
    if not _same(ordered[0].lower, SCALE_MIN):
        raise GradingSystemInvalid("Grading scale doesn't start from 0")
    if not _same(ordered[-1].upper, SCALE_MAX):
        raise GradingSystemInvalid("Grading scale doesn't end at 100")

    for current, following in zip(ordered, ordered[1:]):
        if following.lower < current.upper and not _same(following.lower, current.upper):
            raise GradingSystemInvalid(f"Overlap between {current.label} and {following.label}")
        if not (_same(following.lower, current.upper) or _same(following.lower, current.upper + 1)):
            raise GradingSystemInvalid(f"Gap between {current.label} and {following.label}")

    return ordered


KCSE_BANDS = (
    GradeBand(80, 100, "A", 12, "Excellent"),
    GradeBand(75, 79, "A-", 11, "Very Good"),
    GradeBand(70, 74, "B+", 10, "Good Plus"),
    GradeBand(65, 69, "B", 9, "Good"),
    GradeBand(60, 64, "B-", 8, "Good Minus"),
    GradeBand(55, 59, "C+", 7, "Credit Plus"),
    GradeBand(50, 54, "C", 6, "Credit"),
    GradeBand(45, 49, "C-", 5, "Credit Minus"),
    GradeBand(40, 44, "D+", 4, "Pass Plus"),
    GradeBand(35, 39, "D", 3, "Pass"),
    GradeBand(30, 34, "D-", 2, "Pass Minus"),
    GradeBand(0, 29, "E", 1, "Fail"),
)

PRIMARY_BANDS = (
    GradeBand(80, 100, "A", 4, "Excellent"),
    GradeBand(60, 79, "B", 3, "Good"),
    GradeBand(40, 59, "C", 2, "Satisfactory"),
    GradeBand(0, 39, "D", 1, "Below Expectation"),
)

PRESETS = {
    "kcse": ("KCSE Grading System", KCSE_BANDS),
    "primary": ("Primary School Grading", PRIMARY_BANDS),
}
