# assessment/scorer.py

import math
from typing import Any, Mapping, Sequence

from assessment.models import MaturityTier, Scores
from assessment.questions import ASSESSMENT_DIMENSIONS

MIN_RATING = 1
MAX_RATING = 5

# (lower bound inclusive, name, level), highest first
TIER_THRESHOLDS = (
    (5.0, "Optimized", 5),
    (4.0, "Managed", 4),
    (3.0, "Developing", 3),
    (2.0, "Reactive", 2),
)
LOWEST_TIER = ("Ad-hoc", 1)


def _rating(value: Any) -> int:
    """
    Missing or unusable answers count as the lowest rating.
    """
    if value is None or isinstance(value, bool):
        return MIN_RATING
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return MIN_RATING
    # inf and nan are unusable too
    if not math.isfinite(number):
        return MIN_RATING
    rating = int(round(number))
    return min(MAX_RATING, max(MIN_RATING, rating))


def score(answers: Mapping[str, Any], dimension_definitions: Sequence[Mapping[str, Any]] = None) -> Scores:
    """
    Per-dimension means plus the flat mean over every question.

    `overall` is total rating sum / total question count, not the mean of the
    dimension means; both coincide only while every dimension has the same
    number of questions.
    """
    definitions = ASSESSMENT_DIMENSIONS if dimension_definitions is None else dimension_definitions
    answers = answers or {}

    dimensions: dict[str, float] = {}
    total = 0
    count = 0
    for dimension in definitions:
        questions = dimension.get("questions") or []
        if not questions:
            continue
        dimension_total = 0
        for question in questions:
            rating = _rating(answers.get(question["id"]))
            dimension_total += rating
            total += rating
            count += 1
        dimensions[dimension["id"]] = dimension_total / len(questions)

    overall = total / count if count else float(MIN_RATING)
    return Scores(dimensions=dimensions, overall=overall)


def tier_for(overall_score: float) -> MaturityTier:
    for lower_bound, name, level in TIER_THRESHOLDS:
        if overall_score >= lower_bound:
            return MaturityTier(name=name, level=level)
    name, level = LOWEST_TIER
    return MaturityTier(name=name, level=level)
