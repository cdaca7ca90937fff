"""RPE-driven recommendations for the next set of an exercise."""

from __future__ import annotations

from dataclasses import dataclass

from . import DEFAULT_REST_TIME, MIN_REPS, MIN_REST_TIME, MIN_WEIGHT
from .models import ExerciseSet, validate_rpe


@dataclass(frozen=True)
class SetRecommendation:
    weight: float
    reps: int
    rest_time: float
    message: str | None = None


_MESSAGES = (
    "Too easy! Increasing weight for optimal challenge.",
    "Good intensity! Small progression for continued gains.",
    "Perfect intensity! Maintaining for consistent progress.",
    "Very challenging! Adjusting for better form and recovery.",
)


def rpe_adjustments(rpe: float, weight: float) -> tuple[float, int, float, str]:
    """Return ``(weight_change, reps_change, rest_change, message)``.

    The weight increment is smaller for light loads: below 10 in the easy
    band and below 20 in the moderate band.
    """

    if rpe <= 3:
        return (2.5 if weight >= 10 else 1.25), 0, -5, _MESSAGES[0]
    if rpe <= 6:
        return (1.25 if weight >= 20 else 0.5), 1, 0, _MESSAGES[1]
    if rpe <= 8:
        return 0.0, 0, 0, _MESSAGES[2]
    return -2.5, -1, 15, _MESSAGES[3]


def get_next_set_recommendation(
    current: ExerciseSet,
    rpe: float | None = None,
) -> SetRecommendation:
    """Recommend weight, reps and rest for the set following ``current``.

    Without an ``rpe`` rating the current values are returned unchanged.
    """

    if rpe is None:
        return SetRecommendation(current.weight, current.reps, current.rest_time)
    validate_rpe(rpe)
    rest = current.rest_time or DEFAULT_REST_TIME
    weight_change, reps_change, rest_change, message = rpe_adjustments(
        rpe, current.weight
    )
    return SetRecommendation(
        weight=max(MIN_WEIGHT, current.weight + weight_change),
        reps=max(MIN_REPS, current.reps + reps_change),
        rest_time=max(MIN_REST_TIME, rest + rest_change),
        message=message,
    )
