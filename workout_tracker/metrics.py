"""Statistics derived from workout ledgers and workout history.

All functions here are pure. Single-session helpers take the
``{exercise name: [ExerciseSet, ...]}`` mapping produced by
:meth:`Ledger.sets_by_exercise`; history helpers take a sequence of
:class:`~workout_tracker.models.WorkoutRecord` values as returned by a
persistence adapter.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from . import ESTIMATED_SET_SECONDS
from .exercises import PRIMARY_GROUPS, ExerciseInfo, get_exercise_details, primary_group
from .models import ExerciseSet, WorkoutRecord

DEFAULT_BODY_WEIGHT = 75.0
WEEKLY_VOLUME_TARGET = 5000

TIME_OF_DAY_BUCKETS = ("morning", "afternoon", "evening", "night")

Exercises = dict[str, list[ExerciseSet]]
Library = dict[str, ExerciseInfo] | None


# ----------------------------------------------------------------------
# Volume and density
# ----------------------------------------------------------------------


def effective_weight(
    name: str,
    item: ExerciseSet,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> float:
    """Return the load of ``item``, estimating it for bodyweight exercises."""

    info = get_exercise_details(name, library)
    if info.is_bodyweight:
        return info.estimated_load(body_weight)
    return item.weight


def is_countable(
    name: str,
    item: ExerciseSet,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> bool:
    return (
        item.completed
        and item.reps > 0
        and effective_weight(name, item, body_weight, library) > 0
    )


def set_volume(
    name: str,
    item: ExerciseSet,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> float:
    """Return ``weight x reps`` for a countable set and ``0`` otherwise."""

    if not is_countable(name, item, body_weight, library):
        return 0.0
    return effective_weight(name, item, body_weight, library) * item.reps


def compute_volume(
    name: str,
    sets: Iterable[ExerciseSet],
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> float:
    return sum(set_volume(name, s, body_weight, library) for s in sets)


def session_volume(
    exercises: Exercises,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> float:
    """Total volume of all exercises in one session."""
    return sum(
        compute_volume(name, sets, body_weight, library)
        for name, sets in exercises.items()
    )


def completed_set_count(exercises: Exercises) -> int:
    return sum(1 for sets in exercises.values() for s in sets if s.completed)


def compute_density(
    volume: float,
    duration_minutes: float | None = None,
    completed_sets: int = 0,
    set_seconds: float = ESTIMATED_SET_SECONDS,
) -> float:
    """Return volume per minute.

    Without a known duration the working time is estimated as
    ``completed_sets * set_seconds``. Returns ``0`` when no time can be
    determined.
    """

    if duration_minutes and duration_minutes > 0:
        return volume / duration_minutes
    estimated = completed_sets * set_seconds / 60
    if estimated <= 0:
        return 0.0
    return volume / estimated


def rest_minutes(exercises: Exercises) -> float:
    """Sum of the rest time of completed sets, in minutes."""
    return sum(
        s.rest_time for sets in exercises.values() for s in sets if s.completed
    ) / 60


# ----------------------------------------------------------------------
# Muscle focus and composition
# ----------------------------------------------------------------------


def muscle_focus(exercises: Exercises, library: Library = None) -> dict[str, int]:
    """Count completed sets per primary muscle group."""

    focus: Counter[str] = Counter()
    for name, sets in exercises.items():
        done = sum(1 for s in sets if s.completed)
        if not done:
            continue
        for muscle in get_exercise_details(name, library).primary_muscle_groups:
            focus[muscle] += done
    return dict(focus)


def workout_balance(focus: dict[str, int]) -> dict[str, float]:
    """Fold ``focus`` onto the six main groups and scale it to 0-100.

    The most trained group scores 100.
    """

    totals = dict.fromkeys(PRIMARY_GROUPS, 0)
    for muscle, count in focus.items():
        group = primary_group(muscle)
        if group in totals:
            totals[group] += count
    peak = max(totals.values())
    if not peak:
        return {group: 0.0 for group in totals}
    return {group: round(count / peak * 100, 1) for group, count in totals.items()}


def composition(exercises: Exercises, library: Library = None) -> dict[str, dict]:
    """Break exercises down into compound, isolation, bodyweight and isometric."""

    counts = dict.fromkeys(("compound", "isolation", "bodyweight", "isometric"), 0)
    for name in exercises:
        counts[get_exercise_details(name, library).category] += 1
    total = sum(counts.values())
    return {
        category: {
            "count": count,
            "percentage": round(count / total * 100, 1) if total else 0.0,
        }
        for category, count in counts.items()
    }


# ----------------------------------------------------------------------
# Time of day
# ----------------------------------------------------------------------


def time_of_day_bucket(hour: int) -> str:
    """Return the bucket of a local hour between 0 and 23."""

    if 5 <= hour <= 11:
        return "morning"
    if 12 <= hour <= 16:
        return "afternoon"
    if 17 <= hour <= 21:
        return "evening"
    return "night"


def duration_by_time_of_day(records: Iterable[WorkoutRecord]) -> dict[str, float]:
    """Minutes trained per time-of-day bucket."""

    buckets = dict.fromkeys(TIME_OF_DAY_BUCKETS, 0.0)
    for record in records:
        buckets[time_of_day_bucket(record.started_at.hour)] += record.duration_minutes
    return buckets


# ----------------------------------------------------------------------
# Personal records
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class PersonalRecord:
    exercise: str
    weight: float
    achieved_at: datetime
    previous_weight: float | None = None
    improvement: int | None = None


def _sorted(records: Iterable[WorkoutRecord]) -> list[WorkoutRecord]:
    return sorted(records, key=lambda r: r.started_at)


def detect_personal_records(records: Iterable[WorkoutRecord]) -> list[PersonalRecord]:
    """Return every new maximum weight per exercise, oldest first.

    Only completed sets with a positive weight are considered. The first
    occurrence of an exercise is a record without improvement; later records
    carry the rounded percentage gained over the preceding maximum. Equal
    weights are not new records.
    """

    best: dict[str, float] = {}
    found: list[PersonalRecord] = []
    for record in _sorted(records):
        for name, sets in record.exercises.items():
            weights = [s.weight for s in sets if s.completed and s.weight > 0]
            if not weights:
                continue
            top = max(weights)
            previous = best.get(name)
            if previous is not None and top <= previous:
                continue
            improvement = None
            if previous:
                improvement = round((top - previous) / previous * 100)
            best[name] = top
            found.append(PersonalRecord(name, top, record.started_at, previous, improvement))
    return found


def current_records(
    records: Iterable[WorkoutRecord], limit: int | None = None
) -> list[PersonalRecord]:
    """Latest record of each exercise, heaviest first."""

    latest: dict[str, PersonalRecord] = {}
    for pr in detect_personal_records(records):
        latest[pr.exercise] = pr
    ranked = sorted(latest.values(), key=lambda pr: (-pr.weight, pr.exercise))
    return ranked if limit is None else ranked[:limit]


# ----------------------------------------------------------------------
# History statistics
# ----------------------------------------------------------------------


def streak_days(records: Iterable[WorkoutRecord]) -> int:
    """Longest run of consecutive calendar days with a workout."""

    days = sorted({r.started_at.date() for r in records})
    if not days:
        return 0
    longest = current = 1
    for prev, day in zip(days, days[1:]):
        if day - prev == timedelta(days=1):
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


def weekly_volume(
    records: Iterable[WorkoutRecord],
    now: datetime | None = None,
    weeks_ago: int = 0,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> float:
    """Volume of the seven days ending ``weeks_ago`` weeks before ``now``."""

    now = now or datetime.now()
    end = now - timedelta(weeks=weeks_ago)
    start = end - timedelta(days=7)
    return sum(
        session_volume(r.exercises, body_weight, library)
        for r in records
        if start < r.started_at <= end
    )


def volume_change_percentage(
    records: Sequence[WorkoutRecord],
    now: datetime | None = None,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> float:
    """Change of this week's volume against last week's, in percent."""

    current = weekly_volume(records, now, 0, body_weight, library)
    previous = weekly_volume(records, now, 1, body_weight, library)
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 1)


@dataclass
class QualityScore:
    score: int
    factors: dict[str, int] = field(default_factory=dict)
    previous_score: int | None = None


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def training_quality_score(
    records: Sequence[WorkoutRecord],
    now: datetime | None = None,
    target_volume: float = WEEKLY_VOLUME_TARGET,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> QualityScore:
    """Blend consistency, volume, variety and intensity into a 0-100 score.

    Weights are 40/30/20/10 percent. Each factor is clamped to 0-100 before
    weighting.
    """

    records = list(records)
    now = now or datetime.now()
    consistency = _clamp(streak_days(records) * 15 + (40 if records else 0))
    this_week = weekly_volume(records, now, 0, body_weight, library)
    volume = _clamp(this_week / target_volume * 100) if target_volume else 0.0
    unique = {name for r in records for name in r.exercises}
    variety = _clamp(len(unique) / max(1, len(records)) * 50)
    intensity = _clamp(50 + volume_change_percentage(records, now, body_weight, library))

    score = round(consistency * 0.4 + volume * 0.3 + variety * 0.2 + intensity * 0.1)
    last_week = weekly_volume(records, now, 1, body_weight, library)
    previous = round(score * last_week / this_week) if last_week and this_week else None
    return QualityScore(
        score=score,
        factors={
            "consistency": round(consistency),
            "volume": round(volume),
            "variety": round(variety),
            "intensity": round(intensity),
        },
        previous_score=previous,
    )


@dataclass(frozen=True)
class VolumePoint:
    date: date
    volume: float
    sets: int
    session_id: str | None = None


def volume_over_time(
    records: Iterable[WorkoutRecord],
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> list[VolumePoint]:
    return [
        VolumePoint(
            r.started_at.date(),
            session_volume(r.exercises, body_weight, library),
            r.completed_sets,
            r.session_id,
        )
        for r in _sorted(records)
    ]


def volume_stats(points: Sequence[VolumePoint]) -> dict[str, float]:
    total = sum(p.volume for p in points)
    average = total / len(points) if points else 0.0
    return {"total": total, "average": average}


@dataclass(frozen=True)
class DensityPoint:
    date: date
    overall_density: float
    active_only_density: float | None = None


def density_over_time(
    records: Iterable[WorkoutRecord],
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
) -> list[DensityPoint]:
    """Overall and active-only density of each workout.

    Active time is the workout duration minus the rest taken after
    completed sets. It is ``None`` when nothing is left after subtracting
    rest.
    """

    points = []
    for r in _sorted(records):
        volume = session_volume(r.exercises, body_weight, library)
        overall = compute_density(volume, r.duration_minutes, r.completed_sets)
        active_minutes = r.duration_minutes - rest_minutes(r.exercises)
        active = volume / active_minutes if active_minutes > 0 else None
        points.append(
            DensityPoint(
                r.started_at.date(),
                round(overall, 1),
                round(active, 1) if active is not None else None,
            )
        )
    return points


def density_stats(points: Sequence[DensityPoint]) -> dict[str, float]:
    overall = [p.overall_density for p in points]
    active = [p.active_only_density for p in points if p.active_only_density is not None]
    return {
        "overall": round(sum(overall) / len(overall), 1) if overall else 0.0,
        "active_only": round(sum(active) / len(active), 1) if active else 0.0,
    }


def workout_type_distribution(records: Iterable[WorkoutRecord]) -> dict[str, dict]:
    """Number of workouts and minutes per training type."""

    counts: Counter[str] = Counter()
    minutes: Counter[str] = Counter()
    for r in records:
        label = r.training_type or "Other"
        counts[label] += 1
        minutes[label] += r.duration_minutes
    total = sum(counts.values())
    return {
        label: {
            "count": count,
            "minutes": minutes[label],
            "percentage": round(count / total * 100, 1),
        }
        for label, count in counts.most_common()
    }


def summarize_session(
    exercises: Exercises,
    duration_minutes: float | None = None,
    started_at: datetime | None = None,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    library: Library = None,
    set_seconds: float = ESTIMATED_SET_SECONDS,
) -> dict:
    """Metrics stored alongside a saved session."""

    volume = session_volume(exercises, body_weight, library)
    completed = completed_set_count(exercises)
    focus = muscle_focus(exercises, library)
    summary = {
        "total_volume": volume,
        "completed_sets": completed,
        "exercise_count": len(exercises),
        "density": round(
            compute_density(volume, duration_minutes, completed, set_seconds), 2
        ),
        "muscle_focus": focus,
        "balance": workout_balance(focus),
        "composition": composition(exercises, library),
    }
    if started_at is not None:
        summary["time_of_day"] = time_of_day_bucket(started_at.hour)
    return summary
