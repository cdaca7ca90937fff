from datetime import datetime

from workout_tracker.models import ExerciseSet, WorkoutRecord


def done_sets(count: int, weight: float, reps: int, rest_time: float = 60) -> list[ExerciseSet]:
    """Return ``count`` completed sets numbered from 1."""
    return [
        ExerciseSet(weight=weight, reps=reps, rest_time=rest_time, completed=True, set_number=i)
        for i in range(1, count + 1)
    ]


def make_record(
    started_at: datetime,
    exercises: dict[str, list[ExerciseSet]],
    duration_minutes: float = 45,
    training_type: str = "strength",
) -> WorkoutRecord:
    return WorkoutRecord(
        started_at=started_at,
        duration_minutes=duration_minutes,
        training_type=training_type,
        exercises=exercises,
    )
