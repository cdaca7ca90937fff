import pytest

from workout_tracker.errors import DuplicateExercise, NotFound
from workout_tracker.ledger import Ledger
from workout_tracker.models import ExerciseSet


def numbers(ledger, name):
    return [s.set_number for s in ledger.get(name).sets]


def test_add_exercise_uses_default_set():
    ledger = Ledger(default_rest_time=90)
    entry = ledger.add_exercise("Squat")
    first = entry.sets[0]
    assert (first.weight, first.reps, first.rest_time) == (0, 10, 90)
    assert first.completed is False
    assert first.set_number == 1


def test_add_exercise_copies_initial_set():
    ledger = Ledger()
    initial = ExerciseSet(weight=60, reps=8, set_number=7)
    entry = ledger.add_exercise("Bench Press", initial)
    assert entry.sets[0] is not initial
    assert entry.sets[0].set_number == 1
    assert initial.set_number == 7


def test_duplicate_exercise_is_rejected_case_sensitively():
    ledger = Ledger()
    ledger.add_exercise("Bench Press")
    with pytest.raises(DuplicateExercise):
        ledger.add_exercise("Bench Press")
    ledger.add_exercise("bench press")
    assert ledger.names == ["Bench Press", "bench press"]


def test_empty_name_is_rejected():
    with pytest.raises(ValueError):
        Ledger().add_exercise("")


def test_add_set_copies_previous_values():
    ledger = Ledger()
    ledger.add_exercise("Row", ExerciseSet(weight=40, reps=12, rest_time=75, completed=True))
    added = ledger.add_set("Row")
    assert (added.weight, added.reps, added.rest_time) == (40, 12, 75)
    assert added.completed is False
    assert numbers(ledger, "Row") == [1, 2]


def test_set_numbering_stays_contiguous():
    ledger = Ledger()
    ledger.add_exercise("Squat")
    for _ in range(4):
        ledger.add_set("Squat")
    ledger.remove_set("Squat", 1)
    ledger.remove_set("Squat", 0)
    ledger.add_set("Squat")
    ledger.remove_set("Squat", 3)
    assert numbers(ledger, "Squat") == [1, 2, 3]


def test_removing_last_set_removes_exercise():
    ledger = Ledger()
    ledger.add_exercise("Curl")
    assert ledger.remove_set("Curl", 0) is True
    assert "Curl" not in ledger


def test_remove_exercise_is_idempotent():
    ledger = Ledger()
    ledger.add_exercise("Curl")
    assert ledger.remove_exercise("Curl") is True
    assert ledger.remove_exercise("Curl") is False
    assert ledger.remove_exercise("Never added") is False


def test_missing_exercise_or_set_raises_not_found():
    ledger = Ledger()
    ledger.add_exercise("Squat")
    with pytest.raises(NotFound):
        ledger.get("Deadlift")
    with pytest.raises(NotFound):
        ledger.get_set("Squat", 3)
    with pytest.raises(NotFound):
        ledger.remove_set("Squat", -1)
    assert numbers(ledger, "Squat") == [1]


def test_update_set_validates_before_mutating():
    ledger = Ledger()
    ledger.add_exercise("Squat", ExerciseSet(weight=100, reps=5))
    with pytest.raises(ValueError):
        ledger.update_set("Squat", 0, weight=120, reps=-1)
    with pytest.raises(ValueError):
        ledger.update_set("Squat", 0, rpe=11)
    with pytest.raises(ValueError):
        ledger.update_set("Squat", 0, set_number=4)
    current = ledger.get_set("Squat", 0)
    assert (current.weight, current.reps, current.rpe) == (100, 5, None)

    ledger.update_set("Squat", 0, weight=105, completed=True)
    assert current.weight == 105 and current.completed


def test_completed_sets_and_round_trip():
    ledger = Ledger()
    ledger.add_exercise("Squat", ExerciseSet(weight=100, reps=5, completed=True))
    ledger.add_set("Squat")
    ledger.update_set("Squat", 1, is_editing=True)
    assert ledger.completed_sets() == 1

    data = ledger.to_dict()
    assert "is_editing" not in data["Squat"]["sets"][1]
    restored = Ledger.from_dict(ledger.to_dict(include_transient=True))
    assert restored.get_set("Squat", 1).is_editing is True
    assert restored.to_dict() == data
