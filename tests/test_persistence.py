import sqlite3
from datetime import datetime

import pytest

from workout_tracker.models import ExerciseSet, TrainingConfig
from workout_tracker.persistence import HistoryFilter, InMemoryAdapter, SQLiteAdapter
from workout_tracker.workout_session import WorkoutSession


def stored_session(day: int, training_type: str = "strength", weight: float = 100) -> dict:
    return {
        "session_id": f"s{day}",
        "training_config": {"training_type": training_type, "duration": 45},
        "started_at": datetime(2024, 4, day, 9).timestamp(),
        "elapsed_seconds": 2700,
        "exercises": {
            "Squat": {
                "name": "Squat",
                "variation": None,
                "sets": [
                    {"set_number": 1, "weight": weight, "reps": 5, "rest_time": 90, "completed": True, "rpe": 8},
                    {"set_number": 2, "weight": weight, "reps": 5, "rest_time": 90, "completed": False},
                ],
            }
        },
    }


@pytest.fixture
def db_adapter(tmp_path):
    return SQLiteAdapter(tmp_path / "workouts.db")


def test_sqlite_round_trip(db_adapter):
    session_id = db_adapter.save_session(stored_session(3))
    assert session_id == "s3"
    (record,) = db_adapter.load_history()
    assert record.session_id == "s3"
    assert record.started_at == datetime(2024, 4, 3, 9)
    assert record.duration_minutes == 45
    assert record.training_type == "strength"
    squat = record.exercises["Squat"]
    assert [s.completed for s in squat] == [True, False]
    assert squat[0].rpe == 8
    assert record.completed_sets == 1


def test_sqlite_history_filters(db_adapter):
    for day, kind in ((1, "strength"), (2, "cardio"), (3, "strength"), (4, "strength")):
        db_adapter.save_session(stored_session(day, kind))

    newest_first = [r.session_id for r in db_adapter.load_history()]
    assert newest_first == ["s4", "s3", "s2", "s1"]
    strength = db_adapter.load_history(HistoryFilter(training_type="strength", limit=2))
    assert [r.session_id for r in strength] == ["s4", "s3"]
    window = db_adapter.load_history(
        HistoryFilter(since=datetime(2024, 4, 2), until=datetime(2024, 4, 3, 23))
    )
    assert [r.session_id for r in window] == ["s3", "s2"]


def test_sqlite_resave_replaces_sets(db_adapter):
    db_adapter.save_session(stored_session(1, weight=100))
    db_adapter.save_session(stored_session(1, weight=120))
    (record,) = db_adapter.load_history()
    assert [s.weight for s in record.exercises["Squat"]] == [120, 120]


def test_sqlite_deleted_sessions_are_hidden(db_adapter):
    db_adapter.save_session(stored_session(1))
    db_adapter.delete_session("s1")
    assert db_adapter.load_history() == []
    with sqlite3.connect(str(db_adapter.db_path)) as conn:
        assert conn.execute("SELECT deleted FROM workout_sessions").fetchone() == (1,)


def test_sqlite_set_mutations(db_adapter):
    assert db_adapter.save_set_mutation("s1", "Squat", 0, {"weight": 80}) is True
    db_adapter.save_set_mutation("s1", "Squat", 1, {"deleted": True})
    assert db_adapter.get_set_mutations("s1") == [
        {"exercise_name": "Squat", "set_index": 0, "patch": {"weight": 80}},
        {"exercise_name": "Squat", "set_index": 1, "patch": {"deleted": True}},
    ]


def test_in_memory_adapter_copies_payloads():
    adapter = InMemoryAdapter()
    payload = stored_session(2)
    adapter.save_session(payload)
    payload["exercises"]["Squat"]["sets"][0]["weight"] = 999
    (record,) = adapter.load_history()
    assert record.exercises["Squat"][0].weight == 100


def test_in_memory_history_normalizes_loose_rows(caplog):
    adapter = InMemoryAdapter(
        history=[
            {
                "session_id": "legacy",
                "start_time": "2024-04-05T07:30:00",
                "duration": 30,
                "training_type": "strength",
                "exercises": [
                    {"exercise_name": "Bench Press", "weight": "60", "reps": 8, "completed": True},
                    {"exercise_name": "Bench Press", "weight": -5, "reps": 8, "completed": True},
                ],
            },
            {"session_id": "broken", "exercises": {}},
        ]
    )
    (record,) = adapter.load_history()
    assert record.started_at == datetime(2024, 4, 5, 7, 30)
    assert record.duration_minutes == 30
    bench = record.exercises["Bench Press"]
    assert [s.weight for s in bench] == [60, 0]
    assert [s.set_number for s in bench] == [1, 2]
    assert "without start time" in caplog.text


def test_session_saves_through_sqlite(tmp_path, clock):
    db_adapter = SQLiteAdapter(tmp_path / "workouts.db")
    session = WorkoutSession(adapter=db_adapter, clock=clock)
    session.start(TrainingConfig(training_type="hypertrophy", duration=45))
    session.add_exercise("Bench Press", ExerciseSet(weight=60, reps=10))
    session.complete_set("Bench Press", 0, rpe=7)
    clock.advance(1200)
    saved_id = session.finish()

    (record,) = db_adapter.load_history()
    assert record.session_id == saved_id
    assert record.training_type == "hypertrophy"
    assert record.duration_minutes == 20
    assert record.exercises["Bench Press"][0].weight == 60
