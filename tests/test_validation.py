import math
import time
from datetime import datetime

import pytest

from workout_tracker.errors import ValidationFailure
from workout_tracker.validation import repair_snapshot, validate_snapshot

NOW = 1_700_000_000.0


def snapshot(**overrides):
    data = {
        "session_id": "abc",
        "status": "active",
        "training_config": {"training_type": "strength", "duration": 30},
        "started_at": NOW - 600,
        "elapsed_seconds": 600,
        "last_activity": NOW - 60,
        "exercises": {
            "Squat": {
                "name": "Squat",
                "variation": None,
                "sets": [
                    {"set_number": 1, "weight": 100, "reps": 5, "rest_time": 90, "completed": True},
                    {"set_number": 2, "weight": 100, "reps": 5, "rest_time": 90, "completed": False},
                ],
            }
        },
    }
    data.update(overrides)
    return data


def test_valid_snapshot():
    result = validate_snapshot(snapshot(), now=NOW)
    assert result.is_valid and not result.needs_repair
    assert result.reasons == []


def test_active_without_config_or_exercises_requires_reset():
    result = validate_snapshot(
        snapshot(training_config={}, exercises={}), now=NOW
    )
    assert not result.is_valid
    assert not result.needs_repair
    assert result.requires_reset
    with pytest.raises(ValidationFailure) as excinfo:
        repair_snapshot(snapshot(training_config={}, exercises={}), now=NOW)
    assert excinfo.value.fatal


def test_missing_config_is_repaired_when_exercises_exist():
    result = validate_snapshot(snapshot(training_config=None), now=NOW)
    assert result.needs_repair
    repaired = repair_snapshot(snapshot(training_config=None), now=NOW)
    assert repaired["training_config"]["training_type"] == "strength"


def test_missing_start_is_derived_from_elapsed():
    repaired = repair_snapshot(snapshot(started_at=None), now=NOW)
    assert repaired["started_at"] == NOW - 600


@pytest.mark.parametrize("elapsed", [-5, math.nan, math.inf, "ten"])
def test_invalid_elapsed_is_reset(elapsed):
    data = snapshot(elapsed_seconds=elapsed)
    result = validate_snapshot(data, now=NOW)
    assert result.needs_repair
    assert "Elapsed time is invalid" in result.reasons
    assert repair_snapshot(data, now=NOW)["elapsed_seconds"] == 0


def test_empty_exercise_is_dropped():
    data = snapshot()
    data["exercises"]["Curl"] = {"name": "Curl", "sets": []}
    result = validate_snapshot(data, now=NOW)
    assert result.needs_repair
    repaired = repair_snapshot(data, now=NOW)
    assert list(repaired["exercises"]) == ["Squat"]
    assert data["exercises"]["Curl"] == {"name": "Curl", "sets": []}


def test_bad_sets_are_normalized():
    data = snapshot()
    data["exercises"]["Squat"]["sets"] = [
        {"set_number": 3, "weight": -20, "reps": "8", "rest_time": 90, "completed": True},
        "garbage",
        {"set_number": 9, "weight": 100, "reps": 5, "rest_time": 90, "is_editing": True},
    ]
    assert validate_snapshot(data, now=NOW).needs_repair
    sets = repair_snapshot(data, now=NOW)["exercises"]["Squat"]["sets"]
    assert [s["set_number"] for s in sets] == [1, 2]
    assert sets[0]["weight"] == 0
    assert sets[0]["reps"] == 8
    assert sets[1]["is_editing"] is True


def test_saved_session_still_active_requires_reset():
    result = validate_snapshot(snapshot(saved_id="row-7"), now=NOW)
    assert result.requires_reset


def test_stale_session_requires_reset():
    stale = snapshot(last_activity=NOW - 25 * 3600)
    assert validate_snapshot(stale, now=NOW).requires_reset
    assert validate_snapshot(stale, now=NOW, stale_after_hours=48).is_valid


def test_idle_snapshot_without_config_is_valid():
    data = {"status": "idle", "elapsed_seconds": 0, "exercises": {}}
    assert validate_snapshot(data, now=time.time()).is_valid


def test_malformed_config_fields_are_repaired():
    data = snapshot(
        training_config={"training_type": "strength", "duration": "thirty", "tags": "legs"}
    )
    result = validate_snapshot(data, now=NOW)
    assert result.needs_repair
    assert "Training duration is invalid" in result.reasons
    assert "Training config field 'tags' is malformed" in result.reasons
    config = repair_snapshot(data, now=NOW)["training_config"]
    assert config["training_type"] == "strength"
    assert config["duration"] == 0
    assert config["tags"] == ["legs"]


def test_textual_start_time_is_parsed():
    data = snapshot(started_at="2023-11-14T22:03:20")
    result = validate_snapshot(data, now=NOW)
    assert "Start time is invalid" in result.reasons
    repaired = repair_snapshot(data, now=NOW)
    assert repaired["started_at"] == datetime(2023, 11, 14, 22, 3, 20).timestamp()


def test_unreadable_start_time_is_derived_from_elapsed():
    repaired = repair_snapshot(snapshot(started_at="soon"), now=NOW)
    assert repaired["started_at"] == NOW - 600


@pytest.mark.parametrize(
    "last", [["Squat"], ["Squat", 5], ["Deadlift", 0], "Squat", ["Squat", True]]
)
def test_dangling_last_completed_is_cleared(last):
    data = snapshot(last_completed=last)
    result = validate_snapshot(data, now=NOW)
    assert "Last completed set reference is invalid" in result.reasons
    assert repair_snapshot(data, now=NOW)["last_completed"] is None


def test_last_completed_survives_repair_when_still_present():
    assert validate_snapshot(snapshot(last_completed=["Squat", 1]), now=NOW).is_valid
    data = snapshot(last_completed=["Squat", 1])
    data["exercises"]["Squat"]["sets"][0]["set_number"] = 4
    assert repair_snapshot(data, now=NOW)["last_completed"] == ["Squat", 1]


def test_last_completed_on_dropped_set_is_cleared():
    data = snapshot(last_completed=["Squat", 1])
    data["exercises"]["Squat"]["sets"][1] = "garbage"
    assert validate_snapshot(data, now=NOW).needs_repair
    repaired = repair_snapshot(data, now=NOW)
    assert len(repaired["exercises"]["Squat"]["sets"]) == 1
    assert repaired["last_completed"] is None
