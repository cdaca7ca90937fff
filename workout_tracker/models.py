"""Value objects shared by the session engine, metrics and persistence.

Data entering the engine from storage is converted exactly once by
:func:`normalize_record` / :func:`normalize_set`; everything downstream of
that boundary works with these typed values and does not re-check them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from . import DEFAULT_REPS, DEFAULT_REST_TIME, DEFAULT_WEIGHT


def validate_set_values(weight, reps, rest_time) -> None:
    """Raise ``ValueError`` unless the values describe a legal set."""

    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise ValueError(f"weight must be a number, got {weight!r}")
    if not math.isfinite(weight) or weight < 0:
        raise ValueError(f"weight must be >= 0, got {weight!r}")
    if isinstance(reps, bool) or not isinstance(reps, int) or reps < 0:
        raise ValueError(f"reps must be a non-negative integer, got {reps!r}")
    if isinstance(rest_time, bool) or not isinstance(rest_time, (int, float)):
        raise ValueError(f"rest_time must be a number, got {rest_time!r}")
    if not math.isfinite(rest_time) or rest_time < 0:
        raise ValueError(f"rest_time must be >= 0, got {rest_time!r}")


def validate_rpe(rpe) -> None:
    if rpe is None:
        return
    if isinstance(rpe, bool) or not isinstance(rpe, (int, float)) or not 1 <= rpe <= 10:
        raise ValueError(f"rpe must be between 1 and 10, got {rpe!r}")


@dataclass(frozen=True)
class TrainingConfig:
    """Setup chosen before a workout starts.

    ``duration`` is the target length in minutes. The config is treated as
    opaque once a session has started.
    """

    training_type: str = ""
    duration: int = 0
    body_focus: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    recommended_exercises: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.training_type

    def to_dict(self) -> dict:
        return {
            "training_type": self.training_type,
            "duration": self.duration,
            "body_focus": list(self.body_focus),
            "tags": list(self.tags),
            "recommended_exercises": list(self.recommended_exercises),
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "TrainingConfig":
        if not data:
            return cls()
        return cls(
            training_type=str(data.get("training_type") or data.get("type") or ""),
            duration=int(data.get("duration") or 0),
            body_focus=tuple(data.get("body_focus") or ()),
            tags=tuple(data.get("tags") or ()),
            recommended_exercises=tuple(data.get("recommended_exercises") or ()),
        )


@dataclass
class SetMetadata:
    """Provenance of an automatic adjustment applied to a set."""

    auto_adjusted: bool = False
    previous_values: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "auto_adjusted": self.auto_adjusted,
            "previous_values": dict(self.previous_values),
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "SetMetadata | None":
        if not data or not isinstance(data, dict):
            return None
        return cls(
            auto_adjusted=bool(data.get("auto_adjusted", False)),
            previous_values=dict(data.get("previous_values") or {}),
        )


@dataclass
class ExerciseSet:
    """A single set of an exercise.

    ``set_number`` is 1-based and maintained by the ledger. ``is_editing`` is
    a UI-only flag and is left out of persisted payloads.
    """

    weight: float = DEFAULT_WEIGHT
    reps: int = DEFAULT_REPS
    rest_time: float = DEFAULT_REST_TIME
    completed: bool = False
    set_number: int = 1
    is_editing: bool = False
    rpe: float | None = None
    metadata: SetMetadata | None = None

    def __post_init__(self):
        validate_set_values(self.weight, self.reps, self.rest_time)
        validate_rpe(self.rpe)

    @property
    def is_countable(self) -> bool:
        """Return ``True`` if the set contributes to volume statistics."""
        return self.completed and self.weight > 0 and self.reps > 0

    def to_dict(self, include_transient: bool = False) -> dict:
        data = {
            "set_number": self.set_number,
            "weight": self.weight,
            "reps": self.reps,
            "rest_time": self.rest_time,
            "completed": self.completed,
            "rpe": self.rpe,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }
        if include_transient:
            data["is_editing"] = self.is_editing
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExerciseSet":
        return cls(
            weight=data.get("weight", DEFAULT_WEIGHT),
            reps=data.get("reps", DEFAULT_REPS),
            rest_time=data.get("rest_time", DEFAULT_REST_TIME),
            completed=bool(data.get("completed", False)),
            set_number=int(data.get("set_number", 1)),
            is_editing=bool(data.get("is_editing", False)),
            rpe=data.get("rpe"),
            metadata=SetMetadata.from_dict(data.get("metadata")),
        )


@dataclass
class ExerciseEntry:
    """An exercise in the ledger with its ordered sets."""

    name: str
    sets: list[ExerciseSet] = field(default_factory=list)
    variation: str | None = None

    def to_dict(self, include_transient: bool = False) -> dict:
        return {
            "name": self.name,
            "variation": self.variation,
            "sets": [s.to_dict(include_transient) for s in self.sets],
        }


@dataclass
class WorkoutRecord:
    """A workout loaded from history, as consumed by the metrics module."""

    started_at: datetime
    duration_minutes: float = 0.0
    training_type: str = ""
    exercises: dict[str, list[ExerciseSet]] = field(default_factory=dict)
    tags: tuple[str, ...] = ()
    session_id: str | None = None

    @property
    def completed_sets(self) -> int:
        return sum(
            1 for sets in self.exercises.values() for s in sets if s.completed
        )


# ----------------------------------------------------------------------
# Boundary normalisation
# ----------------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime | None:
    """Return ``value`` as a local :class:`datetime` or ``None``."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed
    return None


def _number(value, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def _strings(value) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if item is not None)


def normalize_config(data: Any) -> TrainingConfig:
    """Coerce a stored training config, replacing malformed fields."""

    if not isinstance(data, dict):
        return TrainingConfig()
    training_type = data.get("training_type") or data.get("type") or ""
    return TrainingConfig(
        training_type=str(training_type),
        duration=max(0, int(_number(data.get("duration"), 0))),
        body_focus=_strings(data.get("body_focus")),
        tags=_strings(data.get("tags")),
        recommended_exercises=_strings(data.get("recommended_exercises")),
    )


def to_epoch(value: Any) -> float | None:
    """Return ``value`` as seconds since the epoch or ``None``."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) and value >= 0 else None
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed is not None else None


def normalize_set(data: Any, set_number: int = 1) -> ExerciseSet | None:
    """Coerce a loosely shaped set mapping into an :class:`ExerciseSet`.

    Unknown or malformed values fall back to defaults; ``None`` is returned
    when ``data`` is not a mapping at all.
    """

    if not isinstance(data, dict):
        return None
    weight = max(0.0, _number(data.get("weight"), DEFAULT_WEIGHT))
    reps = max(0, int(_number(data.get("reps"), DEFAULT_REPS)))
    rest = data.get("rest_time", data.get("restTime"))
    rest_time = max(0.0, _number(rest, DEFAULT_REST_TIME))
    rpe = data.get("rpe")
    if rpe is not None:
        rpe = _number(rpe, 0)
        if not 1 <= rpe <= 10:
            rpe = None
    return ExerciseSet(
        weight=weight,
        reps=reps,
        rest_time=rest_time,
        completed=bool(data.get("completed", False)),
        set_number=set_number,
        rpe=rpe,
        metadata=SetMetadata.from_dict(data.get("metadata")),
    )


def normalize_exercises(raw: Any) -> dict[str, list[ExerciseSet]]:
    """Return exercises grouped by name.

    Accepts either a mapping of name to set list or a flat list of sets that
    each carry an ``exercise_name`` key.
    """

    grouped: dict[str, list] = {}
    if isinstance(raw, dict):
        for name, sets in raw.items():
            if isinstance(sets, dict):
                sets = sets.get("sets")
            grouped[str(name)] = sets if isinstance(sets, list) else []
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict) and item.get("exercise_name"):
                grouped.setdefault(str(item["exercise_name"]), []).append(item)

    exercises: dict[str, list[ExerciseSet]] = {}
    for name, sets in grouped.items():
        normalized = []
        for raw_set in sets:
            item = normalize_set(raw_set, len(normalized) + 1)
            if item is None:
                logging.warning("Dropping malformed set for '%s': %r", name, raw_set)
                continue
            normalized.append(item)
        if normalized:
            exercises[name] = normalized
    return exercises


def normalize_record(data: dict) -> WorkoutRecord | None:
    """Convert a stored workout mapping into a :class:`WorkoutRecord`.

    Returns ``None`` if the workout has no usable start time.
    """

    started = parse_timestamp(data.get("started_at", data.get("start_time")))
    if started is None:
        logging.warning("Skipping workout without start time: %r", data.get("session_id"))
        return None
    if data.get("duration_minutes") is not None:
        minutes = _number(data.get("duration_minutes"), 0.0)
    elif data.get("elapsed_seconds") is not None:
        minutes = _number(data.get("elapsed_seconds"), 0.0) / 60
    else:
        minutes = _number(data.get("duration"), 0.0)
    config = data.get("training_config") or {}
    training_type = data.get("training_type") or config.get("training_type") or ""
    tags = data.get("tags") or config.get("tags") or ()
    return WorkoutRecord(
        started_at=started,
        duration_minutes=max(0.0, minutes),
        training_type=str(training_type),
        exercises=normalize_exercises(data.get("exercises")),
        tags=tuple(tags),
        session_id=data.get("session_id"),
    )
