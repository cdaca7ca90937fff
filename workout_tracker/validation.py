"""Validation and repair of workout session snapshots.

Snapshots are the plain dictionaries produced by
:meth:`WorkoutSession.snapshot` and written to the recovery files. A
snapshot is classified as

* valid - nothing to do,
* repairable - :func:`repair_snapshot` returns a sanitised copy,
* fatal - the session must be reset and the user sent back to setup.
"""

from __future__ import annotations

import copy
import logging
import math
import time
from dataclasses import dataclass, field

from .errors import ValidationFailure
from .models import ExerciseSet, normalize_config, normalize_set, to_epoch

STALE_SESSION_HOURS = 24
# Training type assumed when an active session lost its config
FALLBACK_TRAINING_TYPE = "strength"


@dataclass
class ValidationResult:
    is_valid: bool
    needs_repair: bool
    reasons: list[str] = field(default_factory=list)

    @property
    def requires_reset(self) -> bool:
        """``True`` when the snapshot cannot be repaired."""
        return not self.is_valid and not self.needs_repair


def _non_negative_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


def _set_is_valid(raw) -> bool:
    if not isinstance(raw, dict):
        return False
    try:
        ExerciseSet.from_dict(raw)
    except (TypeError, ValueError):
        return False
    return True


def _exercise_problems(exercises) -> list[str]:
    if not isinstance(exercises, dict):
        return ["Exercise data is malformed"]
    problems = []
    for name, raw in exercises.items():
        sets = raw.get("sets") if isinstance(raw, dict) else None
        if not isinstance(sets, list) or not sets:
            problems.append(f"Exercise '{name}' has no sets")
            continue
        if not all(_set_is_valid(s) for s in sets):
            problems.append(f"Exercise '{name}' has invalid set data")
            continue
        numbers = [s.get("set_number") for s in sets]
        if numbers != list(range(1, len(sets) + 1)):
            problems.append(f"Set numbering of '{name}' is not contiguous")
    return problems


def _config_problems(config) -> list[str]:
    if not isinstance(config, dict):
        return []
    problems = []
    training_type = config.get("training_type")
    if training_type is not None and not isinstance(training_type, str):
        problems.append("Training type is malformed")
    duration = config.get("duration")
    if duration is not None and not _non_negative_number(duration):
        problems.append("Training duration is invalid")
    for key in ("body_focus", "tags", "recommended_exercises"):
        value = config.get(key)
        if value is None:
            continue
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            problems.append(f"Training config field '{key}' is malformed")
    return problems


def _valid_last_completed(value, exercises) -> bool:
    """Check a ``[exercise, set_index]`` reference against ``exercises``."""
    if value is None:
        return True
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False
    name, index = value
    if not isinstance(exercises, dict) or not isinstance(name, str) or name not in exercises:
        return False
    if isinstance(index, bool) or not isinstance(index, int):
        return False
    raw = exercises[name]
    sets = raw.get("sets") if isinstance(raw, dict) else None
    return isinstance(sets, list) and 0 <= index < len(sets)


def _usable_exercises(exercises) -> bool:
    """Return ``True`` if at least one exercise survives repair."""
    if not isinstance(exercises, dict):
        return False
    for raw in exercises.values():
        sets = raw.get("sets") if isinstance(raw, dict) else None
        if isinstance(sets, list) and any(isinstance(s, dict) for s in sets):
            return True
    return False


def validate_snapshot(
    snapshot: dict,
    *,
    now: float | None = None,
    stale_after_hours: float = STALE_SESSION_HOURS,
) -> ValidationResult:
    """Classify ``snapshot`` as valid, repairable or fatal."""

    now = time.time() if now is None else now
    status = snapshot.get("status", "idle")
    active = status == "active"
    config = snapshot.get("training_config") or {}
    has_config = isinstance(config, dict) and bool(config.get("training_type"))
    exercises = snapshot.get("exercises", {})

    fatal: list[str] = []
    if active:
        if not has_config and not _usable_exercises(exercises):
            fatal.append("Active session has no training config and no exercises")
        if snapshot.get("saved_id"):
            fatal.append("Session was already saved but is still marked active")
        last_activity = snapshot.get("last_activity")
        if isinstance(last_activity, (int, float)) and not isinstance(last_activity, bool):
            idle_hours = (now - last_activity) / 3600
            if idle_hours > stale_after_hours:
                fatal.append(f"Session has been inactive for {int(idle_hours)} hours")
    if fatal:
        logging.warning("Workout session cannot be recovered: %s", "; ".join(fatal))
        return ValidationResult(False, False, fatal)

    reasons: list[str] = []
    if active and not has_config:
        reasons.append("Active session has no training config")
    reasons.extend(_config_problems(config))
    started_at = snapshot.get("started_at")
    if active and not started_at:
        reasons.append("Active session has no start time")
    elif started_at and not _non_negative_number(started_at):
        reasons.append("Start time is invalid")
    if not _non_negative_number(snapshot.get("elapsed_seconds", 0)):
        reasons.append("Elapsed time is invalid")
    reasons.extend(_exercise_problems(exercises))
    if not _valid_last_completed(snapshot.get("last_completed"), exercises):
        reasons.append("Last completed set reference is invalid")

    if reasons:
        logging.warning("Workout session needs repair: %s", "; ".join(reasons))
        return ValidationResult(False, True, reasons)
    return ValidationResult(True, False, [])


def repair_snapshot(snapshot: dict, *, now: float | None = None, **options) -> dict:
    """Return a sanitised copy of ``snapshot``.

    Empty exercises are dropped, malformed sets and config fields are
    coerced to defaults and an invalid elapsed time is reset to zero. A
    textual start time is parsed; a dangling ``last_completed`` is cleared.
    Raises
    :class:`ValidationFailure` with ``fatal=True`` if the snapshot cannot be
    repaired.
    """

    now = time.time() if now is None else now
    result = validate_snapshot(snapshot, now=now, **options)
    if result.requires_reset:
        raise ValidationFailure(result.reasons, fatal=True)
    repaired = copy.deepcopy(snapshot)
    if result.is_valid:
        return repaired

    elapsed = repaired.get("elapsed_seconds", 0)
    if not _non_negative_number(elapsed):
        elapsed = 0
    repaired["elapsed_seconds"] = int(elapsed)

    exercises = repaired.get("exercises")
    clean: dict[str, dict] = {}
    if isinstance(exercises, dict):
        for name, raw in exercises.items():
            sets = raw.get("sets") if isinstance(raw, dict) else None
            if not isinstance(sets, list):
                continue
            fixed = []
            for item in sets:
                normalized = normalize_set(item, len(fixed) + 1)
                if normalized is None:
                    continue
                normalized.is_editing = bool(item.get("is_editing", False))
                fixed.append(normalized.to_dict(include_transient=True))
            if fixed:
                clean[name] = {"name": name, "variation": raw.get("variation"), "sets": fixed}
    repaired["exercises"] = clean
    # renumbering may have moved or dropped the referenced set
    if not _valid_last_completed(repaired.get("last_completed"), clean):
        repaired["last_completed"] = None

    config = normalize_config(repaired.get("training_config")).to_dict()
    repaired["training_config"] = config
    repaired["started_at"] = to_epoch(repaired.get("started_at"))

    if repaired.get("status") == "active":
        if not config["training_type"]:
            config["training_type"] = FALLBACK_TRAINING_TYPE
        if not repaired["started_at"]:
            repaired["started_at"] = now - repaired["elapsed_seconds"]
    return repaired
