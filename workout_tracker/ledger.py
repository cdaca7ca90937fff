"""Ordered collection of exercises and their sets for one session."""

from __future__ import annotations

from dataclasses import replace

from . import DEFAULT_REPS, DEFAULT_REST_TIME, DEFAULT_WEIGHT
from .errors import DuplicateExercise, NotFound
from .models import ExerciseEntry, ExerciseSet, validate_rpe, validate_set_values

# Fields of a set that callers may change through :meth:`Ledger.update_set`
EDITABLE_FIELDS = (
    "weight",
    "reps",
    "rest_time",
    "completed",
    "is_editing",
    "rpe",
    "metadata",
)


class Ledger:
    """Exercises keyed by name, each holding sets numbered ``1..N``.

    Every mutation keeps the numbering contiguous. Removing the last set of
    an exercise removes the exercise itself so an entry never has zero sets
    once it has been given any.
    """

    def __init__(self, default_rest_time: float = DEFAULT_REST_TIME):
        self.default_rest_time = default_rest_time
        self._entries: dict[str, ExerciseEntry] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.values())

    @property
    def names(self) -> list[str]:
        return list(self._entries)

    def get(self, name: str) -> ExerciseEntry:
        try:
            return self._entries[name]
        except KeyError:
            raise NotFound(f"Exercise '{name}' not found") from None

    def get_set(self, name: str, index: int) -> ExerciseSet:
        sets = self.get(name).sets
        if not 0 <= index < len(sets):
            raise NotFound(f"Set {index} of '{name}' not found")
        return sets[index]

    def completed_sets(self) -> int:
        return sum(1 for entry in self for s in entry.sets if s.completed)

    def default_set(self) -> ExerciseSet:
        return ExerciseSet(
            weight=DEFAULT_WEIGHT,
            reps=DEFAULT_REPS,
            rest_time=self.default_rest_time,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_exercise(
        self,
        name: str,
        initial_set: ExerciseSet | None = None,
        variation: str | None = None,
    ) -> ExerciseEntry:
        """Append ``name`` with one set.

        Names are compared exactly, so ``"Bench Press"`` and ``"bench press"``
        are distinct exercises.
        """

        if not name:
            raise ValueError("Exercise name must not be empty")
        if name in self._entries:
            raise DuplicateExercise(name)
        first = replace(initial_set) if initial_set else self.default_set()
        first.set_number = 1
        entry = ExerciseEntry(name=name, sets=[first], variation=variation)
        self._entries[name] = entry
        return entry

    def remove_exercise(self, name: str) -> bool:
        """Remove ``name`` if present. Returns ``True`` if it existed."""

        return self._entries.pop(name, None) is not None

    def add_set(self, name: str, new_set: ExerciseSet | None = None) -> ExerciseSet:
        """Append a set to ``name``.

        Without ``new_set`` the values of the previous set are copied
        (uncompleted), or the defaults are used when there is none.
        """

        entry = self.get(name)
        if new_set is not None:
            added = replace(new_set)
        elif entry.sets:
            last = entry.sets[-1]
            added = ExerciseSet(
                weight=last.weight, reps=last.reps, rest_time=last.rest_time
            )
        else:
            added = self.default_set()
        entry.sets.append(added)
        self._renumber(entry)
        return added

    def update_set(self, name: str, index: int, **changes) -> ExerciseSet:
        """Apply ``changes`` to a set and return it.

        The new values are checked before anything is modified, so a failed
        update leaves the set untouched.
        """

        target = self.get_set(name, index)
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown set fields: {', '.join(sorted(unknown))}")
        validate_set_values(
            changes.get("weight", target.weight),
            changes.get("reps", target.reps),
            changes.get("rest_time", target.rest_time),
        )
        validate_rpe(changes.get("rpe", target.rpe))
        for key, value in changes.items():
            setattr(target, key, value)
        return target

    def remove_set(self, name: str, index: int) -> bool:
        """Delete a set and renumber the rest.

        Returns ``True`` if the exercise was removed because it ran out of
        sets.
        """

        entry = self.get(name)
        self.get_set(name, index)
        del entry.sets[index]
        if not entry.sets:
            del self._entries[name]
            return True
        self._renumber(entry)
        return False

    def clear(self) -> None:
        self._entries.clear()

    @staticmethod
    def _renumber(entry: ExerciseEntry) -> None:
        for number, item in enumerate(entry.sets, 1):
            item.set_number = number

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    def to_dict(self, include_transient: bool = False) -> dict[str, dict]:
        return {
            name: entry.to_dict(include_transient)
            for name, entry in self._entries.items()
        }

    def sets_by_exercise(self) -> dict[str, list[ExerciseSet]]:
        return {name: list(entry.sets) for name, entry in self._entries.items()}

    @classmethod
    def from_dict(cls, data: dict, default_rest_time: float = DEFAULT_REST_TIME) -> "Ledger":
        ledger = cls(default_rest_time)
        for name, raw in data.items():
            sets = [ExerciseSet.from_dict(s) for s in raw.get("sets", [])]
            if not sets:
                continue
            entry = ExerciseEntry(name=name, sets=sets, variation=raw.get("variation"))
            cls._renumber(entry)
            ledger._entries[name] = entry
        return ledger
