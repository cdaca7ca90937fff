"""Exercise catalogue used by the metrics aggregator.

The catalogue answers which muscle groups an exercise trains, whether it is
a compound, isolation, bodyweight or isometric movement and, for bodyweight
exercises, which fraction of body weight is moved per rep.
"""

from __future__ import annotations

from dataclasses import dataclass

PRIMARY_GROUPS = ("chest", "back", "legs", "shoulders", "arms", "core")


@dataclass(frozen=True)
class ExerciseInfo:
    name: str
    primary_muscle_groups: tuple[str, ...] = ()
    secondary_muscle_groups: tuple[str, ...] = ()
    is_compound: bool = False
    is_bodyweight: bool = False
    is_isometric: bool = False
    load_factor: float = 1.0

    @property
    def category(self) -> str:
        """Return the composition bucket for this exercise."""
        if self.is_isometric:
            return "isometric"
        if self.is_bodyweight:
            return "bodyweight"
        if self.is_compound:
            return "compound"
        return "isolation"

    def estimated_load(self, body_weight: float) -> float:
        """Return the load moved per rep for a bodyweight exercise."""
        return body_weight * self.load_factor


def _info(name, primary, secondary=(), **flags) -> ExerciseInfo:
    return ExerciseInfo(name, tuple(primary), tuple(secondary), **flags)


DEFAULT_LIBRARY: dict[str, ExerciseInfo] = {
    info.name: info
    for info in (
        _info("Bench Press", ["chest"], ["triceps", "shoulders"], is_compound=True),
        _info("Incline Bench Press", ["chest", "shoulders"], ["triceps"], is_compound=True),
        _info("Dumbbell Fly", ["chest"]),
        _info("Push-up", ["chest"], ["triceps", "shoulders"], is_compound=True,
              is_bodyweight=True, load_factor=0.64),
        _info("Dips", ["chest", "triceps"], ["shoulders"], is_compound=True,
              is_bodyweight=True, load_factor=0.96),
        _info("Pull-up", ["back", "lats"], ["biceps"], is_compound=True,
              is_bodyweight=True, load_factor=1.0),
        _info("Barbell Row", ["back"], ["biceps"], is_compound=True),
        _info("Lat Pulldown", ["back", "lats"], ["biceps"], is_compound=True),
        _info("Deadlift", ["back", "hamstrings", "glutes"], ["forearms"], is_compound=True),
        _info("Squat", ["legs", "quads", "glutes"], ["core"], is_compound=True),
        _info("Lunge", ["legs", "quads", "glutes"], is_compound=True),
        _info("Leg Press", ["legs", "quads"], ["glutes"], is_compound=True),
        _info("Leg Extension", ["quads"]),
        _info("Leg Curl", ["hamstrings"]),
        _info("Calf Raise", ["calves"]),
        _info("Overhead Press", ["shoulders"], ["triceps"], is_compound=True),
        _info("Lateral Raise", ["shoulders"]),
        _info("Bicep Curl", ["biceps"], ["forearms"]),
        _info("Tricep Extension", ["triceps"]),
        _info("Plank", ["core", "abs"], ["shoulders"], is_bodyweight=True,
              is_isometric=True, load_factor=0.0),
        _info("Crunch", ["core", "abs"], is_bodyweight=True, load_factor=0.3),
    )
}

# Keyword fallbacks for exercises missing from the catalogue
_KEYWORD_GROUPS = (
    (("bench", "chest", "fly", "push-up", "pushup"), "chest"),
    (("overhead", "shoulder", "lateral", "military", "delt"), "shoulders"),
    (("row", "pull", "lat", "deadlift", "back"), "back"),
    (("squat", "lunge", "leg", "calf", "glute", "hamstring", "quad"), "legs"),
    (("curl", "bicep", "tricep", "arm"), "arms"),
    (("plank", "crunch", "ab", "core", "sit-up"), "core"),
)

# Sub-muscles folded onto the six primary groups for balance charts
MUSCLE_TO_GROUP = {
    "lats": "back",
    "traps": "back",
    "lower back": "back",
    "quads": "legs",
    "hamstrings": "legs",
    "glutes": "legs",
    "calves": "legs",
    "biceps": "arms",
    "triceps": "arms",
    "forearms": "arms",
    "abs": "core",
    "obliques": "core",
}


def infer_muscle_group(name: str) -> str:
    lowered = name.lower()
    for keywords, group in _KEYWORD_GROUPS:
        if any(word in lowered for word in keywords):
            return group
    return "other"


def get_exercise_details(
    name: str, library: dict[str, ExerciseInfo] | None = None
) -> ExerciseInfo:
    """Return catalogue data for ``name``.

    Exact names win over case-insensitive matches. Unknown exercises get a
    single muscle group guessed from their name.
    """

    library = DEFAULT_LIBRARY if library is None else library
    info = library.get(name)
    if info is not None:
        return info
    lowered = name.lower()
    for key, candidate in library.items():
        if key.lower() == lowered:
            return candidate
    return ExerciseInfo(name, (infer_muscle_group(name),))


def primary_group(muscle: str) -> str:
    """Map a muscle to one of :data:`PRIMARY_GROUPS` (or ``"other"``)."""
    muscle = muscle.lower()
    if muscle in PRIMARY_GROUPS:
        return muscle
    return MUSCLE_TO_GROUP.get(muscle, "other")
