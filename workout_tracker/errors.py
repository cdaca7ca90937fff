"""Errors raised by the workout session engine."""


class WorkoutError(Exception):
    """Base class for all engine errors."""


class InvalidTransition(WorkoutError):
    """Operation attempted in a lifecycle state that forbids it."""

    def __init__(self, message: str, status: str | None = None):
        super().__init__(message)
        self.status = status


class InvalidState(InvalidTransition):
    """Mutation attempted while the session is not active."""


class NotFound(WorkoutError, LookupError):
    """Referenced exercise or set does not exist."""


class DuplicateExercise(WorkoutError, ValueError):
    """An exercise with the same name is already in the ledger."""

    def __init__(self, name: str):
        super().__init__(f"Exercise '{name}' is already part of this workout")
        self.name = name


class NothingToSave(WorkoutError):
    """Saving was requested for a session without completed sets."""


class ValidationFailure(WorkoutError):
    """A session snapshot failed validation.

    ``fatal`` is ``True`` when the snapshot could not be repaired and the
    session was reset.
    """

    def __init__(self, reasons: list[str], fatal: bool = False):
        super().__init__("; ".join(reasons) or "Invalid workout session")
        self.reasons = list(reasons)
        self.fatal = fatal


class PersistenceError(WorkoutError):
    """The persistence adapter failed or timed out."""
