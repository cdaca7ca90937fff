"""Lifecycle of the active workout session.

A :class:`WorkoutSession` owns the ledger, the session clock and the rest
timer of one workout. Listeners registered with :meth:`subscribe` receive a
fresh snapshot after every change; snapshots are also written to the
crash-recovery files so an interrupted workout can be picked up again with
:meth:`WorkoutSession.recover`.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import datetime
from typing import Callable

from kivy.clock import Clock

from . import settings
from .errors import (
    InvalidState,
    InvalidTransition,
    NothingToSave,
    PersistenceError,
    ValidationFailure,
)
from .ledger import Ledger
from .metrics import QualityScore, summarize_session, training_quality_score
from .models import (
    ExerciseEntry,
    ExerciseSet,
    SetMetadata,
    TrainingConfig,
    WorkoutRecord,
    normalize_config,
    normalize_record,
    to_epoch,
    validate_rpe,
)
from .persistence import PersistenceAdapter
from .recommendations import SetRecommendation, get_next_set_recommendation
from .recovery import RecoveryStore
from .timers import RestTimer, SessionClock
from .validation import repair_snapshot, validate_snapshot

IDLE = "idle"
ACTIVE = "active"
COMPLETING = "completing"
COMPLETED = "completed"
TERMINATED = "terminated"
# Derived state reported while an active session is in the background
PAUSED_VISIBILITY = "paused-visibility"

STATUSES = (IDLE, ACTIVE, COMPLETING, COMPLETED, TERMINATED)


def _set_values(item: ExerciseSet) -> dict:
    return {"weight": item.weight, "reps": item.reps, "rest_time": item.rest_time}


class WorkoutSession:
    """State machine for a single workout.

    ``clock`` replaces :data:`kivy.clock.Clock` for the timers and for the
    debounced writes. Any of the numeric options left as ``None`` is read
    from :mod:`workout_tracker.settings`.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter | None = None,
        clock=None,
        recovery: RecoveryStore | None = None,
        default_rest_time: float | None = None,
        recovery_debounce: float | None = None,
        mutation_debounce: float | None = None,
        stale_after_hours: float | None = None,
        body_weight: float | None = None,
        set_seconds: float | None = None,
        weekly_volume_target: float | None = None,
        library=None,
    ):
        self.adapter = adapter
        self.recovery = recovery
        self.library = library
        self._clock = clock or Clock
        self.default_rest_time = self._option(default_rest_time, "default_rest_time")
        self.recovery_debounce = self._option(recovery_debounce, "recovery_debounce")
        self.mutation_debounce = self._option(mutation_debounce, "mutation_debounce")
        self.stale_after_hours = self._option(stale_after_hours, "stale_session_hours")
        self.body_weight = self._option(body_weight, "body_weight")
        self.set_seconds = self._option(set_seconds, "estimated_set_seconds")
        self.weekly_volume_target = self._option(
            weekly_volume_target, "weekly_volume_target"
        )

        self.session_clock = SessionClock(clock=self._clock)
        self.session_clock.bind(on_tick=self._on_clock_tick)
        self.rest_timer = RestTimer(clock=self._clock)
        self.rest_timer.bind(on_complete=self._on_rest_complete)

        self._lock = threading.RLock()
        self._listeners: list[Callable[[dict], None]] = []
        self._recovery_event = None
        self._mutation_event = None
        self._pending_mutations: list[tuple[str, int, dict]] = []
        self._clear_state()

    @staticmethod
    def _option(value, key):
        return settings.get_value(key) if value is None else value

    def _clear_state(self) -> None:
        self.session_id: str | None = None
        self.status = IDLE
        self.training_config = TrainingConfig()
        self.started_at: float | None = None
        self.ended_at: float | None = None
        self.ledger = Ledger(self.default_rest_time)
        self.last_active_route: str | None = None
        self.last_activity: float | None = None
        self.last_completed: tuple[str, int] | None = None
        self.saved_id: str | None = None
        self.visible = True
        self._pending_prefill: dict[str, tuple[SetRecommendation, dict]] = {}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def elapsed_seconds(self) -> int:
        return self.session_clock.elapsed_seconds

    @property
    def state(self) -> str:
        """``status`` plus the background sub-state of an active session."""
        if self.status == ACTIVE and not self.visible:
            return PAUSED_VISIBILITY
        return self.status

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    @property
    def can_save(self) -> bool:
        return self.ledger.completed_sets() > 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, config: TrainingConfig | dict) -> None:
        """Begin a new workout with ``config``.

        Only allowed from ``idle``; an existing session must be reset first.
        """

        with self._lock:
            if self.status != IDLE:
                raise InvalidTransition(
                    f"Cannot start a workout while one is {self.status}; reset it first",
                    self.status,
                )
            if isinstance(config, dict):
                config = TrainingConfig.from_dict(config)
            if config.is_empty:
                raise ValueError("Training config needs a training type")
            self.session_id = uuid.uuid4().hex
            self.training_config = config
            self.started_at = time.time()
            self.status = ACTIVE
            self.visible = True
            self.session_clock.reset()
            self.session_clock.start(0)
            logging.info(
                "Started %s workout %s", config.training_type, self.session_id
            )
            self._changed()

    def resume_existing(self) -> None:
        """Re-attach to the session already in memory without losing time."""

        with self._lock:
            if self.status != ACTIVE:
                raise InvalidTransition(
                    f"No active workout to resume (status is {self.status})",
                    self.status,
                )
            self.visible = True
            if not self.session_clock.running:
                self.session_clock.start()
            self.session_clock.resume()
            self._changed()

    def reset(self) -> None:
        """Discard the session, its timers and its recovery files."""

        with self._lock:
            previous = self.session_id
            self.rest_timer.cancel()
            self.session_clock.reset()
            self._cancel_event("_recovery_event")
            self._cancel_event("_mutation_event")
            self._pending_mutations.clear()
            self._clear_state()
            if self.recovery is not None:
                self.recovery.clear()
            if previous:
                logging.info("Reset workout %s", previous)
            self._notify()

    def finish(self, save: bool = True) -> str | None:
        """End the workout.

        With ``save`` the session is validated and handed to the adapter;
        the saved identifier is returned. Without it the session is
        abandoned and becomes ``terminated``.

        Raises :class:`NothingToSave` when saving a session without completed
        sets, :class:`ValidationFailure` when the session state is beyond
        repair (the session is reset) and :class:`PersistenceError` when the
        adapter fails (the session stays ``completing``).
        """

        with self._lock:
            if not save:
                if self.status not in (ACTIVE, COMPLETING):
                    raise InvalidTransition(
                        f"Cannot abandon a workout that is {self.status}", self.status
                    )
                self._terminate()
                return None
            self._require_active()
            if not self.can_save:
                raise NothingToSave("Complete at least one set before saving")

            # staleness only matters when recovering from disk
            snapshot = dict(self.snapshot(), last_activity=None)
            result = validate_snapshot(snapshot)
            if result.requires_reset:
                self.reset()
                raise ValidationFailure(result.reasons, fatal=True)
            if result.needs_repair:
                self._restore(repair_snapshot(snapshot))

            self.status = COMPLETING
            self.ended_at = time.time()
            self.session_clock.stop()
            self.rest_timer.cancel()
            # the full save supersedes queued set changes
            self._cancel_event("_mutation_event")
            self._pending_mutations.clear()
            self._notify()
            return self._save()

    def retry_save(self) -> str:
        """Repeat a save that failed with :class:`PersistenceError`."""

        with self._lock:
            if self.status != COMPLETING:
                raise InvalidTransition(
                    f"Nothing to retry while the workout is {self.status}", self.status
                )
            return self._save()

    def _save(self) -> str:
        if self.adapter is None:
            raise PersistenceError("No persistence adapter configured")
        payload = self.snapshot(include_transient=False)
        payload["status"] = COMPLETED
        payload["metrics"] = self.metrics()
        try:
            saved_id = self.adapter.save_session(payload)
        except Exception as exc:
            logging.exception("Saving workout %s failed", self.session_id)
            self._notify()
            raise PersistenceError(f"Could not save workout: {exc}") from exc
        self.saved_id = saved_id
        self.status = COMPLETED
        if self.recovery is not None:
            self.recovery.clear()
        logging.info("Saved workout %s as %s", self.session_id, saved_id)
        self._notify()
        return saved_id

    def _terminate(self) -> None:
        self.status = TERMINATED
        self.ended_at = self.ended_at or time.time()
        self.session_clock.stop()
        self.rest_timer.cancel()
        self._cancel_event("_recovery_event")
        self._cancel_event("_mutation_event")
        self._pending_mutations.clear()
        if self.recovery is not None:
            self.recovery.clear()
        logging.info("Abandoned workout %s without saving", self.session_id)
        self._notify()

    def _require_active(self) -> None:
        if self.status != ACTIVE:
            raise InvalidState(
                f"Workout is {self.status}, not active", self.status
            )

    # ------------------------------------------------------------------
    # Exercises and sets
    # ------------------------------------------------------------------
    def add_exercise(
        self,
        name: str,
        initial_set: ExerciseSet | None = None,
        variation: str | None = None,
    ) -> ExerciseEntry:
        with self._lock:
            self._require_active()
            entry = self.ledger.add_exercise(name, initial_set, variation)
            self._queue_mutation(name, 0, {"added": True, **entry.sets[0].to_dict()})
            self._changed()
            return entry

    def remove_exercise(self, name: str) -> bool:
        with self._lock:
            self._require_active()
            removed = self.ledger.remove_exercise(name)
            if removed:
                self._pending_prefill.pop(name, None)
                if self.last_completed and self.last_completed[0] == name:
                    self.last_completed = None
                self._changed()
            return removed

    def add_set(self, name: str, new_set: ExerciseSet | None = None) -> ExerciseSet:
        """Append a set to ``name``.

        Without ``new_set`` a pending recommendation from the last completed
        set is used, otherwise the previous set is copied.
        """

        with self._lock:
            self._require_active()
            self.ledger.get(name)
            if new_set is None and name in self._pending_prefill:
                rec, previous = self._pending_prefill.pop(name)
                new_set = ExerciseSet(
                    weight=rec.weight,
                    reps=rec.reps,
                    rest_time=rec.rest_time,
                    metadata=SetMetadata(auto_adjusted=True, previous_values=previous),
                )
            added = self.ledger.add_set(name, new_set)
            self._queue_mutation(name, added.set_number - 1, {"added": True, **added.to_dict()})
            self._changed()
            return added

    def update_set(self, name: str, index: int, **changes) -> ExerciseSet:
        with self._lock:
            self._require_active()
            updated = self.ledger.update_set(name, index, **changes)
            patch = {
                key: (value.to_dict() if isinstance(value, SetMetadata) else value)
                for key, value in changes.items()
                if key != "is_editing"
            }
            if patch:
                self._queue_mutation(name, index, patch)
            self._changed()
            return updated

    def remove_set(self, name: str, index: int) -> bool:
        """Delete a set. Returns ``True`` if the exercise went with it."""

        with self._lock:
            self._require_active()
            exercise_removed = self.ledger.remove_set(name, index)
            if self.last_completed and self.last_completed[0] == name:
                done_index = self.last_completed[1]
                if exercise_removed or done_index == index:
                    self.last_completed = None
                elif index < done_index:
                    self.last_completed = (name, done_index - 1)
            if exercise_removed:
                self._pending_prefill.pop(name, None)
            self._queue_mutation(name, index, {"deleted": True})
            self._changed()
            return exercise_removed

    def complete_set(
        self,
        name: str,
        index: int,
        rpe: float | None = None,
        start_rest: bool = True,
    ) -> SetRecommendation:
        """Mark a set completed and return the recommendation for the next one.

        With an ``rpe`` rating an uncompleted following set is pre-filled with
        the recommendation. When there is no following set the recommendation
        is kept for the next :meth:`add_set` call. The rest timer is started
        with the recommended rest unless ``start_rest`` is false.
        """

        with self._lock:
            self._require_active()
            validate_rpe(rpe)
            current = self.ledger.get_set(name, index)
            done = self.ledger.update_set(
                name,
                index,
                completed=True,
                is_editing=False,
                rpe=current.rpe if rpe is None else rpe,
            )
            rec = get_next_set_recommendation(done, rpe)
            sets = self.ledger.get(name).sets
            if rpe is not None:
                if index + 1 < len(sets):
                    following = sets[index + 1]
                    if not following.completed:
                        metadata = SetMetadata(True, _set_values(following))
                        self.ledger.update_set(
                            name,
                            index + 1,
                            weight=rec.weight,
                            reps=rec.reps,
                            rest_time=rec.rest_time,
                            metadata=metadata,
                        )
                        self._queue_mutation(
                            name,
                            index + 1,
                            {**_set_values(following), "metadata": metadata.to_dict()},
                        )
                else:
                    self._pending_prefill[name] = (rec, _set_values(done))
            self.last_completed = (name, index)
            self._queue_mutation(name, index, {"completed": True, "rpe": done.rpe})
            if start_rest:
                self.rest_timer.start(rec.rest_time)
            self._changed()
            return rec

    def pending_prefill(self, name: str) -> SetRecommendation | None:
        item = self._pending_prefill.get(name)
        return item[0] if item else None

    # ------------------------------------------------------------------
    # Rest timer
    # ------------------------------------------------------------------
    def adjust_rest_timer(self, seconds: float) -> None:
        """Add time to (or remove time from) the running rest countdown."""
        with self._lock:
            self.rest_timer.adjust(seconds)
            self._notify()

    def skip_rest(self) -> None:
        with self._lock:
            self.rest_timer.cancel()
            self._notify()

    def _on_rest_complete(self, timer) -> None:
        with self._lock:
            logging.info("Rest finished for workout %s", self.session_id)
            self._notify()

    def _on_clock_tick(self, clock, elapsed) -> None:
        with self._lock:
            self._schedule_recovery()
            self._notify()

    # ------------------------------------------------------------------
    # Visibility and navigation
    # ------------------------------------------------------------------
    def set_visibility(self, visible: bool) -> None:
        if visible:
            self.on_resume()
        else:
            self.on_pause()

    def on_pause(self) -> bool:
        """Stop counting while the app is in the background.

        The recovery snapshot is written right away since the process may
        not come back.
        """

        with self._lock:
            self.visible = False
            self.session_clock.pause()
            if self.status == ACTIVE:
                self._cancel_event("_recovery_event")
                self._write_recovery()
            self._notify()
        return True

    def on_resume(self) -> None:
        with self._lock:
            self.visible = True
            # no-op unless the clock is running
            self.session_clock.resume()
            self._notify()

    def set_route(self, route: str | None) -> None:
        """Remember where the user was so the UI can return there."""
        with self._lock:
            self.last_active_route = route
            self._schedule_recovery()

    # ------------------------------------------------------------------
    # Subscribers and snapshots
    # ------------------------------------------------------------------
    def subscribe(self, listener: Callable[[dict], None]) -> Callable[[], None]:
        """Call ``listener`` with a snapshot after every change.

        Returns a function removing the listener again.
        """

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logging.exception("Workout session listener %r failed", listener)

    def _changed(self) -> None:
        self.last_activity = time.time()
        self._schedule_recovery()
        self._notify()

    def snapshot(self, include_transient: bool = True) -> dict:
        """Return a JSON-serialisable view of the session."""

        return {
            "session_id": self.session_id,
            "status": self.status,
            "state": self.state,
            "training_config": self.training_config.to_dict(),
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "elapsed_seconds": self.elapsed_seconds,
            "exercises": self.ledger.to_dict(include_transient),
            "last_active_route": self.last_active_route,
            "last_activity": self.last_activity,
            "last_completed": list(self.last_completed) if self.last_completed else None,
            "saved_id": self.saved_id,
            "rest_timer": {
                "active": self.rest_timer.active,
                "remaining": self.rest_timer.remaining,
                "duration": self.rest_timer.duration,
            },
        }

    def to_record(self) -> WorkoutRecord | None:
        """Return the session as a history record for the metrics module."""
        if self.started_at is None:
            return None
        data = self.snapshot(include_transient=False)
        return normalize_record(data)

    def metrics(self) -> dict:
        started = datetime.fromtimestamp(self.started_at) if self.started_at else None
        return summarize_session(
            self.ledger.sets_by_exercise(),
            duration_minutes=self.elapsed_seconds / 60,
            started_at=started,
            body_weight=self.body_weight,
            library=self.library,
            set_seconds=self.set_seconds,
        )

    def quality_score(self, records, now: datetime | None = None) -> QualityScore:
        """Score the training history in ``records`` against the weekly target."""
        return training_quality_score(
            records,
            now=now,
            target_volume=self.weekly_volume_target,
            body_weight=self.body_weight,
            library=self.library,
        )

    def summary(self) -> str:
        """Return a formatted text summary of the session."""

        lines = [f"Workout: {self.training_config.training_type or 'Unconfigured'}"]
        if self.started_at is not None:
            start = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.started_at))
            lines.append(f"Start: {start}")
        m, s = divmod(int(self.elapsed_seconds), 60)
        lines.append(f"Duration: {m}m {s}s")
        for entry in self.ledger:
            title = entry.name if not entry.variation else f"{entry.name} ({entry.variation})"
            lines.append(f"\n{title}")
            for item in entry.sets:
                mark = "x" if item.completed else " "
                text = f"  [{mark}] Set {item.set_number}: {item.weight:g} x {item.reps}"
                if item.rpe is not None:
                    text += f" @ RPE {item.rpe:g}"
                lines.append(text)
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Debounced writes
    # ------------------------------------------------------------------
    def _cancel_event(self, attr: str) -> None:
        event = getattr(self, attr)
        if event is not None:
            event.cancel()
            setattr(self, attr, None)

    def _schedule_recovery(self) -> None:
        if self.recovery is None or self.status != ACTIVE:
            return
        self._cancel_event("_recovery_event")
        self._recovery_event = self._clock.schedule_once(
            self._write_recovery, self.recovery_debounce
        )

    def _write_recovery(self, dt=None) -> None:
        with self._lock:
            self._recovery_event = None
            if self.recovery is not None and self.status == ACTIVE:
                self.recovery.save(self.snapshot())

    def _queue_mutation(self, name: str, index: int, patch: dict) -> None:
        if self.session_id is None or self.adapter is None:
            return
        self._pending_mutations.append((name, index, patch))
        self._cancel_event("_mutation_event")
        self._mutation_event = self._clock.schedule_once(
            self._flush_scheduled, self.mutation_debounce
        )

    def _flush_scheduled(self, dt) -> None:
        self._mutation_event = None
        try:
            self.flush_mutations()
        except PersistenceError:
            logging.warning(
                "Keeping %d set changes queued for workout %s",
                len(self._pending_mutations),
                self.session_id,
            )

    @property
    def pending_mutations(self) -> list[tuple[str, int, dict]]:
        return list(self._pending_mutations)

    def flush_mutations(self) -> int:
        """Send queued set changes to the adapter now.

        Returns the number of changes sent. On failure the unsent changes
        stay queued and :class:`PersistenceError` is raised.
        """

        with self._lock:
            self._cancel_event("_mutation_event")
            if self.adapter is None or not self._pending_mutations:
                return 0
            sent = 0
            while self._pending_mutations:
                name, index, patch = self._pending_mutations[0]
                try:
                    self.adapter.save_set_mutation(self.session_id, name, index, patch)
                except Exception as exc:
                    logging.exception("Saving set change of '%s' failed", name)
                    raise PersistenceError(f"Could not save set change: {exc}") from exc
                self._pending_mutations.pop(0)
                sent += 1
            return sent

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    def _restore(self, data: dict) -> None:
        self.rest_timer.cancel()
        self.session_id = data.get("session_id") or uuid.uuid4().hex
        self.training_config = normalize_config(data.get("training_config"))
        self.started_at = to_epoch(data.get("started_at"))
        self.ended_at = None
        self.ledger = Ledger.from_dict(data.get("exercises") or {}, self.default_rest_time)
        self.last_active_route = data.get("last_active_route")
        last = data.get("last_completed")
        self.last_completed = None
        if isinstance(last, (list, tuple)) and len(last) == 2:
            name, index = last
            if (
                isinstance(name, str)
                and name in self.ledger
                and isinstance(index, int)
                and 0 <= index < len(self.ledger.get(name).sets)
            ):
                self.last_completed = (name, index)
        self.saved_id = None
        self.status = ACTIVE
        self.visible = True
        self.last_activity = time.time()
        self.session_clock.reset()
        self.session_clock.start(int(data.get("elapsed_seconds") or 0))

    @classmethod
    def from_snapshot(cls, snapshot: dict, now: float | None = None, **kwargs) -> "WorkoutSession":
        """Build an active session from ``snapshot``.

        The snapshot is validated and repaired first. Raises
        :class:`ValidationFailure` with ``fatal=True`` if that is not
        possible.
        """

        session = cls(**kwargs)
        snapshot = dict(snapshot, status=ACTIVE)
        result = validate_snapshot(
            snapshot, now=now, stale_after_hours=session.stale_after_hours
        )
        if result.requires_reset:
            raise ValidationFailure(result.reasons, fatal=True)
        if result.needs_repair:
            snapshot = repair_snapshot(
                snapshot, now=now, stale_after_hours=session.stale_after_hours
            )
            logging.info("Repaired workout %s", snapshot.get("session_id"))
        session._restore(snapshot)
        return session

    @classmethod
    def recover(
        cls,
        recovery: RecoveryStore | None = None,
        now: float | None = None,
        **kwargs,
    ) -> "WorkoutSession | None":
        """Return the session left behind in the recovery files, if any.

        Files of sessions that were not running, or that cannot be repaired,
        are removed. In the latter case :class:`ValidationFailure` is raised
        so the caller can explain why the workout is gone.
        """

        store = recovery or RecoveryStore()
        data = store.load()
        if data is None:
            return None
        if data.get("status") not in (ACTIVE, COMPLETING):
            store.clear()
            return None
        try:
            session = cls.from_snapshot(data, now=now, recovery=store, **kwargs)
        except ValidationFailure:
            store.clear()
            raise
        logging.info("Recovered workout %s", session.session_id)
        return session
