import os
import sys
from pathlib import Path

import pytest

# Kivy reads these on import
os.environ.setdefault("KIVY_NO_ARGS", "1")
os.environ.setdefault("KIVY_NO_FILELOG", "1")
os.environ.setdefault("KIVY_NO_CONFIG", "1")
os.environ.setdefault("KIVY_LOG_MODE", "PYTHON")

sys.path.append(str(Path(__file__).resolve().parents[1]))

from workout_tracker import settings
from workout_tracker.models import TrainingConfig
from workout_tracker.persistence import InMemoryAdapter
from workout_tracker.recovery import RecoveryStore
from workout_tracker.workout_session import WorkoutSession


class FakeEvent:
    def __init__(self, clock, callback, timeout, repeat):
        self.clock = clock
        self.callback = callback
        self.timeout = timeout
        self.repeat = repeat
        self.due = clock.now + timeout
        self.cancelled = False

    def cancel(self):
        self.cancelled = True
        if self in self.clock.events:
            self.clock.events.remove(self)


class FakeClock:
    """Manually driven replacement for ``kivy.clock.Clock``."""

    def __init__(self):
        self.now = 0.0
        self.events: list[FakeEvent] = []

    def schedule_interval(self, callback, timeout):
        event = FakeEvent(self, callback, timeout, repeat=True)
        self.events.append(event)
        return event

    def schedule_once(self, callback, timeout=0):
        event = FakeEvent(self, callback, timeout, repeat=False)
        self.events.append(event)
        return event

    def advance(self, seconds):
        """Run every callback that falls due within ``seconds``."""
        target = self.now + seconds
        while True:
            due = [e for e in self.events if e.due <= target]
            if not due:
                break
            event = min(due, key=lambda e: e.due)
            self.now = event.due
            if event.repeat:
                event.due += event.timeout
            else:
                self.events.remove(event)
            event.callback(event.timeout)
        self.now = target

    def pending(self, callback_name: str) -> int:
        return sum(1 for e in self.events if e.callback.__name__ == callback_name)


@pytest.fixture(autouse=True)
def settings_file(tmp_path, monkeypatch):
    """Keep settings reads and writes inside the test's temp directory."""
    path = tmp_path / "settings.json"
    monkeypatch.setattr(settings, "SETTINGS_PATH", path)
    settings.reset_cache()
    yield path
    settings.reset_cache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def adapter():
    return InMemoryAdapter()


@pytest.fixture
def recovery(tmp_path):
    return RecoveryStore(tmp_path / "session_recovery")


@pytest.fixture
def session(clock, adapter, recovery):
    return WorkoutSession(adapter=adapter, clock=clock, recovery=recovery)


@pytest.fixture
def active_session(session):
    session.start(TrainingConfig(training_type="strength", duration=30))
    return session
