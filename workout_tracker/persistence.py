"""Persistence boundary of the session engine.

The engine only talks to a :class:`PersistenceAdapter`. Two implementations
are provided: :class:`InMemoryAdapter` for tests and previews and
:class:`SQLiteAdapter` which stores history in a local database.

History leaves the adapters as :class:`WorkoutRecord` values produced by
:func:`normalize_record`, so callers never see raw rows.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from . import DATA_DIR
from .models import WorkoutRecord, normalize_record

DEFAULT_DB_PATH = DATA_DIR / "workouts.db"


@dataclass(frozen=True)
class HistoryFilter:
    """Restricts :meth:`PersistenceAdapter.load_history` results."""

    since: datetime | None = None
    until: datetime | None = None
    training_type: str | None = None
    limit: int | None = None

    def matches(self, record: WorkoutRecord) -> bool:
        if self.since is not None and record.started_at < self.since:
            return False
        if self.until is not None and record.started_at > self.until:
            return False
        if self.training_type and record.training_type != self.training_type:
            return False
        return True


def _new_session_id() -> str:
    return uuid.uuid4().hex


class PersistenceAdapter:
    """Interface implemented by storage backends."""

    def save_session(self, snapshot: dict) -> str:
        """Store a finished session and return its identifier."""
        raise NotImplementedError

    def save_set_mutation(
        self, session_id: str, exercise_name: str, set_index: int, patch: dict
    ) -> bool:
        """Record a change to one set of a running session."""
        raise NotImplementedError

    def load_history(self, history_filter: HistoryFilter | None = None) -> list[WorkoutRecord]:
        """Return saved sessions, most recent first."""
        raise NotImplementedError


class InMemoryAdapter(PersistenceAdapter):
    """Adapter keeping everything in dictionaries.

    Payloads are deep-copied in both directions. Assigning an exception to
    :attr:`error` makes every call raise it until it is cleared again.
    """

    def __init__(self, history: list[dict] | None = None):
        self.sessions: dict[str, dict] = {}
        self.mutations: list[dict] = []
        self.error: Exception | None = None
        for item in history or []:
            self.sessions[item.get("session_id") or _new_session_id()] = copy.deepcopy(item)

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    def save_session(self, snapshot: dict) -> str:
        self._check()
        session_id = snapshot.get("session_id") or _new_session_id()
        stored = copy.deepcopy(snapshot)
        stored["session_id"] = session_id
        self.sessions[session_id] = stored
        return session_id

    def save_set_mutation(self, session_id, exercise_name, set_index, patch) -> bool:
        self._check()
        self.mutations.append(
            {
                "session_id": session_id,
                "exercise_name": exercise_name,
                "set_index": set_index,
                "patch": copy.deepcopy(patch),
            }
        )
        return True

    def load_history(self, history_filter=None) -> list[WorkoutRecord]:
        self._check()
        history_filter = history_filter or HistoryFilter()
        records = []
        for data in self.sessions.values():
            record = normalize_record(copy.deepcopy(data))
            if record is not None and history_filter.matches(record):
                records.append(record)
        records.sort(key=lambda r: r.started_at, reverse=True)
        if history_filter.limit is not None:
            records = records[: history_filter.limit]
        return records


SCHEMA = """
CREATE TABLE IF NOT EXISTS workout_sessions (
    id TEXT PRIMARY KEY,
    training_type TEXT,
    training_config_json TEXT,
    started_at REAL NOT NULL,
    ended_at REAL,
    elapsed_seconds INTEGER NOT NULL DEFAULT 0,
    metrics_json TEXT,
    deleted INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS workout_sets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL REFERENCES workout_sessions(id),
    exercise_name TEXT NOT NULL,
    exercise_position INTEGER NOT NULL,
    variation TEXT,
    set_number INTEGER NOT NULL,
    weight REAL NOT NULL,
    reps INTEGER NOT NULL,
    rest_time REAL NOT NULL,
    completed INTEGER NOT NULL,
    rpe REAL,
    metadata_json TEXT
);
CREATE TABLE IF NOT EXISTS workout_set_mutations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    exercise_name TEXT NOT NULL,
    set_index INTEGER NOT NULL,
    patch_json TEXT NOT NULL,
    created_at REAL NOT NULL
);
"""


class SQLiteAdapter(PersistenceAdapter):
    """Adapter storing sessions in a SQLite database at ``db_path``."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        if not self._initialized:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with sqlite3.connect(str(self.db_path)) as conn:
                conn.executescript(SCHEMA)
            self._initialized = True
        return sqlite3.connect(str(self.db_path))

    def save_session(self, snapshot: dict) -> str:
        session_id = snapshot.get("session_id") or _new_session_id()
        config = snapshot.get("training_config") or {}
        started_at = snapshot.get("started_at") or time.time()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM workout_sets WHERE session_id = ?", (session_id,))
            cursor.execute(
                """
                INSERT OR REPLACE INTO workout_sessions
                    (id, training_type, training_config_json, started_at, ended_at,
                     elapsed_seconds, metrics_json)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    config.get("training_type"),
                    json.dumps(config),
                    started_at,
                    snapshot.get("ended_at") or time.time(),
                    int(snapshot.get("elapsed_seconds") or 0),
                    json.dumps(snapshot.get("metrics")) if snapshot.get("metrics") else None,
                ),
            )
            for ex_pos, (name, entry) in enumerate(snapshot.get("exercises", {}).items(), 1):
                for item in entry.get("sets", []):
                    cursor.execute(
                        """
                        INSERT INTO workout_sets
                            (session_id, exercise_name, exercise_position, variation,
                             set_number, weight, reps, rest_time, completed, rpe,
                             metadata_json)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            session_id,
                            name,
                            ex_pos,
                            entry.get("variation"),
                            item.get("set_number"),
                            item.get("weight"),
                            item.get("reps"),
                            item.get("rest_time"),
                            int(bool(item.get("completed"))),
                            item.get("rpe"),
                            json.dumps(item["metadata"]) if item.get("metadata") else None,
                        ),
                    )
        logging.info("Saved workout session %s to %s", session_id, self.db_path)
        return session_id

    def save_set_mutation(self, session_id, exercise_name, set_index, patch) -> bool:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO workout_set_mutations
                    (session_id, exercise_name, set_index, patch_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (session_id, exercise_name, set_index, json.dumps(patch), time.time()),
            )
        return True

    def get_set_mutations(self, session_id: str) -> list[dict]:
        """Return queued set changes of ``session_id`` in insertion order."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT exercise_name, set_index, patch_json
                FROM workout_set_mutations
                WHERE session_id = ?
                ORDER BY id
                """,
                (session_id,),
            ).fetchall()
        return [
            {"exercise_name": name, "set_index": idx, "patch": json.loads(patch)}
            for name, idx, patch in rows
        ]

    def load_history(self, history_filter=None) -> list[WorkoutRecord]:
        history_filter = history_filter or HistoryFilter()
        query = (
            "SELECT id, training_type, training_config_json, started_at, elapsed_seconds "
            "FROM workout_sessions WHERE deleted = 0"
        )
        params: list = []
        if history_filter.since is not None:
            query += " AND started_at >= ?"
            params.append(history_filter.since.timestamp())
        if history_filter.until is not None:
            query += " AND started_at <= ?"
            params.append(history_filter.until.timestamp())
        if history_filter.training_type:
            query += " AND training_type = ?"
            params.append(history_filter.training_type)
        query += " ORDER BY started_at DESC"
        if history_filter.limit is not None:
            query += " LIMIT ?"
            params.append(history_filter.limit)

        records = []
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            for session_id, training_type, config_json, started, elapsed in cursor.fetchall():
                cursor.execute(
                    """
                    SELECT exercise_name, weight, reps, rest_time, completed, rpe, metadata_json
                    FROM workout_sets
                    WHERE session_id = ?
                    ORDER BY exercise_position, set_number
                    """,
                    (session_id,),
                )
                sets = [
                    {
                        "exercise_name": name,
                        "weight": weight,
                        "reps": reps,
                        "rest_time": rest,
                        "completed": bool(completed),
                        "rpe": rpe,
                        "metadata": json.loads(meta) if meta else None,
                    }
                    for name, weight, reps, rest, completed, rpe, meta in cursor.fetchall()
                ]
                record = normalize_record(
                    {
                        "session_id": session_id,
                        "started_at": started,
                        "elapsed_seconds": elapsed,
                        "training_type": training_type,
                        "training_config": json.loads(config_json) if config_json else {},
                        "exercises": sets,
                    }
                )
                if record is not None:
                    records.append(record)
        return records

    def delete_session(self, session_id: str) -> None:
        """Soft-delete a saved session."""

        with self._connect() as conn:
            conn.execute(
                "UPDATE workout_sessions SET deleted = 1 WHERE id = ?", (session_id,)
            )
