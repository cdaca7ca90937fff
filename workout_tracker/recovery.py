"""Crash-recovery files for the active workout session.

The same snapshot is written to two files, ``<base>_1.json`` and
``<base>_2.json``. Loading tries them in order, so an interrupted write of
the first file still leaves a readable copy in the second.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from . import DATA_DIR

# Directory for persisting in-progress session state.
RECOVERY_BASE = DATA_DIR / "session_recovery"


class RecoveryStore:
    def __init__(self, base: Path | str = RECOVERY_BASE):
        self.base = Path(base)

    @property
    def paths(self) -> tuple[Path, Path]:
        return (
            self.base.with_name(self.base.name + "_1.json"),
            self.base.with_name(self.base.name + "_2.json"),
        )

    def save(self, snapshot: dict) -> bool:
        """Write ``snapshot`` to both recovery files.

        Returns ``False`` if the files could not be written; the failure is
        logged and the session carries on.
        """

        payload = json.dumps(snapshot)
        try:
            self.base.parent.mkdir(parents=True, exist_ok=True)
            for path in self.paths:
                path.write_text(payload, encoding="utf-8")
        except OSError:
            logging.exception("Could not write recovery files for %s", self.base)
            return False
        return True

    def load(self) -> dict | None:
        """Return the first readable snapshot or ``None``."""

        for path in self.paths:
            try:
                if not path.exists():
                    continue
                text = path.read_text(encoding="utf-8").strip()
                if not text:
                    continue
                data = json.loads(text)
            except (OSError, ValueError):
                logging.warning("Ignoring unreadable recovery file %s", path)
                continue
            if isinstance(data, dict):
                return data
            logging.warning("Ignoring malformed recovery file %s", path)
        return None

    def clear(self) -> None:
        """Remove any existing recovery files."""

        for path in self.paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def exists(self) -> bool:
        return any(path.exists() for path in self.paths)
