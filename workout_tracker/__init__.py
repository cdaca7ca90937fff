"""Shared constants for the workout session engine."""

from __future__ import annotations

from pathlib import Path

# Values used when a set is created without explicit input
DEFAULT_WEIGHT = 0.0
DEFAULT_REPS = 10
DEFAULT_REST_TIME = 60

# Floors applied to automatic set recommendations
MIN_WEIGHT = 0.0
MIN_REPS = 1
MIN_REST_TIME = 30

# Estimated working time of one set when a session duration is unknown
ESTIMATED_SET_SECONDS = 45

# Directory holding settings and crash-recovery snapshots
DATA_DIR = Path(__file__).resolve().parent.parent / "data"

__all__ = [
    "DEFAULT_WEIGHT",
    "DEFAULT_REPS",
    "DEFAULT_REST_TIME",
    "MIN_WEIGHT",
    "MIN_REPS",
    "MIN_REST_TIME",
    "ESTIMATED_SET_SECONDS",
    "DATA_DIR",
]
