# src/taskdeck/idle/preferences.py

"""
Persisted idle-logout preferences (timeout_minutes, stay_signed_in).

Stored as a small JSON object next to the other local data. Reads and writes are
best-effort: a missing or corrupt file falls back to defaults, a failed write is
logged and the in-memory value still applies.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IdlePreferences:
    timeout_minutes: int = 2
    stay_signed_in: bool = False


def load_preferences(path: str | Path, default: IdlePreferences | None = None) -> IdlePreferences:
    default = default or IdlePreferences()
    path = Path(path)
    if not path.exists():
        return default

    try:
        data = json.loads(path.read_text("utf-8"))
    except Exception:
        logger.exception("Failed to read preferences from %s; using defaults", path)
        return default

    if not isinstance(data, dict):
        return default

    timeout = data.get("timeoutMinutes")
    stay = data.get("staySignedIn")
    # bool is an int subclass; a stray true/false must not become a 1/0 minute timeout.
    valid_timeout = isinstance(timeout, int) and not isinstance(timeout, bool) and timeout > 0

    return IdlePreferences(
        timeout_minutes=timeout if valid_timeout else default.timeout_minutes,
        stay_signed_in=stay if isinstance(stay, bool) else default.stay_signed_in,
    )


def save_preferences(path: str | Path, prefs: IdlePreferences) -> None:
    path = Path(path)
    try:
        current: dict = {}
        if path.exists():
            with contextlib.suppress(Exception):
                loaded = json.loads(path.read_text("utf-8"))
                if isinstance(loaded, dict):
                    current = loaded

        current.update({"timeoutMinutes": prefs.timeout_minutes, "staySignedIn": prefs.stay_signed_in})

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(current, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, path)
        logger.debug("Saved preferences to %s", path)
    except Exception:
        logger.exception("Failed to save preferences to %s", path)
