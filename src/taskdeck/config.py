# src/taskdeck/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time (credentials are typed at login, never stored).
- Components receive settings by injection; get_settings() is only for the entrypoint.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKDECK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment variables win over .env.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Remote API ----
    api_base_url: str
    request_timeout_seconds: float
    login_expires_minutes: int

    # ---- Idle logout defaults (overridden by saved preferences) ----
    idle_timeout_minutes: int
    stay_signed_in: bool
    warning_seconds: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    preferences_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskdeck") or "taskdeck"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        api_base_url = _env(_k("API_BASE_URL"), "http://localhost:3000/api").strip().rstrip("/")
        request_timeout_seconds = max(0.5, _env_float(_k("REQUEST_TIMEOUT_SECONDS"), 15.0))
        login_expires_minutes = max(1, _env_int(_k("LOGIN_EXPIRES_MINUTES"), 30))

        idle_timeout_minutes = max(1, _env_int(_k("IDLE_TIMEOUT_MINUTES"), 2))
        stay_signed_in = _env_bool(_k("STAY_SIGNED_IN"), False)
        warning_seconds = max(1, _env_int(_k("WARNING_SECONDS"), 60))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskdeck"))
        preferences_path = _env_path(_k("PREFERENCES_PATH"), data_dir / "ui_settings.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            api_base_url=api_base_url,
            request_timeout_seconds=request_timeout_seconds,
            login_expires_minutes=login_expires_minutes,
            idle_timeout_minutes=idle_timeout_minutes,
            stay_signed_in=stay_signed_in,
            warning_seconds=warning_seconds,
            data_dir=data_dir,
            preferences_path=preferences_path,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
