# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Credentials are never configured: they are typed at /login and the session lives in cookies.

Idle settings below are first-run defaults only; /timeout and /stay persist their own
values to TASKDECK_PREFERENCES_PATH, which wins on the next start.
"""

ENV_VARS = {
    # App / logging
    "TASKDECK_APP_NAME": "App display name (default: taskdeck).",
    "TASKDECK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Remote API
    "TASKDECK_API_BASE_URL": "Base URL of the auth + task API (default: http://localhost:3000/api).",
    "TASKDECK_REQUEST_TIMEOUT_SECONDS": "Per-request timeout in seconds (default: 15).",
    "TASKDECK_LOGIN_EXPIRES_MINUTES": "Session lifetime requested at login (default: 30).",
    # Idle logout
    "TASKDECK_IDLE_TIMEOUT_MINUTES": "Minutes without activity before the warning (default: 2).",
    "TASKDECK_STAY_SIGNED_IN": "Disable idle logout entirely (true/false, default: false).",
    "TASKDECK_WARNING_SECONDS": "Countdown length once the warning is shown (default: 60).",
    # Paths (gitignored)
    "TASKDECK_DATA_DIR": "Local data directory (default: .local/taskdeck).",
    "TASKDECK_PREFERENCES_PATH": "Idle preferences JSON (default: <data_dir>/ui_settings.json).",
}
