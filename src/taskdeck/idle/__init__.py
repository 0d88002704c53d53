"""
Idle logout.

Components:
- idle_monitor.py: ACTIVE -> WARNING -> LOGGED_OUT state machine on an injected scheduler
- preferences.py: persisted timeout / stay-signed-in preferences
"""
