"""taskdeck: console task list client for a cookie-session task API."""

__version__ = "0.1.0"
