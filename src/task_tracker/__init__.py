"""Task Tracker: per-user task records over HTTP."""

__version__ = "1.0.0"
