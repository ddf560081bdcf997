"""
HTTP API for the reminders engine.

This package provides a single FastAPI application that exposes:
- Reminder management (list/filter, edit, cancel, delete)
- Wizard sessions for creating reminders step by step
- Contact search for the recipient step
"""

from api.main import app

__all__ = ["app"]
