"""
notesync - Note and category synchronization core for a personal notes app.

Keeps an in-memory, session-scoped view of a user's notes and categories
consistent with a remote relational store, migrates legacy locally persisted
state into that store, and derives sorted/filtered views for presentation.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notesync")
except PackageNotFoundError:
    __version__ = "0.3.0"
