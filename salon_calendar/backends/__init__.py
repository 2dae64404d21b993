"""Collaborator implementations."""
from salon_calendar.backends.memory import InMemoryBackend
from salon_calendar.backends.rest import PostgrestBackend

__all__ = ["InMemoryBackend", "PostgrestBackend"]
