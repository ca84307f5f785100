"""
Session persistence

Saving, loading, listing and exporting finished real-time sessions.
"""

from core.sessions.exceptions import SessionNotFoundError, SessionStoreError
from core.sessions.exporter import TranscriptExporter
from core.sessions.store import SessionStore

__all__ = [
    'SessionNotFoundError',
    'SessionStore',
    'SessionStoreError',
    'TranscriptExporter',
]
