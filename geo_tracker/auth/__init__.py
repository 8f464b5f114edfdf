"""
Session context for authenticated backend calls.
"""

from .session import SessionContext, SessionStore, StoredSession

__all__ = ["SessionContext", "SessionStore", "StoredSession"]
