"""Session handling."""

from .session import SessionManager, SessionUser

__all__ = ["SessionManager", "SessionUser"]
