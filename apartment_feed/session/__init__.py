"""Session persistence and current-user handling."""

from .session_manager import UserSessionManager

__all__ = ['UserSessionManager']
