"""
Authentication for Funding Pricer: OAuth tokens and browser sessions.
"""

from .session import SESSION_COOKIE_NAME, SessionManager, get_session_manager
from .token_manager import TokenLifecycleManager

__all__ = [
    "SESSION_COOKIE_NAME",
    "SessionManager",
    "get_session_manager",
    "TokenLifecycleManager",
]
