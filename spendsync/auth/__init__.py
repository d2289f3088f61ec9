"""Authentication / session package."""

from spendsync.auth.session import AuthError, NotAuthenticatedError, SessionManager

__all__ = ["AuthError", "NotAuthenticatedError", "SessionManager"]
