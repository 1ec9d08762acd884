"""
Application exceptions.

Every error a user action can hit is an AppError subclass carrying the HTTP
status it maps to; routes.py registers one handler that renders them as
JSON. Parse problems in AI output are not errors (see utilities.parsers).
"""
from typing import Optional


class AppError(Exception):
    """Base exception for all application errors."""
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message, **self.details}


class ValidationError(AppError):
    """Input rejected before any network call."""
    status_code = 400


class PermissionDeniedError(AppError):
    """No signed-in user, or camera/microphone access was refused."""
    status_code = 403


class NotFoundError(AppError):
    """Unknown id; details carry the list page to fall back to."""
    status_code = 404

    def __init__(self, message: str, redirect: str = '/', details: Optional[dict] = None):
        super().__init__(message, {'redirect': redirect, **(details or {})})


class ConfirmationRequired(AppError):
    """Destructive action issued without the user's confirmation."""
    status_code = 409


class InvalidStateError(AppError):
    """Recording session action not allowed in the current state."""
    status_code = 409


class GenerationError(AppError):
    """The AI API failed or returned text we could not use."""
    status_code = 502


class PersistenceError(AppError):
    status_code = 500


class SessionStoreUnavailable(AppError):
    status_code = 500

    def __init__(self, message: str = 'Session store not available.'):
        super().__init__(message)
