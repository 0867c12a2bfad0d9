"""
Application error taxonomy.

Handlers raise these; the exception handlers registered in main.py turn
them into JSON failure bodies with the matching status code.
"""
from typing import Optional


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    message = "Invalid request"


class AuthenticationError(AppError):
    status_code = 401
    message = "Authentication failed"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None, kind: str = "error"):
        super().__init__(message, detail)
        # expired | invalid | missing | not_found | error
        self.kind = kind


class AuthorizationError(AppError):
    status_code = 403
    message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    message = "Not found"


class RateLimitError(AppError):
    status_code = 429
    message = "Too many requests - rate limit exceeded"


class StoreError(AppError):
    status_code = 503
    message = "Database error occurred"


class MediaError(AppError):
    status_code = 503
    message = "Image service unavailable"


class MailError(AppError):
    status_code = 502
    message = "Failed to send e-mail"
