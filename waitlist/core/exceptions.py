from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError


class WaitlistError(Exception):
    """Base class for errors that map onto a JSON HTTP response."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers or {}

    def to_body(self) -> dict:
        return {"error": self.message}


class ValidationError(WaitlistError):
    status_code = 400


class VerificationError(WaitlistError):
    status_code = 403


class ConfigurationError(WaitlistError):
    status_code = 500


class AuthError(WaitlistError):
    status_code = 401


class DuplicateSignupError(WaitlistError):
    status_code = 409

    def to_body(self) -> dict:
        return {"ok": False, "message": self.message}


class RateLimitError(WaitlistError):
    status_code = 429


class StoreError(WaitlistError):
    status_code = 500


class NotifyError(Exception):
    """Raised inside the notifier only; never reaches the HTTP layer."""


# Anything the database layer can raise, including connect failures the
# driver reports as plain OSError before SQLAlchemy can wrap them.
STORE_ERRORS = (SQLAlchemyError, OSError)
