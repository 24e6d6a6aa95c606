"""
Exception types shared by the collection, video and security layers.
"""

from typing import Dict, Optional


class BourbonBuddyError(Exception):
    """Base class for application errors."""
    status_code = 500


class ValidationError(BourbonBuddyError):
    """Raised when user input fails validation. `details` maps field -> message."""
    status_code = 400

    def __init__(self, message: str = "Validation error", details: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.details = details or {}


class AuthenticationRequired(BourbonBuddyError):
    status_code = 401


class PermissionDenied(BourbonBuddyError):
    status_code = 403


class NotFoundError(BourbonBuddyError):
    status_code = 404


class MuxError(BourbonBuddyError):
    """Raised when the Mux REST API returns an error or cannot be reached."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class WebhookVerificationError(BourbonBuddyError):
    """Raised when a webhook signature is missing, stale or wrong."""
    status_code = 401
