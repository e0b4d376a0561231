"""
Error taxonomy for the smart display service.

Every error carries a short title and a human-readable description; the
application turns them into notification payloads for the browser.
"""
from typing import Any, Dict, Optional


class SmartDisplayError(Exception):
    """Base class for all errors surfaced to the user."""

    code = "error"
    status_code = 500
    default_title = "Something went wrong"

    def __init__(self, description: str, title: Optional[str] = None):
        super().__init__(description)
        self.description = description
        self.title = title or self.default_title

    def to_notification(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "title": self.title,
            "description": self.description,
        }


class ConfigurationError(SmartDisplayError):
    """Missing credentials, URL or integration config."""

    code = "configuration_error"
    status_code = 409
    default_title = "Not configured"


class AuthError(SmartDisplayError):
    """Integration token is invalid, expired or was rejected."""

    code = "auth_error"
    status_code = 401
    default_title = "Authorization required"


class ApiError(SmartDisplayError):
    """Remote API answered with a non-2xx status."""

    code = "api_error"
    status_code = 502
    default_title = "Remote service error"

    def __init__(self, status: int, body: str, description: Optional[str] = None, title: Optional[str] = None):
        super().__init__(description or f"Remote API returned {status}", title)
        self.status = status
        self.body = body

    def to_notification(self) -> Dict[str, Any]:
        payload = super().to_notification()
        payload["status"] = self.status
        payload["body"] = self.body
        return payload


class NetworkError(SmartDisplayError):
    """Transport failure or timeout talking to a remote service."""

    code = "network_error"
    status_code = 503
    default_title = "Connection problem"


class ValidationError(SmartDisplayError):
    """Malformed user input (bad URL, missing field)."""

    code = "validation_error"
    status_code = 422
    default_title = "Invalid input"


class NotFoundError(SmartDisplayError):
    code = "not_found"
    status_code = 404
    default_title = "Not found"
