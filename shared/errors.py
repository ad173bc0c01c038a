"""
Shared error handling for the GitHub Access Governor.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GovernorException(Exception):
    """Base exception for Access Governor components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(GovernorException):
    """Invalid or missing configuration, e.g. an unusable private key."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class SigningError(GovernorException):
    """The signing primitive rejected the token payload or key."""

    def __init__(self, message: str = "Token signing failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SIGNING_ERROR", message, details)
