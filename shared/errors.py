"""
Shared error handling for the decision engine.

Every error kind here is recovered locally by the engine; none of them
reaches a caller of the public evaluation API.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error payload attached to decision traces."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class DecisionEngineException(Exception):
    """Base exception for the decision engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(DecisionEngineException):
    """Unknown feature, malformed settings or segmentation tree."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class StorageError(DecisionEngineException):
    """Storage connector unavailable or failing."""

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", message, details)


class EnrichmentError(DecisionEngineException):
    """Gateway call failed or returned malformed data."""

    def __init__(self, endpoint: str, message: str = "Gateway service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENRICHMENT_ERROR", f"{endpoint}: {message}", details)


class PatternError(DecisionEngineException):
    """Segmentation operand carries an invalid regular expression."""

    def __init__(self, pattern: str, message: str = "Invalid pattern", details: Optional[Dict[str, Any]] = None):
        super().__init__("PATTERN_ERROR", f"{message}: {pattern}", details)
