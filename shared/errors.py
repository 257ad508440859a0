"""
Shared error handling for the Product Configurator.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ConfiguratorException(Exception):
    """Base exception for configurator services."""

    status_code = 400

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


class NotFoundError(ConfiguratorException):
    """A referenced catalog entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", f"{entity} '{entity_id}' not found", details)


class RuleStoreError(ConfiguratorException):
    """The rule store could not be queried."""

    status_code = 503

    def __init__(self, message: str = "Rule store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("RULE_STORE_UNAVAILABLE", message, details)


class CacheError(ConfiguratorException):
    """Cache backend errors."""

    status_code = 503

    def __init__(self, message: str = "Cache unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_ERROR", message, details)
