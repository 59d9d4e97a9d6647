"""
Shared error handling for the rules worker.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class RulesWorkerException(Exception):
    """Base exception for rules worker components."""

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


class ConfigurationError(RulesWorkerException):
    """Invalid worker configuration, raised at construction."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class DuplicateRegistrationError(ConfigurationError):
    """A handler name was registered twice for the same kind."""

    def __init__(self, kind: str, name: str):
        super().__init__(
            f"Duplicate {kind} registration: {name}",
            {"kind": kind, "name": name}
        )
        self.code = "DUPLICATE_REGISTRATION"


class TemplateError(RulesWorkerException):
    """Schema template cannot be rendered or instantiated."""

    def __init__(self, message: str = "Invalid schema template", details: Optional[Dict[str, Any]] = None):
        super().__init__("SCHEMA_TEMPLATE_INVALID", message, details)


class SchemaCompileError(RulesWorkerException):
    """Compiled work declares a malformed JSON Schema."""

    def __init__(self, message: str = "Schema compile error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SCHEMA_COMPILE_ERROR", message, details)


class ValidationRejection(RulesWorkerException):
    """An item failed the compiled schema of a piece of work."""

    def __init__(self, message: str = "Item rejected by schema", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_REJECTED", message, details)


class UnknownActionError(RulesWorkerException):
    """Compiled work references an action this service did not register."""

    def __init__(self, action: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("UNKNOWN_ACTION", f"Unsupported action: {action}", details)
        self.action = action


class RemoteOperationError(RulesWorkerException):
    """A call to the remote store or its watch feed failed."""

    def __init__(self, operation: str, message: str = "Remote operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("REMOTE_OPERATION_FAILED", f"{operation}: {message}", details)
        self.operation = operation


class ResourceNotFoundError(RemoteOperationError):
    """The remote store has nothing at the requested path."""

    def __init__(self, path: str):
        super().__init__("get", f"Not found: {path}", {"path": path})
        self.code = "RESOURCE_NOT_FOUND"
        self.path = path
