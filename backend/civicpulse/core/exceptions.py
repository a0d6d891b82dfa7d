"""
Error types raised by CivicPulse services.

Every error carries a caller-facing message, a stable ``code`` and the HTTP
status the API layer answers with. Services raise these at the point of
detection; only the API layer turns them into responses.
"""

from http import HTTPStatus
from typing import Any, Dict, List, Optional


def _compact(**fields: Any) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


class AppException(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Error message
        status_code: HTTP status code
        code: Application error code
        details: Additional error details
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Error envelope returned by the API."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(AppException):
    """Settings could not be loaded or failed validation."""

    code = "CONFIGURATION_ERROR"


class SecurityError(AppException):
    """Base for principal-related failures."""

    status_code = HTTPStatus.UNAUTHORIZED
    code = "SECURITY_ERROR"


class AuthenticationError(SecurityError):
    """No valid principal accompanies the request."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(SecurityError):
    """The principal lacks the required role."""

    status_code = HTTPStatus.FORBIDDEN
    code = "FORBIDDEN"

    def __init__(self, message: str = "Admin access required", required_role: Optional[str] = None):
        super().__init__(message, details=_compact(required_role=required_role))


class ValidationError(AppException):
    """Input was missing, malformed or out of range."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        field_errors: Optional[Dict[str, List[str]]] = None,
    ):
        details = dict(details or {})
        if field_errors:
            details["field_errors"] = field_errors
        super().__init__(message, details=details)


class InvalidLocationError(ValidationError):
    """An incident's coordinates cannot be determined."""

    def __init__(self, message: str, location_name: Optional[str] = None):
        super().__init__(message, details=_compact(location_name=location_name))


class InvalidChoiceError(ValidationError):
    """A poll vote carries an unknown choice."""

    def __init__(self, choice: Any, allowed: List[str]):
        super().__init__(
            f"Invalid choice. Must be: {', '.join(allowed[:-1])}, or {allowed[-1]}",
            field_errors={"choice": [f"unsupported value: {choice!r}"]},
        )


class NotFoundError(AppException):
    """The referenced incident, group or user does not exist."""

    status_code = HTTPStatus.NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Any = None):
        super().__init__(
            message,
            details=_compact(resource_type=resource_type, resource_id=resource_id),
        )


class ConflictError(AppException):
    """The request collides with existing state."""

    status_code = HTTPStatus.CONFLICT
    code = "CONFLICT"


class AlreadyVotedError(ConflictError):
    """The user already answered this incident's poll."""

    def __init__(self, incident_id: str, user_id: str):
        super().__init__(
            "You have already responded to this incident",
            details={"incident_id": incident_id, "user_id": user_id},
        )


class StorageError(AppException):
    """A snapshot file could not be read, parsed or written."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, path: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message, details=_compact(path=path, operation=operation))


def raise_not_found(resource_type: str, resource_id: Any) -> None:
    """Raise a NotFoundError with the standard message."""
    raise NotFoundError(
        f"{resource_type} with ID {resource_id} not found",
        resource_type=resource_type,
        resource_id=resource_id,
    )
