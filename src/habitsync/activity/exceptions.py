"""Activity subsystem exceptions with standardized error handling."""
import functools
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ActivityError(Exception):
    """Base exception for activity operations."""

    log_level = logging.ERROR

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

        super().__init__(self.message)

        # Log the error
        logger.log(self.log_level, f"Activity Error [{self.error_code}]: {self.message}", extra={"details": self.details})


class ConfigurationError(ActivityError):
    """Configuration related errors."""

    def __init__(self, message: str, config_key: str = None, config_file: str = None):
        details = {"config_key": config_key, "config_file": config_file}
        super().__init__(message, "CONFIGURATION_ERROR", details)


class ValidationError(ActivityError):
    """Data validation errors. Raised by the Authority this is a permanent rejection."""

    log_level = logging.WARNING

    def __init__(self, message: str, field_name: str = None, field_value: Any = None, expected_type: str = None):
        details = {
            "field_name": field_name,
            "field_value": str(field_value) if field_value is not None else None,
            "expected_type": expected_type
        }
        super().__init__(message, "VALIDATION_ERROR", details)


class StoreError(ActivityError):
    """Local store I/O errors."""

    def __init__(self, message: str, storage_key: str = None, store_path: str = None):
        details = {"storage_key": storage_key, "store_path": store_path}
        super().__init__(message, "STORE_ERROR", details)


class AuthorityError(ActivityError):
    """Base class for errors reported by the remote Authority."""

    def __init__(self, message: str, error_code: Optional[str] = None, activity_id: str = None,
                 status_code: Optional[int] = None, **kwargs):
        details = {"activity_id": activity_id, "status_code": status_code}
        details.update(kwargs)
        super().__init__(message, error_code or "AUTHORITY_ERROR", details)

    @property
    def status_code(self) -> Optional[int]:
        return self.details.get("status_code")


class AuthorityUnavailableError(AuthorityError):
    """Transient failure: network, timeout, or server-side error. Retry later."""

    log_level = logging.WARNING

    def __init__(self, message: str, **kwargs):
        super().__init__(message, "AUTHORITY_UNAVAILABLE", **kwargs)


class AuthorityRejectedError(AuthorityError):
    """Permanent rejection of a request. Retrying will not help."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, "AUTHORITY_REJECTED", **kwargs)


class AuthenticationError(AuthorityError):
    """The caller identity was missing or not accepted."""

    log_level = logging.WARNING

    def __init__(self, message: str, **kwargs):
        super().__init__(message, "AUTHENTICATION_ERROR", **kwargs)


class NotFoundError(AuthorityError):
    """Record does not exist on the Authority."""

    log_level = logging.WARNING

    def __init__(self, activity_id: str, **kwargs):
        super().__init__(f"Activity '{activity_id}' not found", "NOT_FOUND", activity_id=activity_id, **kwargs)


class ForbiddenError(AuthorityError):
    """Caller neither owns the record nor holds elevated privilege."""

    log_level = logging.WARNING

    def __init__(self, activity_id: str, user_id: str = None, **kwargs):
        super().__init__(f"Not allowed to delete activity '{activity_id}'", "FORBIDDEN",
                         activity_id=activity_id, user_id=user_id, **kwargs)


def is_permanent_rejection(error: Exception) -> bool:
    """True for failures that must not be retried on the next sync pass."""
    return isinstance(error, (ValidationError, AuthorityRejectedError))


def authority_operation(operation_name: str, logger: logging.Logger = None):
    """Decorator for standardized error handling in Authority implementations."""
    if logger is None:
        logger = logging.getLogger(__name__)

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ActivityError:
                # Re-raise taxonomy errors as-is (already logged)
                raise
            except Exception as e:
                # Anything else is treated as the Authority being unavailable
                message = f"Unexpected error in {operation_name}: {e!s}"
                logger.exception(message)
                raise AuthorityUnavailableError(message, operation=operation_name, original_error=str(e)) from e

        return wrapper
    return decorator
