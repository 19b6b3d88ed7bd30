"""
Exception hierarchy for the reward engine
Provides rich context, consistent logging, and typed failures for callers
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class RewardEngineError(Exception):
    """
    Base exception for all reward engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - Structured context
    - Automatic logging

    Example:
        raise RewardEngineError(
            message="Failed to persist streak",
            operation="record_daily_progress",
            context={"date": "2024-03-04"}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        self._log_error()

    def _log_error(self) -> None:
        """Emit one record at log_level carrying the structured fields"""
        name = type(self).__name__
        extra = {
            "error_type": name,
            "error_message": self.message,
            "request_id": self.request_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.cause is not None:
            extra["cause"] = repr(self.cause)

        logger.log(
            self.log_level,
            f"{name}: {self.message}",
            extra=extra,
            exc_info=self.cause,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict of the error fields for callers that report failures"""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "request_id": self.request_id,
            "operation": self.operation,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# --- Caller Input Errors ---

class ValidationError(RewardEngineError):
    """
    Raised when caller input is out of range or malformed

    Examples:
    - NaN challenge progress
    - Negative threshold in a custom condition

    Local state is never touched when this is raised.
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            context={"field": field, "value": value},
            **kwargs
        )


class RecordNotFoundError(RewardEngineError):
    """Requested achievement, challenge or cosmetic id does not exist"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# --- Storage Errors ---

class StorageError(RewardEngineError):
    """
    Base class for persistence gateway failures
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs
    ):
        self.key = key
        context = kwargs.pop("context", None) or {}
        context.setdefault("key", key)
        super().__init__(message=message, context=context, **kwargs)


class StorageReadError(StorageError):
    """Reading a record from the gateway failed"""
    pass


class StorageWriteError(StorageError):
    """Writing a record to the gateway failed"""
    pass


class StorageUnavailableError(StorageError):
    """Gateway is temporarily unreachable (transient, retryable)"""
    pass


class SchemaValidationError(StorageError):
    """A stored record does not match its schema"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        super().__init__(
            message=message,
            context={"record_type": record_type},
            **kwargs
        )


# --- Configuration Errors ---

class ConfigurationError(RewardEngineError):
    """A required setting is missing or holds an unusable value"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            context={"config_key": config_key},
            **kwargs
        )
