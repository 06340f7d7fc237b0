"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the ETRM pipeline.

- Provides clear exception hierarchy
- Separates transient I/O from data errors
- Carries import/batch context for structured logs

============================================================
EXCEPTION HIERARCHY
============================================================
PipelineException (base)
├── ConfigurationError
├── TransientIOError
│   ├── ObjectStoreError
│   └── EventBusError
├── DataError
│   ├── SchemaValidationError
│   ├── FieldParseError
│   ├── ChecksumMismatchError
│   └── UnknownFileTypeError
└── PersistenceError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""
    
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""
    
    RECOVERABLE = "recoverable"
    """Error can be recovered from automatically."""
    
    TRANSIENT = "transient"
    """Temporary error, a later attempt may succeed."""
    
    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class PipelineException(Exception):
    """
    Base exception for all pipeline errors.
    
    All exceptions carry:
    - severity: for log levels
    - context: for debugging (import_id, column, line, ...)
    - classification: transient vs permanent
    - timestamp: when the error occurred
    """
    
    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE
    
    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        
        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        
        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)
    
    @property
    def is_transient(self) -> bool:
        """Check if error is transient."""
        return self.classification == ErrorClassification.TRANSIENT
    
    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        base = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        return f"{base} | {ctx_str}" if ctx_str else base


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(PipelineException):
    """Error in configuration."""
    
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE
    
    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        context = kwargs.pop("context", {})
        if errors:
            context["errors"] = errors
        super().__init__(message, context=context, **kwargs)


# ============================================================
# TRANSIENT I/O ERRORS
# ============================================================

class TransientIOError(PipelineException):
    """An external collaborator could not be reached."""
    
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT


class ObjectStoreError(TransientIOError):
    """Object store put/get/exists failed."""
    
    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        
        if bucket:
            context["bucket"] = bucket
        if key:
            context["key"] = key
        
        super().__init__(message, context=context, **kwargs)


class EventBusError(TransientIOError):
    """Publish or subscribe on the event bus failed."""
    
    def __init__(self, message: str, topic: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if topic:
            context["topic"] = topic
        super().__init__(message, context=context, **kwargs)


# ============================================================
# DATA ERRORS
# ============================================================

class DataError(PipelineException):
    """Base class for payload-related errors."""
    
    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.NON_RECOVERABLE


class SchemaValidationError(DataError):
    """Payload header does not carry every declared column."""
    
    def __init__(
        self,
        message: str,
        missing_columns: Optional[List[str]] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if missing_columns:
            context["missing_columns"] = missing_columns
        self.missing_columns = list(missing_columns or [])
        super().__init__(message, context=context, **kwargs)


class FieldParseError(DataError):
    """A field could not be coerced to its declared type."""
    
    def __init__(
        self,
        message: str,
        column: Optional[str] = None,
        line_number: Optional[int] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        
        if column:
            context["column"] = column
        if line_number is not None:
            context["line_number"] = line_number
        if value is not None:
            context["value"] = str(value)[:100]
        
        self.column = column
        self.line_number = line_number
        super().__init__(message, context=context, **kwargs)


class ChecksumMismatchError(DataError):
    """Fetched payload does not match the announced checksum or size."""
    
    default_severity = Severity.HIGH
    
    def __init__(self, message: str, expected: str, actual: str, **kwargs):
        context = kwargs.pop("context", {})
        context["expected"] = expected
        context["actual"] = actual
        super().__init__(message, context=context, **kwargs)


class UnknownFileTypeError(DataError):
    """Announcement names a file type no parser is registered for."""
    
    default_severity = Severity.LOW
    
    def __init__(self, file_type: str, **kwargs):
        context = kwargs.pop("context", {})
        context["file_type"] = file_type
        self.file_type = file_type
        super().__init__(f"Unknown file type: {file_type}", context=context, **kwargs)


# ============================================================
# PERSISTENCE ERRORS
# ============================================================

class PersistenceError(PipelineException):
    """Relational store write or read failed."""
    
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT


__all__ = [
    "Severity",
    "ErrorClassification",
    "PipelineException",
    "ConfigurationError",
    "TransientIOError",
    "ObjectStoreError",
    "EventBusError",
    "DataError",
    "SchemaValidationError",
    "FieldParseError",
    "ChecksumMismatchError",
    "UnknownFileTypeError",
    "PersistenceError",
]
