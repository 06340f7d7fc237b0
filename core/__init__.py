"""
Core Module Package.

Shared infrastructure used by every pipeline stage.

Components:
- clock: Testable time abstraction
- config: Environment-driven configuration
- constants: Value domains, topics, CSV layouts
- exceptions: Exception hierarchy
"""

from .clock import ClockProtocol, SystemClock, MockClock
from .exceptions import (
    PipelineException,
    ConfigurationError,
    TransientIOError,
    ObjectStoreError,
    EventBusError,
    DataError,
    SchemaValidationError,
    FieldParseError,
    ChecksumMismatchError,
    UnknownFileTypeError,
    PersistenceError,
)
