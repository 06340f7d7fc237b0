"""
Orchestrator Package.

Hosts the pipeline services: logging, wiring, signal handling
and the command-line entry point.
"""

from .models import RuntimeMode, ServiceContext
from .core import (
    JsonFormatter,
    ServiceRunner,
    build_context,
    close_context,
    run_service,
    setup_logging,
)
from .cli import create_parser, validate_args, build_config, main


__all__ = [
    "RuntimeMode",
    "ServiceContext",
    "JsonFormatter",
    "ServiceRunner",
    "build_context",
    "close_context",
    "run_service",
    "setup_logging",
    "create_parser",
    "validate_args",
    "build_config",
    "main",
]
