"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the ETRM pipeline services.

- Provides argparse-based CLI
- One process runs one mode
- Loads configuration from environment (.env) and CLI
- Entry point for the application

============================================================
USAGE
============================================================
python app.py --mode importer
python app.py --mode import-once --kind eod-prices
python app.py --mode normalizer --create-tables
python app.py --mode aggregator
python app.py --mode importer --in-memory --log-format text

============================================================
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from core.config import PipelineConfig
from core.exceptions import ConfigurationError
from data_ingestion.importer_module import ImportKind

from .core import build_context, close_context, run_service, setup_logging
from .models import RuntimeMode


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="etrm-pipeline",
        description="ETRM trade/price generator and normalization pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Runtime Modes:
  importer     - Generate and publish trade/EOD batches until stopped
  import-once  - Publish a single batch (--kind) and exit
  normalizer   - Persist announced batches until stopped
  aggregator   - Recompute positions once and exit

Examples:
  %(prog)s --mode importer
  %(prog)s --mode import-once --kind eod-prices
  %(prog)s --mode importer --in-memory --log-format text
        """
    )
    
    # --------------------------------------------------------
    # Mode Selection
    # --------------------------------------------------------
    parser.add_argument(
        "--mode", "-m",
        type=str,
        choices=[m.value for m in RuntimeMode],
        required=True,
        help="Service to run",
    )
    
    parser.add_argument(
        "--kind",
        type=str,
        choices=[k.value for k in ImportKind],
        default=None,
        help="Batch kind for import-once (default: trades)",
    )
    
    # --------------------------------------------------------
    # Infrastructure Options
    # --------------------------------------------------------
    infra_group = parser.add_argument_group("Infrastructure Options")
    
    infra_group.add_argument(
        "--in-memory",
        action="store_true",
        help="Use in-memory object store, event bus and SQLite database",
    )
    
    infra_group.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before starting",
    )
    
    infra_group.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        default=None,
        help="Path to a .env file (default: search from cwd)",
    )
    
    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")
    
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default=None,
        help="Logging format (default: LOG_FORMAT or json)",
    )
    
    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )
    
    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.
    
    Returns:
        List of validation errors
    """
    errors = []
    mode = RuntimeMode(args.mode)
    
    if args.kind is not None and mode != RuntimeMode.IMPORT_ONCE:
        errors.append("--kind is only valid with --mode import-once")
    
    return errors


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """
    Load configuration from the environment and apply CLI overrides.
    
    Raises:
        ConfigurationError: A value is malformed or out of range
    """
    config = PipelineConfig.from_env(args.env_file)
    if args.log_level:
        config.logging.level = args.log_level
    if args.log_format:
        config.logging.log_format = args.log_format
    config.ensure_valid()
    return config


# ============================================================
# ENTRY POINTS
# ============================================================

async def async_main(args: argparse.Namespace, config: PipelineConfig) -> int:
    """
    Async main entry point.
    
    Returns:
        Exit code
    """
    mode = RuntimeMode(args.mode)
    kind = ImportKind(args.kind) if args.kind else None
    
    try:
        context = build_context(config, in_memory=args.in_memory, create_tables=args.create_tables)
    except Exception as e:
        logging.error(f"Startup failed: {e}", exc_info=True)
        return 1
    
    try:
        return await run_service(mode, context, kind)
    except asyncio.CancelledError:
        logging.info("Service cancelled")
        return 130
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await close_context(context)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.
    
    Args:
        argv: Command line arguments (default: sys.argv[1:])
        
    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    
    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1
    
    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        for error in e.context.get("errors", []):
            print(f"  - {error}", file=sys.stderr)
        return 1
    
    setup_logging(
        config.logging.level,
        config.logging.log_format,
        config.logging.service_name,
    )
    
    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
