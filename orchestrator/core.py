"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Process-level plumbing for the pipeline services.

- Structured logging setup
- Adapter and store wiring
- Running a service until it finishes or a signal arrives
- Handles signals (SIGINT, SIGTERM)

============================================================
ARCHITECTURAL POSITION
============================================================
- No business logic
- Only coordinates execution

============================================================
"""

import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

from adapters.event_bus import InMemoryEventBus, NatsEventBus
from adapters.object_store import InMemoryObjectStore, S3ObjectStore
from core.config import PipelineConfig
from core.exceptions import PipelineException
from data_ingestion.importer_module import ImporterModule, ImportKind
from data_ingestion.publisher import BatchPublisher
from data_processing.normalizer_module import NormalizerModule
from database.engine import (
    create_all_tables,
    create_database_engine,
    create_in_memory_engine,
    get_session_factory,
)
from position_aggregation.engine import PositionAggregator

from .models import RuntimeMode, ServiceContext


logger = logging.getLogger("orchestrator")


# ============================================================
# LOGGING SETUP
# ============================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per record."""
    
    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name
    
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": self._service_name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    service_name: str = "etrm-pipeline",
) -> logging.Logger:
    """
    Set up structured logging.
    
    Args:
        level: Log level
        log_format: Output format (json or text)
        service_name: Value of the service field on every line
        
    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    
    if log_format == "json":
        formatter = JsonFormatter(service_name)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {service_name} | %(message)s"
        )
    
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]
    
    # botocore and nats are chatty at DEBUG
    for noisy in ("botocore", "boto3", "urllib3", "nats"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.INFO))
    
    return logging.getLogger("orchestrator")


# ============================================================
# SERVICE RUNNER
# ============================================================

StopCallback = Callable[[], Awaitable[None]]


class ServiceRunner:
    """
    Runs one service and translates SIGINT/SIGTERM into a stop.
    
    Long-running services register a stop callback; a signal (or
    request_stop()) awaits every callback and releases
    wait_until_stopped().
    """
    
    def __init__(self) -> None:
        self._stop_event = asyncio.Event()
        self._stop_callbacks: List[StopCallback] = []
        self._installed: List[signal.Signals] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
    
    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()
    
    def add_stop_callback(self, callback: StopCallback) -> None:
        self._stop_callbacks.append(callback)
    
    async def request_stop(self, reason: str = "requested") -> None:
        if self._stop_event.is_set():
            return
        logger.info(f"Stop requested ({reason})")
        self._stop_event.set()
        for callback in self._stop_callbacks:
            try:
                await callback()
            except Exception as e:
                logger.error(f"Stop callback failed: {e}", exc_info=True)
    
    async def wait_until_stopped(self) -> None:
        await self._stop_event.wait()
    
    async def run(self, service: Awaitable[Any]) -> Any:
        """Await `service` with signal handlers installed."""
        self.install_signal_handlers()
        try:
            return await service
        finally:
            self.restore_signal_handlers()
    
    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------
    
    def install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        self._loop = loop
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, self._signal_handler)
            return
        
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s=sig: asyncio.create_task(self._async_signal_handler(s)),
            )
            self._installed.append(sig)
    
    def restore_signal_handlers(self) -> None:
        if not self._installed:
            return
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed = []
    
    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows)."""
        logger.info(f"Received signal {signum}")
        self._loop.call_soon_threadsafe(
            lambda: asyncio.ensure_future(self.request_stop(f"signal {signum}"))
        )
    
    async def _async_signal_handler(self, sig: signal.Signals) -> None:
        """Async signal handler (Unix)."""
        logger.info(f"Received signal {sig.name}")
        await self.request_stop(sig.name)


# ============================================================
# WIRING
# ============================================================

def build_context(
    config: PipelineConfig,
    in_memory: bool = False,
    create_tables: bool = False,
) -> ServiceContext:
    """
    Build adapters and the relational store for one process.
    
    In-memory mode always creates tables, since the database
    starts empty.
    """
    if in_memory:
        object_store = InMemoryObjectStore()
        event_bus = InMemoryEventBus()
        engine = create_in_memory_engine()
        create_tables = True
    else:
        object_store = S3ObjectStore(config.object_store)
        event_bus = NatsEventBus(config.event_bus)
        engine = create_database_engine(config.database)
    
    if create_tables:
        create_all_tables(engine)
    
    return ServiceContext(
        config=config,
        object_store=object_store,
        event_bus=event_bus,
        engine=engine,
        session_factory=get_session_factory(engine),
        in_memory=in_memory,
    )


async def close_context(context: ServiceContext) -> None:
    try:
        await context.event_bus.close()
        await context.object_store.close()
    finally:
        context.engine.dispose()


def _build_importer(context: ServiceContext) -> ImporterModule:
    publisher = BatchPublisher(
        context.object_store,
        context.event_bus,
        bucket=context.config.object_store.bucket,
    )
    return ImporterModule(publisher, context.config.importer)


def _build_normalizer(context: ServiceContext) -> NormalizerModule:
    return NormalizerModule(
        context.object_store,
        context.event_bus,
        context.session_factory,
        context.config.normalizer,
    )


# ============================================================
# SERVICES
# ============================================================

async def run_importer(context: ServiceContext, runner: ServiceRunner) -> int:
    """
    Run the importer until a signal arrives.
    
    In-memory mode also starts a normalizer on the shared bus so
    the pipeline runs end to end in one process.
    """
    importer = _build_importer(context)
    runner.add_stop_callback(importer.stop)
    
    if context.in_memory:
        normalizer = _build_normalizer(context)
        await normalizer.start()
        runner.add_stop_callback(normalizer.stop)
    
    await runner.run(importer.run_forever())
    logger.info(f"Importer status: {importer.get_health_status()}")
    return 0


async def run_import_once(context: ServiceContext, kind: ImportKind) -> int:
    importer = _build_importer(context)
    result = await importer.run_once(kind)
    if result.success:
        logger.info(
            f"Imported {result.count} {kind.value} records | import_id={result.import_id}"
        )
        return 0
    return 1


async def run_normalizer(context: ServiceContext, runner: ServiceRunner) -> int:
    normalizer = _build_normalizer(context)
    runner.add_stop_callback(normalizer.stop)
    await normalizer.start()
    await runner.run(runner.wait_until_stopped())
    logger.info(f"Normalizer status: {normalizer.get_health_status()}")
    return 0


async def run_aggregator(context: ServiceContext) -> int:
    config = context.config.aggregator
    aggregator = PositionAggregator(
        context.session_factory,
        config,
        event_bus=context.event_bus if config.announce_updated else None,
    )
    result = await aggregator.run()
    return 0 if result.success else 1


async def run_service(
    mode: RuntimeMode,
    context: ServiceContext,
    kind: Optional[ImportKind] = None,
    runner: Optional[ServiceRunner] = None,
) -> int:
    """
    Run the service for `mode`.
    
    Returns:
        Process exit code
        
    Raises:
        TransientIOError: A long-running service lost a collaborator
    """
    runner = runner or ServiceRunner()
    logger.info(f"Starting {mode.value} | in_memory={context.in_memory}")
    
    if mode == RuntimeMode.IMPORTER:
        return await run_importer(context, runner)
    if mode == RuntimeMode.IMPORT_ONCE:
        return await run_import_once(context, kind or ImportKind.TRADES)
    if mode == RuntimeMode.NORMALIZER:
        return await run_normalizer(context, runner)
    if mode == RuntimeMode.AGGREGATOR:
        return await run_aggregator(context)
    raise PipelineException(f"Unsupported mode: {mode}")
