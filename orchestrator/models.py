"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Runtime modes and the wired service context.

============================================================
"""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from adapters.event_bus import EventBus
from adapters.object_store import ObjectStore
from core.config import PipelineConfig


# ============================================================
# RUNTIME MODES
# ============================================================

class RuntimeMode(Enum):
    """
    Runtime execution modes.
    
    Each mode runs exactly one pipeline service.
    """
    
    IMPORTER = "importer"
    """Generate and publish batches until stopped."""
    
    IMPORT_ONCE = "import-once"
    """Publish a single trades or EOD batch and exit."""
    
    NORMALIZER = "normalizer"
    """Consume announcements and persist records until stopped."""
    
    AGGREGATOR = "aggregator"
    """Recompute positions once and exit."""
    
    @property
    def is_long_running(self) -> bool:
        return self in (RuntimeMode.IMPORTER, RuntimeMode.NORMALIZER)
    
    @property
    def needs_database(self) -> bool:
        return self in (RuntimeMode.NORMALIZER, RuntimeMode.AGGREGATOR)


# ============================================================
# SERVICE CONTEXT
# ============================================================

@dataclass
class ServiceContext:
    """Adapters and store handles shared by the services of one process."""
    
    config: PipelineConfig
    object_store: ObjectStore
    event_bus: EventBus
    engine: Engine
    session_factory: sessionmaker
    in_memory: bool = False
