"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the ETRM pipeline services.

Every value has a default and can be overridden through the
environment (a local .env file is loaded first).

============================================================
ENVIRONMENT VARIABLES
============================================================
IMPORTER_MIN_TRADE_INTERVAL_SECONDS, IMPORTER_MAX_TRADE_INTERVAL_SECONDS
IMPORTER_MIN_TRADES_PER_BATCH, IMPORTER_MAX_TRADES_PER_BATCH
IMPORTER_EOD_PRICE_PUBLISH_HOUR
IMPORTER_USE_BUSINESS_HOURS_PATTERN, IMPORTER_BUSINESS_HOURS_MULTIPLIER
IMPORTER_RANDOM_SEED
NORMALIZER_VERIFY_CHECKSUM, NORMALIZER_ANNOUNCE_PERSISTED
AGGREGATOR_MAX_TRADES, AGGREGATOR_ANNOUNCE_UPDATED
DATABASE_URL or DB_HOST, DB_PORT, DB_USER, DB_PASSWORD, DB_NAME
S3_ENDPOINT, S3_ACCESS_KEY, S3_SECRET_KEY, S3_BUCKET, S3_FORCE_PATH_STYLE
NATS_URL
LOG_LEVEL, LOG_FORMAT, SERVICE_NAME

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .constants import (
    DEFAULT_AGGREGATION_TRADE_CAP,
    DEFAULT_BUCKET,
    EOD_PUBLICATION_HOUR,
)
from .exceptions import ConfigurationError


# ============================================================
# ENVIRONMENT HELPERS
# ============================================================

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value in (None, ""):
        return None
    return _env_int(name, 0)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


# ============================================================
# IMPORTER CONFIGURATION
# ============================================================

@dataclass
class ImporterConfig:
    """
    Trade and price generation cadence.
    """

    min_trade_interval_seconds: int = 30
    """Minimum wait between trade batches."""

    max_trade_interval_seconds: int = 300
    """Maximum wait between trade batches."""

    min_trades_per_batch: int = 1
    """Minimum number of trades per batch."""

    max_trades_per_batch: int = 10
    """Maximum number of trades per batch."""

    eod_price_publish_hour: int = EOD_PUBLICATION_HOUR
    """Hour of day (UTC) when EOD prices are published (0-23)."""

    use_business_hours_pattern: bool = True
    """Scale the wait during business hours (08:00-17:00 UTC)."""

    business_hours_multiplier: float = 0.5
    """Multiplier applied to the wait during business hours."""

    random_seed: Optional[int] = None
    """Seed for the generator RNG (None = nondeterministic)."""

    @classmethod
    def from_env(cls) -> "ImporterConfig":
        return cls(
            min_trade_interval_seconds=_env_int("IMPORTER_MIN_TRADE_INTERVAL_SECONDS", 30),
            max_trade_interval_seconds=_env_int("IMPORTER_MAX_TRADE_INTERVAL_SECONDS", 300),
            min_trades_per_batch=_env_int("IMPORTER_MIN_TRADES_PER_BATCH", 1),
            max_trades_per_batch=_env_int("IMPORTER_MAX_TRADES_PER_BATCH", 10),
            eod_price_publish_hour=_env_int("IMPORTER_EOD_PRICE_PUBLISH_HOUR", EOD_PUBLICATION_HOUR),
            use_business_hours_pattern=_env_bool("IMPORTER_USE_BUSINESS_HOURS_PATTERN", True),
            business_hours_multiplier=_env_float("IMPORTER_BUSINESS_HOURS_MULTIPLIER", 0.5),
            random_seed=_env_optional_int("IMPORTER_RANDOM_SEED"),
        )

    def validate(self) -> List[str]:
        errors = []
        if self.min_trade_interval_seconds < 0:
            errors.append("min_trade_interval_seconds must be >= 0")
        if self.max_trade_interval_seconds < self.min_trade_interval_seconds:
            errors.append("max_trade_interval_seconds must be >= min_trade_interval_seconds")
        if self.min_trades_per_batch < 1:
            errors.append("min_trades_per_batch must be >= 1")
        if self.max_trades_per_batch < self.min_trades_per_batch:
            errors.append("max_trades_per_batch must be >= min_trades_per_batch")
        if not 0 <= self.eod_price_publish_hour <= 23:
            errors.append("eod_price_publish_hour must be between 0 and 23")
        if self.business_hours_multiplier <= 0:
            errors.append("business_hours_multiplier must be positive")
        return errors


# ============================================================
# NORMALIZER CONFIGURATION
# ============================================================

@dataclass
class NormalizerConfig:
    """Normalizer behaviour switches."""

    verify_checksum: bool = True
    """Reject payloads whose checksum or size differs from the announcement."""

    announce_persisted: bool = False
    """Publish a TradesPersistedEvent after a trades batch is written."""

    @classmethod
    def from_env(cls) -> "NormalizerConfig":
        return cls(
            verify_checksum=_env_bool("NORMALIZER_VERIFY_CHECKSUM", True),
            announce_persisted=_env_bool("NORMALIZER_ANNOUNCE_PERSISTED", False),
        )


# ============================================================
# AGGREGATOR CONFIGURATION
# ============================================================

@dataclass
class AggregatorConfig:
    """Position aggregation bounds."""

    max_trades: int = DEFAULT_AGGREGATION_TRADE_CAP
    """Only the most recently dated trades up to this count are aggregated."""

    announce_updated: bool = False
    """Publish a PositionsUpdatedEvent after a successful run."""

    @classmethod
    def from_env(cls) -> "AggregatorConfig":
        return cls(
            max_trades=_env_int("AGGREGATOR_MAX_TRADES", DEFAULT_AGGREGATION_TRADE_CAP),
            announce_updated=_env_bool("AGGREGATOR_ANNOUNCE_UPDATED", False),
        )

    def validate(self) -> List[str]:
        if self.max_trades < 1:
            return ["max_trades must be >= 1"]
        return []


# ============================================================
# INFRASTRUCTURE CONFIGURATION
# ============================================================

@dataclass
class DatabaseConfig:
    """Relational store connection parameters."""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: str = "postgres"
    database: str = "etrm"
    url: Optional[str] = None
    """Full SQLAlchemy URL; takes precedence over the individual fields."""

    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False

    @property
    def connection_url(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql://{self.username}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            host=_env_str("DB_HOST", "localhost"),
            port=_env_int("DB_PORT", 5432),
            username=_env_str("DB_USER", "postgres"),
            password=_env_str("DB_PASSWORD", "postgres"),
            database=_env_str("DB_NAME", "etrm"),
            url=os.getenv("DATABASE_URL") or None,
            echo=_env_bool("DB_ECHO", False),
        )


@dataclass
class ObjectStoreConfig:
    """S3-compatible object store settings."""

    endpoint: str = "http://localhost:9000"
    access_key: str = ""
    secret_key: str = ""
    bucket: str = DEFAULT_BUCKET
    force_path_style: bool = True

    @classmethod
    def from_env(cls) -> "ObjectStoreConfig":
        return cls(
            endpoint=_env_str("S3_ENDPOINT", "http://localhost:9000"),
            access_key=_env_str("S3_ACCESS_KEY", ""),
            secret_key=_env_str("S3_SECRET_KEY", ""),
            bucket=_env_str("S3_BUCKET", DEFAULT_BUCKET),
            force_path_style=_env_bool("S3_FORCE_PATH_STYLE", True),
        )


@dataclass
class EventBusConfig:
    """Publish/subscribe transport settings."""

    url: str = "nats://localhost:4222"

    @classmethod
    def from_env(cls) -> "EventBusConfig":
        return cls(url=_env_str("NATS_URL", "nats://localhost:4222"))


@dataclass
class LoggingConfig:
    """Log output settings."""

    level: str = "INFO"
    log_format: str = "json"
    service_name: str = "etrm-pipeline"

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=_env_str("LOG_LEVEL", "INFO").upper(),
            log_format=_env_str("LOG_FORMAT", "json").lower(),
            service_name=_env_str("SERVICE_NAME", "etrm-pipeline"),
        )

    def validate(self) -> List[str]:
        errors = []
        if self.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"unknown log level: {self.level}")
        if self.log_format not in ("json", "text"):
            errors.append(f"unknown log format: {self.log_format}")
        return errors


# ============================================================
# PIPELINE CONFIGURATION
# ============================================================

@dataclass
class PipelineConfig:
    """Complete configuration for every pipeline service."""

    importer: ImporterConfig = field(default_factory=ImporterConfig)
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    object_store: ObjectStoreConfig = field(default_factory=ObjectStoreConfig)
    event_bus: EventBusConfig = field(default_factory=EventBusConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "PipelineConfig":
        """
        Build configuration from the environment.

        Args:
            dotenv_path: Optional .env file (default: search upwards from cwd)
        """
        load_dotenv(dotenv_path)
        return cls(
            importer=ImporterConfig.from_env(),
            normalizer=NormalizerConfig.from_env(),
            aggregator=AggregatorConfig.from_env(),
            database=DatabaseConfig.from_env(),
            object_store=ObjectStoreConfig.from_env(),
            event_bus=EventBusConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def validate(self) -> List[str]:
        return (
            self.importer.validate()
            + self.aggregator.validate()
            + self.logging.validate()
        )

    def ensure_valid(self) -> None:
        """Raise ConfigurationError if any section is invalid."""
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid configuration: {', '.join(errors)}",
                errors=errors,
            )


__all__ = [
    "ImporterConfig",
    "NormalizerConfig",
    "AggregatorConfig",
    "DatabaseConfig",
    "ObjectStoreConfig",
    "EventBusConfig",
    "LoggingConfig",
    "PipelineConfig",
]
