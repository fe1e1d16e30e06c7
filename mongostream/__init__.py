"""
mongostream
Stream MongoDB collections to another MongoDB deployment with resumable, bounded-concurrency bulk inserts
"""

__version__ = "0.6.0"

# Errors
from .errors import (
    StreamError,
    ConnectError,
    ConfigError,
    SizingError,
    ExtractError,
    InsertError
)

# Configuration
from .config.manager import TransferOptions, ConfigManager

# Core
from .core.database import StoreConnection, DocumentSource

# Monitoring
from .monitoring.progress import ProgressTracker
from .monitoring.metrics import InsertMetrics

# Transfer
from .transfer.batch import BatchAccumulator
from .transfer.inserter import BoundedInserter
from .transfer.engine import CollectionTransfer, TransferResult, TransferState
from .transfer.validation import ValidationPass, ValidationReport
from .transfer.indexes import IndexCopier
from .transfer.fleet import FleetOrchestrator, FleetReport

__all__ = [
    # Errors
    "StreamError",
    "ConnectError",
    "ConfigError",
    "SizingError",
    "ExtractError",
    "InsertError",

    # Configuration
    "TransferOptions",
    "ConfigManager",

    # Core
    "StoreConnection",
    "DocumentSource",

    # Monitoring
    "ProgressTracker",
    "InsertMetrics",

    # Transfer
    "BatchAccumulator",
    "BoundedInserter",
    "CollectionTransfer",
    "TransferResult",
    "TransferState",
    "ValidationPass",
    "ValidationReport",
    "IndexCopier",
    "FleetOrchestrator",
    "FleetReport"
]
