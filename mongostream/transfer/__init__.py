"""
Transfer Engine
"""
from .batch import BatchAccumulator
from .inserter import BoundedInserter
from .engine import CollectionTransfer, TransferResult, TransferState
from .validation import ValidationPass, ValidationReport
from .indexes import IndexCopier, IndexCopyResult
from .fleet import FleetOrchestrator, FleetReport
