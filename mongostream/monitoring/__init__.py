"""
Monitoring
"""
from .progress import ProgressTracker
from .metrics import InsertMetrics, OperationRecord, OperationType
