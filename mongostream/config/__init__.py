"""
Configuration
"""
from .manager import (
    TransferOptions,
    ConfigManager,
    DEFAULT_BULK_SIZE,
    MAX_CURSOR_BATCH_SIZE
)
