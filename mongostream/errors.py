"""
Error taxonomy
Only ConnectError and ConfigError stop a run; the others are contained where they occur
"""


class StreamError(Exception):
    """Base class for all mongostream errors"""


class ConnectError(StreamError):
    """Could not reach a source or destination deployment"""


class ConfigError(StreamError):
    """Invalid or contradictory options"""


class SizingError(StreamError):
    """Counting a collection or opening its cursor failed"""

    def __init__(self, namespace: str, message: str):
        super().__init__(f"{namespace}: {message}")
        self.namespace = namespace


class ExtractError(StreamError):
    """A single document could not be read from the cursor"""


class InsertError(StreamError):
    """An insert_one / insert_many call was rejected"""

    def __init__(self, message: str, attempted: int = 0, inserted: int = 0, duplicates: int = 0):
        super().__init__(message)
        self.attempted = attempted
        self.inserted = inserted
        self.duplicates = duplicates

    @property
    def failed(self) -> int:
        return max(self.attempted - self.inserted - self.duplicates, 0)
