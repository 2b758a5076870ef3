"""Storage backends for workflows and run history."""

from autoflow.backends.base import RunStore
from autoflow.backends.memory import MemoryStore
from autoflow.backends.sqlite import SQLiteStore

__all__ = [
    "RunStore",
    "MemoryStore",
    "SQLiteStore",
]
