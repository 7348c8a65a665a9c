from .base import (
    ActiveBroadcastExistsError,
    BroadcastStore,
    StoreError,
    StorePermissionError,
    StoreUnavailableError,
)
from .memory_store import MemoryBroadcastStore

__all__ = [
    "ActiveBroadcastExistsError",
    "BroadcastStore",
    "MemoryBroadcastStore",
    "StoreError",
    "StorePermissionError",
    "StoreUnavailableError",
]
