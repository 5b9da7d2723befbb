"""
PostgMem: semantic memory storage on PostgreSQL + pgvector
Stores JSON memories with embeddings and retrieves them by similarity.
"""

from .config import PostgMemConfig, setup_logging
from .memory import (
    CancellationToken,
    EmbeddingUnavailableError,
    InvalidInputError,
    Memory,
    MemoryStore,
    MemoryStoreError,
    OperationCancelledError,
    StorageError,
)

__version__ = "0.1.0"
__all__ = [
    "MemoryStore",
    "Memory",
    "CancellationToken",
    "PostgMemConfig",
    "setup_logging",
    "MemoryStoreError",
    "InvalidInputError",
    "EmbeddingUnavailableError",
    "StorageError",
    "OperationCancelledError",
]
