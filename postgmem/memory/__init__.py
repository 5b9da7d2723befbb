"""
Memory Module for PostgMem
Handles long-term memory with PostgreSQL + pgvector
"""

from .cancellation import CancellationToken
from .distance import COSINE, INNER_PRODUCT, L2, DistanceMetric, get_metric
from .embeddings import EmbeddingProvider, HashEmbeddingProvider, OllamaEmbeddingProvider
from .errors import (
    EmbeddingUnavailableError,
    InvalidInputError,
    MemoryStoreError,
    OperationCancelledError,
    StorageError,
)
from .memory_store import MemoryStore
from .models import Memory
from .schema import create_schema

__all__ = [
    "MemoryStore",
    "Memory",
    "CancellationToken",
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "OllamaEmbeddingProvider",
    "DistanceMetric",
    "COSINE",
    "L2",
    "INNER_PRODUCT",
    "get_metric",
    "create_schema",
    "MemoryStoreError",
    "InvalidInputError",
    "EmbeddingUnavailableError",
    "StorageError",
    "OperationCancelledError",
]
