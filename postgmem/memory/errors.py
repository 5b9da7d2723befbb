"""
Error types raised by the memory store.
"""


class MemoryStoreError(Exception):
    """Base class for all memory store failures."""


class InvalidInputError(MemoryStoreError):
    """Caller input was rejected before any embedding or database call."""


class EmbeddingUnavailableError(MemoryStoreError):
    """The embedding provider failed or returned a malformed vector."""


class StorageError(MemoryStoreError):
    """The database call failed or returned data that could not be decoded."""


class OperationCancelledError(MemoryStoreError):
    """The operation was abandoned because its cancellation token was triggered."""
