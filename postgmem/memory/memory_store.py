"""
Memory Store: PostgreSQL + pgvector persistence for memory records.
Stores JSON memories with their embeddings and retrieves them by semantic similarity.
"""

import json
import logging
import threading
import uuid
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import psycopg2
from psycopg2.extensions import QueryCanceledError
from psycopg2.extras import Json, RealDictCursor, register_uuid
from psycopg2.pool import ThreadedConnectionPool

from ..config import PostgMemConfig
from .cancellation import CancellationToken, check_cancelled
from .distance import COSINE, DistanceMetric, get_metric
from .embeddings import EmbeddingProvider, OllamaEmbeddingProvider
from .errors import (
    EmbeddingUnavailableError,
    InvalidInputError,
    MemoryStoreError,
    OperationCancelledError,
    StorageError,
)
from .models import MEMORY_COLUMNS, Memory
from .schema import TABLE_NAME, create_schema

logger = logging.getLogger(__name__)

# Adapt uuid.UUID parameters and decode uuid columns as uuid.UUID
register_uuid()

# Top-level content fields probed for embeddable text, highest priority first
EMBEDDABLE_FIELDS = ('fact', 'observation', 'text', 'content')

_SELECT_COLUMNS = ', '.join(MEMORY_COLUMNS)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def parse_content(content: Any) -> Tuple[Any, str]:
    """
    Parse a memory's content payload.

    Args:
        content: JSON text (str or bytes), or an already parsed dict/list

    Returns:
        Tuple of (parsed value, raw text)

    Raises:
        InvalidInputError: If the content is not valid JSON
    """
    if isinstance(content, (dict, list)):
        try:
            raw = json.dumps(content, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Content is not JSON-serializable: {e}") from e
        return content, raw

    if isinstance(content, bytes):
        try:
            content = content.decode('utf-8')
        except UnicodeDecodeError as e:
            raise InvalidInputError(f"Content is not valid UTF-8: {e}") from e

    if not isinstance(content, str):
        raise InvalidInputError(
            f"Content must be JSON text or a dict/list, got {type(content).__name__}"
        )

    try:
        parsed = json.loads(content, parse_constant=_reject_constant)
    except ValueError as e:
        raise InvalidInputError(f"Content is not valid JSON: {e}") from e

    return parsed, content


def extract_embeddable_text(parsed: Any, raw: str) -> str:
    """
    Pick the text to embed for a memory.

    The first of EMBEDDABLE_FIELDS holding a string wins. Otherwise the raw
    content text is embedded exactly as the caller supplied it.
    """
    if isinstance(parsed, dict):
        for field_name in EMBEDDABLE_FIELDS:
            value = parsed.get(field_name)
            if isinstance(value, str):
                return value
    return raw


def _parse_memory_id(memory_id) -> uuid.UUID:
    if isinstance(memory_id, uuid.UUID):
        return memory_id
    try:
        return uuid.UUID(str(memory_id))
    except ValueError as e:
        raise InvalidInputError(f"Invalid memory id: {memory_id!r}") from e


def _validate_tags(tags: Optional[Sequence[str]], name: str) -> List[str]:
    if tags is None:
        return []
    if isinstance(tags, (str, bytes)):
        raise InvalidInputError(f"{name} must be a sequence of strings")
    try:
        tags = list(tags)
    except TypeError as e:
        raise InvalidInputError(f"{name} must be a sequence of strings") from e
    if not all(isinstance(tag, str) for tag in tags):
        raise InvalidInputError(f"{name} must be a sequence of strings")
    return tags


class MemoryStore:
    """
    Long-term memory using PostgreSQL with the pgvector extension.

    This class handles:
    - Storing JSON memories with embeddings of their text
    - Semantic similarity search with optional tag filtering
    - Lookup and deletion by id

    Each operation borrows one pooled connection, issues one statement and
    returns the connection, so operations may run concurrently from many
    threads. The pool and the embedding provider are never mutated.
    """

    def __init__(
        self,
        pool,
        embedding_provider: EmbeddingProvider,
        metric: DistanceMetric = COSINE,
        acquire_timeout: float = 30.0
    ):
        """
        Initialize the store.

        Args:
            pool: psycopg2 connection pool (getconn/putconn), e.g. ThreadedConnectionPool
            embedding_provider: Provider used for memory content and search queries
            metric: Distance metric used by search
            acquire_timeout: Seconds to wait for a free pooled connection
        """
        self._pool = pool
        self._embedder = embedding_provider
        self.metric = metric
        self.acquire_timeout = acquire_timeout
        # ThreadedConnectionPool raises instead of waiting when exhausted
        self._slots = threading.BoundedSemaphore(getattr(pool, 'maxconn', 10))

    @classmethod
    def from_config(cls, config=PostgMemConfig) -> "MemoryStore":
        """
        Build a store with a connection pool and Ollama embeddings from configuration.

        Raises:
            StorageError: If the initial pool connections cannot be opened
        """
        pool_config = config.get_pool_config()
        try:
            pool = ThreadedConnectionPool(
                pool_config['minconn'],
                pool_config['maxconn'],
                **config.get_db_config()
            )
        except psycopg2.Error as e:
            logger.error(f"Failed to create connection pool: {e}")
            raise StorageError(f"Could not connect to database: {e}") from e

        logger.info(f"Connection pool ready ({pool_config['minconn']}-{pool_config['maxconn']} connections)")
        return cls(
            pool,
            OllamaEmbeddingProvider(**config.get_embedding_config()),
            metric=get_metric(config.DISTANCE_METRIC),
            acquire_timeout=pool_config['acquire_timeout']
        )

    @staticmethod
    def _rollback(connection) -> bool:
        """Roll back the open transaction. Returns True if the connection is unusable."""
        if connection.closed:
            return True
        try:
            connection.rollback()
            return False
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed, discarding connection: {e}")
            return True

    @contextmanager
    def _connection(
        self,
        operation: str,
        cancellation: Optional[CancellationToken] = None
    ) -> Iterator:
        """
        Borrow a pooled connection for one operation and commit on success.

        Database errors surface as StorageError, or as OperationCancelledError
        when the statement was aborted through ``cancellation``.
        """
        check_cancelled(cancellation, operation)

        if not self._slots.acquire(timeout=self.acquire_timeout):
            raise StorageError(f"Timed out waiting for a database connection ({operation})")

        try:
            try:
                connection = self._pool.getconn()
            except psycopg2.Error as e:
                logger.error(f"Could not acquire database connection: {e}")
                raise StorageError(f"Could not acquire database connection: {e}") from e

            discard = False
            if cancellation is not None:
                abort_hook = cancellation.register(connection.cancel)
            else:
                abort_hook = nullcontext()
            try:
                with abort_hook:
                    yield connection
                    connection.commit()
            except QueryCanceledError as e:
                discard = self._rollback(connection)
                if cancellation is not None and cancellation.cancelled:
                    logger.info(f"{operation} cancelled")
                    raise OperationCancelledError(f"{operation} was cancelled") from e
                logger.error(f"{operation} cancelled by the server: {e}")
                raise StorageError(f"{operation} cancelled by the server: {e}") from e
            except psycopg2.Error as e:
                discard = self._rollback(connection)
                logger.error(f"Error during {operation}: {e}")
                raise StorageError(f"{operation} failed: {e}") from e
            except BaseException:
                discard = self._rollback(connection)
                raise
            finally:
                # A late abort request could hit the next borrower's statement
                if cancellation is not None and cancellation.cancelled:
                    discard = True
                self._pool.putconn(connection, close=discard or bool(connection.closed))
        finally:
            self._slots.release()

    def _embed(self, text: str, cancellation: Optional[CancellationToken]) -> np.ndarray:
        """Call the embedding provider and validate what it returns."""
        check_cancelled(cancellation, "embedding")

        try:
            embedding = self._embedder.generate(text, cancellation)
        except MemoryStoreError:
            raise
        except Exception as e:
            logger.error(f"Embedding provider failed: {e}")
            raise EmbeddingUnavailableError(f"Embedding provider failed: {e}") from e

        check_cancelled(cancellation, "embedding")

        try:
            embedding = np.asarray(embedding, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise EmbeddingUnavailableError(f"Embedding provider returned a non-numeric vector: {e}") from e

        if embedding.ndim != 1 or embedding.size == 0 or not np.all(np.isfinite(embedding)):
            raise EmbeddingUnavailableError(
                f"Embedding provider returned a malformed vector (shape {embedding.shape})"
            )
        return embedding

    def _decode(self, row) -> Memory:
        try:
            return Memory.from_row(row)
        except ValueError as e:
            logger.error(f"Malformed memory row: {e}")
            raise StorageError(f"Malformed stored memory: {e}") from e

    def store_memory(
        self,
        memory_type: str,
        content: Any,
        source: str,
        tags: Optional[Sequence[str]] = None,
        confidence: float = 1.0,
        cancellation: Optional[CancellationToken] = None
    ) -> Memory:
        """
        Store a memory.

        The embedding is computed from the first string field among
        ``fact``, ``observation``, ``text`` and ``content``; without one,
        the raw content text is embedded.

        Args:
            memory_type: Short tag classifying the memory
            content: JSON text, or a parsed dict/list
            source: Where the memory came from
            tags: Optional tags used for search filtering
            confidence: Caller-assigned confidence
            cancellation: Optional cancellation token

        Returns:
            The stored memory, including its new id and embedding

        Raises:
            InvalidInputError: If content is not valid JSON or arguments are malformed
            EmbeddingUnavailableError: If the embedding provider fails
            StorageError: If the insert fails
            OperationCancelledError: If cancelled before the insert committed
        """
        parsed, raw = parse_content(content)
        tags = _validate_tags(tags, "tags")
        if not isinstance(memory_type, str) or not isinstance(source, str):
            raise InvalidInputError("memory_type and source must be strings")
        if isinstance(confidence, bool):
            raise InvalidInputError("confidence must be a number")
        try:
            confidence = float(confidence)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"confidence must be a number: {e}") from e

        embedding = self._embed(extract_embeddable_text(parsed, raw), cancellation)

        now = datetime.now(timezone.utc)
        memory = Memory(
            id=uuid.uuid4(),
            type=memory_type,
            content=parsed,
            source=source,
            embedding=embedding,
            tags=tags,
            confidence=confidence,
            created_at=now,
            updated_at=now,
        )

        with self._connection("store_memory", cancellation) as connection:
            with connection.cursor() as cursor:
                cursor.execute(f"""
                    INSERT INTO {TABLE_NAME} (id, type, content, source, embedding, tags, confidence, created_at, updated_at)
                    VALUES (%(id)s, %(type)s, %(content)s, %(source)s, %(embedding)s::vector,
                            %(tags)s::text[], %(confidence)s, %(created_at)s, %(updated_at)s)
                """, {
                    'id': memory.id,
                    'type': memory.type,
                    'content': Json(memory.content),
                    'source': memory.source,
                    'embedding': memory.embedding.tolist(),
                    'tags': memory.tags,
                    'confidence': memory.confidence,
                    'created_at': memory.created_at,
                    'updated_at': memory.updated_at,
                })

        logger.info(f"Stored memory {memory.id} ({memory.type}) from {memory.source}")
        return memory

    def search(
        self,
        query: str,
        limit: int = 10,
        min_similarity: float = 0.7,
        filter_tags: Optional[Sequence[str]] = None,
        cancellation: Optional[CancellationToken] = None
    ) -> List[Memory]:
        """
        Search for memories similar to a query.

        Args:
            query: Query text
            limit: Maximum number of results
            min_similarity: Minimum similarity in [0, 1]
            filter_tags: Results must carry every one of these tags
            cancellation: Optional cancellation token

        Returns:
            Memories ordered from most to least similar, each with ``distance`` set
        """
        if not isinstance(query, str):
            raise InvalidInputError("query must be a string")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidInputError(f"limit must be a positive integer, got {limit!r}")
        if isinstance(min_similarity, bool) or not isinstance(min_similarity, (int, float)) \
                or not 0.0 <= min_similarity <= 1.0:
            raise InvalidInputError(f"min_similarity must be between 0 and 1, got {min_similarity!r}")
        filter_tags = _validate_tags(filter_tags, "filter_tags")

        query_embedding = self._embed(query, cancellation)
        op = self.metric.operator

        sql = f"""
            SELECT {_SELECT_COLUMNS}, embedding {op} %(embedding)s::vector AS distance
            FROM {TABLE_NAME}
            WHERE embedding {op} %(embedding)s::vector < %(max_distance)s
        """
        params = {
            'embedding': query_embedding.tolist(),
            'max_distance': self.metric.max_distance(float(min_similarity)),
            'limit': limit,
        }
        if filter_tags:
            sql += " AND tags @> %(tags)s::text[]"
            params['tags'] = filter_tags
        sql += f" ORDER BY embedding {op} %(embedding)s::vector LIMIT %(limit)s"

        with self._connection("search", cancellation) as connection:
            with connection.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(sql, params)
                rows = cursor.fetchall()
            memories = [self._decode(row) for row in rows]

        check_cancelled(cancellation, "search")
        logger.debug(f"Found {len(memories)} memories for query")
        return memories

    def get(
        self,
        memory_id,
        cancellation: Optional[CancellationToken] = None
    ) -> Optional[Memory]:
        """
        Get a memory by id.

        Returns:
            The memory, or None if no memory has this id
        """
        memory_id = _parse_memory_id(memory_id)

        with self._connection("get", cancellation) as connection:
            with connection.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(f"""
                    SELECT {_SELECT_COLUMNS}
                    FROM {TABLE_NAME}
                    WHERE id = %(id)s
                """, {'id': memory_id})
                row = cursor.fetchone()
            memory = self._decode(row) if row is not None else None

        check_cancelled(cancellation, "get")
        if memory is None:
            logger.debug(f"Memory {memory_id} not found")
        return memory

    def delete(
        self,
        memory_id,
        cancellation: Optional[CancellationToken] = None
    ) -> bool:
        """
        Delete a memory.

        Returns:
            True if a memory was deleted, False if none had this id
        """
        memory_id = _parse_memory_id(memory_id)

        with self._connection("delete", cancellation) as connection:
            with connection.cursor() as cursor:
                cursor.execute(f"""
                    DELETE FROM {TABLE_NAME}
                    WHERE id = %(id)s
                """, {'id': memory_id})
                deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted memory {memory_id}")
        else:
            logger.debug(f"Memory {memory_id} not found")
        return deleted

    def initialize_schema(self):
        """Create the pgvector extension, memories table and indexes if missing."""
        with self._connection("initialize_schema") as connection:
            create_schema(connection, self._embedder.dimension, self.metric)

    def close(self):
        """Close all pooled connections."""
        if not getattr(self._pool, 'closed', False):
            self._pool.closeall()
            logger.info("Memory store connection pool closed")
        close_embedder = getattr(self._embedder, 'close', None)
        if close_embedder is not None:
            close_embedder()
