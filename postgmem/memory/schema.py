"""
Database bootstrap for the memories table.

Creates the pgvector extension, the table and its indexes if they do not
exist yet. Existing tables are left untouched.
"""

import logging

from .distance import COSINE, DistanceMetric

logger = logging.getLogger(__name__)

TABLE_NAME = 'memories'


def schema_statements(dimension: int, metric: DistanceMetric = COSINE):
    """
    Build the DDL statements for a given embedding dimension.

    Args:
        dimension: Embedding dimension (the provider's output size)
        metric: Distance metric whose operator class the HNSW index uses

    Returns:
        List of SQL statements, in execution order
    """
    if not isinstance(dimension, int) or dimension <= 0:
        raise ValueError(f"dimension must be a positive integer, got {dimension!r}")

    return [
        "CREATE EXTENSION IF NOT EXISTS vector",
        f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            id UUID PRIMARY KEY,
            type TEXT NOT NULL,
            content JSONB NOT NULL,
            source TEXT NOT NULL,
            embedding VECTOR({dimension}) NOT NULL,
            tags TEXT[] NOT NULL DEFAULT '{{}}',
            confidence DOUBLE PRECISION NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL,
            updated_at TIMESTAMP WITH TIME ZONE NOT NULL
        )
        """,
        f"""
        CREATE INDEX IF NOT EXISTS {TABLE_NAME}_embedding_{metric.name}_idx
        ON {TABLE_NAME} USING hnsw (embedding {metric.opclass})
        """,
        f"""
        CREATE INDEX IF NOT EXISTS {TABLE_NAME}_tags_idx
        ON {TABLE_NAME} USING gin (tags)
        """,
    ]


def create_schema(connection, dimension: int, metric: DistanceMetric = COSINE):
    """
    Create the memories table and indexes on an open psycopg2 connection.

    The caller owns the transaction; nothing is committed here.
    """
    with connection.cursor() as cursor:
        for statement in schema_statements(dimension, metric):
            cursor.execute(statement)

    logger.info(f"Ensured {TABLE_NAME} schema (dimension={dimension}, metric={metric.name})")
