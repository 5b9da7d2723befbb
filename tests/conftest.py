"""
Pytest configuration and shared fixtures.

The fake pool below stands in for psycopg2's ThreadedConnectionPool. It
evaluates the handful of statements MemoryStore issues against an
in-memory table, computing distances with numpy, so store semantics can be
checked without a PostgreSQL server.
"""

import json

import numpy as np
import psycopg2
import pytest
from psycopg2.extensions import QueryCanceledError

from postgmem.memory import MemoryStore
from postgmem.memory.distance import METRICS
from postgmem.memory.embeddings import EmbeddingProvider, HashEmbeddingProvider

DIMENSION = 4


def _normalize_sql(sql):
    return " ".join(sql.split())


class FakeDatabase:
    """In-memory memories table shared by every fake connection."""

    def __init__(self, dimension=DIMENSION):
        self.dimension = dimension
        self.rows = {}
        self.statements = []
        self.fail_with = None
        self.before_execute = None

    def execute(self, connection, sql, params):
        sql = _normalize_sql(sql)
        self.statements.append((sql, params))

        if self.before_execute is not None:
            self.before_execute(connection, sql, params)
        if connection.cancel_requested:
            connection.cancel_requested = False
            raise QueryCanceledError("canceling statement due to user request")
        if self.fail_with is not None:
            raise self.fail_with

        keyword = sql.split()[0].upper()
        if keyword == 'INSERT':
            return self._insert(connection, params)
        if keyword == 'DELETE':
            return self._delete(connection, params)
        if keyword == 'SELECT' and 'max_distance' in params:
            return self._search(sql, params)
        if keyword == 'SELECT':
            row = self.rows.get(params['id'])
            return ([dict(row)] if row else []), -1
        return [], 0

    def _insert(self, connection, params):
        if params['id'] in self.rows:
            raise psycopg2.IntegrityError("duplicate key value violates unique constraint")
        if len(params['embedding']) != self.dimension:
            raise psycopg2.DataError(
                f"expected {self.dimension} dimensions, not {len(params['embedding'])}"
            )
        row = {
            'id': params['id'],
            'type': params['type'],
            'content': json.loads(json.dumps(params['content'].adapted)),
            'source': params['source'],
            # pgvector's text output format
            'embedding': '[' + ','.join(repr(float(x)) for x in params['embedding']) + ']',
            'tags': list(params['tags']),
            'confidence': params['confidence'],
            'created_at': params['created_at'],
            'updated_at': params['updated_at'],
        }
        connection.pending.append(lambda: self.rows.__setitem__(row['id'], row))
        return [], 1

    def _delete(self, connection, params):
        memory_id = params['id']
        if memory_id not in self.rows:
            return [], 0
        connection.pending.append(lambda: self.rows.pop(memory_id, None))
        return [], 1

    def _search(self, sql, params):
        metric = next(m for m in METRICS.values() if f"embedding {m.operator}" in sql)
        query = np.asarray(params['embedding'], dtype=np.float32)
        results = []
        for row in self.rows.values():
            stored = np.asarray(json.loads(row['embedding']), dtype=np.float32)
            distance = metric.compute(stored, query)
            if not distance < params['max_distance']:
                continue
            if 'tags' in params and not set(params['tags']) <= set(row['tags']):
                continue
            results.append(dict(row, distance=distance))
        results.sort(key=lambda r: r['distance'])
        return results[:params['limit']], -1


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self.rowcount = -1
        self._results = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self._results, self.rowcount = self.connection.db.execute(self.connection, sql, params or {})

    def fetchall(self):
        results, self._results = self._results, []
        return results

    def fetchone(self):
        return self._results.pop(0) if self._results else None


class FakeConnection:
    def __init__(self, db):
        self.db = db
        self.closed = 0
        self.pending = []
        self.commits = 0
        self.rollbacks = 0
        self.cancel_requested = False
        self.cursor_factories = []

    def cursor(self, cursor_factory=None):
        self.cursor_factories.append(cursor_factory)
        return FakeCursor(self)

    def commit(self):
        for apply in self.pending:
            apply()
        self.pending = []
        self.commits += 1

    def rollback(self):
        self.pending = []
        self.rollbacks += 1

    def cancel(self):
        self.cancel_requested = True


class FakePool:
    def __init__(self, db, maxconn=4):
        self.db = db
        self.maxconn = maxconn
        self.closed = False
        self.checked_out = []
        self.returned = []
        self.getconn_error = None

    def getconn(self):
        if self.getconn_error is not None:
            raise self.getconn_error
        connection = FakeConnection(self.db)
        self.checked_out.append(connection)
        return connection

    def putconn(self, connection, close=False):
        self.checked_out.remove(connection)
        self.returned.append((connection, close))

    def closeall(self):
        self.closed = True


class FakeEmbeddingProvider(EmbeddingProvider):
    """Returns fixed vectors for known texts and hash vectors for the rest."""

    def __init__(self, vectors=None, dimension=DIMENSION):
        self.vectors = {text: np.asarray(v, dtype=np.float32) for text, v in (vectors or {}).items()}
        self.calls = []
        self.error = None
        self._fallback = HashEmbeddingProvider(dimension)

    @property
    def dimension(self):
        return self._fallback.dimension

    def generate(self, text, cancellation=None):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if text in self.vectors:
            return self.vectors[text]
        return self._fallback.generate(text)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def fake_pool(fake_db):
    return FakePool(fake_db)


@pytest.fixture
def embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def store(fake_pool, embedder):
    return MemoryStore(fake_pool, embedder, acquire_timeout=1.0)
