"""
Tests for the schema bootstrap.
"""

from unittest.mock import MagicMock

import pytest

from postgmem.memory import L2, create_schema
from postgmem.memory.schema import schema_statements


class TestSchema:
    """Test DDL generation."""

    def test_statements_use_dimension_and_metric(self):
        statements = [" ".join(s.split()) for s in schema_statements(384, L2)]

        assert statements[0] == "CREATE EXTENSION IF NOT EXISTS vector"
        assert "embedding VECTOR(384) NOT NULL" in statements[1]
        assert "tags TEXT[] NOT NULL DEFAULT '{}'" in statements[1]
        assert "USING hnsw (embedding vector_l2_ops)" in statements[2]
        assert "USING gin (tags)" in statements[3]
        assert all("IF NOT EXISTS" in s for s in statements)

    @pytest.mark.parametrize("dimension", [0, -3, "384", 1.5])
    def test_rejects_bad_dimension(self, dimension):
        with pytest.raises(ValueError):
            schema_statements(dimension)

    def test_create_schema_executes_all_statements(self):
        connection = MagicMock()
        cursor = connection.cursor.return_value.__enter__.return_value

        create_schema(connection, 8)

        assert cursor.execute.call_count == len(schema_statements(8))
        connection.commit.assert_not_called()
