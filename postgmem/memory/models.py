"""
Memory record stored in the memories table.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

# Columns selected by every read, decoded by name
MEMORY_COLUMNS = (
    'id', 'type', 'content', 'source', 'embedding',
    'tags', 'confidence', 'created_at', 'updated_at'
)


def parse_vector(value: Any) -> np.ndarray:
    """
    Decode a pgvector value into a float32 array.

    psycopg2 returns ``vector`` columns as their text form ``[1,2,3]``
    unless an adapter is registered, in which case a sequence arrives.
    """
    if isinstance(value, str):
        value = json.loads(value)
    vector = np.asarray(value, dtype=np.float32)
    if vector.ndim != 1:
        raise ValueError(f"Expected a 1-D vector, got shape {vector.shape}")
    return vector


@dataclass
class Memory:
    """
    A stored memory.

    ``embedding`` and ``distance`` are excluded from equality: vectors go
    through a float text round trip in the database, and distance only
    exists on search results.
    """
    id: uuid.UUID
    type: str
    content: Any
    source: str
    embedding: np.ndarray = field(compare=False, repr=False)
    tags: List[str] = field(default_factory=list)
    confidence: float = 1.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    distance: Optional[float] = field(default=None, compare=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Memory":
        """
        Build a Memory from a RealDictCursor row.

        Raises:
            ValueError: If a column is missing or holds malformed data
        """
        try:
            memory_id = row['id']
            if not isinstance(memory_id, uuid.UUID):
                memory_id = uuid.UUID(str(memory_id))

            return cls(
                id=memory_id,
                type=row['type'],
                # jsonb arrives decoded by psycopg2's json typecaster
                content=row['content'],
                source=row['source'],
                embedding=parse_vector(row['embedding']),
                tags=list(row['tags'] or []),
                confidence=float(row['confidence']),
                created_at=row['created_at'],
                updated_at=row['updated_at'],
                distance=float(row['distance']) if row.get('distance') is not None else None,
            )
        except KeyError as e:
            raise ValueError(f"Memory row is missing column {e}") from e
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed memory row: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data = {
            'id': str(self.id),
            'type': self.type,
            'content': self.content,
            'source': self.source,
            'embedding': self.embedding.tolist(),
            'tags': list(self.tags),
            'confidence': self.confidence,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if self.distance is not None:
            data['distance'] = self.distance
        return data
