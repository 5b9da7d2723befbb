"""
Distance metrics: pgvector operators and similarity-to-distance mappings.

Search takes a minimum similarity in [0, 1] from the caller and turns it
into the largest distance a row may have under the chosen operator.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np


@dataclass(frozen=True)
class DistanceMetric:
    """
    A pgvector distance operator paired with its threshold mapping.

    Attributes:
        name: Metric name used in configuration
        operator: SQL operator comparing two vectors (lower = more similar)
        opclass: Operator class for the HNSW index on the embedding column
        max_distance: Maps a minimum similarity to the exclusive distance bound
        compute: Reference implementation of the operator for numpy vectors
    """
    name: str
    operator: str
    opclass: str
    max_distance: Callable[[float], float]
    compute: Callable[[np.ndarray, np.ndarray], float]


def _cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return float('nan')
    return 1.0 - float(np.dot(a, b)) / denom


def _l2_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a - b))


def _negative_inner_product(a: np.ndarray, b: np.ndarray) -> float:
    return -float(np.dot(a, b))


COSINE = DistanceMetric(
    name='cosine',
    operator='<=>',
    opclass='vector_cosine_ops',
    max_distance=lambda similarity: 1.0 - similarity,
    compute=_cosine_distance,
)

# Only meaningful for unit-normalized embeddings: |a - b| = sqrt(2 - 2 cos)
L2 = DistanceMetric(
    name='l2',
    operator='<->',
    opclass='vector_l2_ops',
    max_distance=lambda similarity: math.sqrt(max(0.0, 2.0 * (1.0 - similarity))),
    compute=_l2_distance,
)

# pgvector's <#> returns the negated inner product
INNER_PRODUCT = DistanceMetric(
    name='inner_product',
    operator='<#>',
    opclass='vector_ip_ops',
    max_distance=lambda similarity: -similarity,
    compute=_negative_inner_product,
)

METRICS: Dict[str, DistanceMetric] = {
    metric.name: metric for metric in (COSINE, L2, INNER_PRODUCT)
}


def get_metric(name: str) -> DistanceMetric:
    """
    Look up a distance metric by name.

    Raises:
        ValueError: If the name is not one of METRICS
    """
    try:
        return METRICS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown distance metric: {name}. Choose from {', '.join(sorted(METRICS))}"
        ) from None
