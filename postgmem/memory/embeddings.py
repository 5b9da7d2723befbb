"""
Embedding providers: turn memory text into fixed-dimension vectors.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import numpy as np

from .cancellation import CancellationToken, check_cancelled
from .errors import EmbeddingUnavailableError

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    def generate(
        self,
        text: str,
        cancellation: Optional[CancellationToken] = None
    ) -> np.ndarray:
        """
        Generate an embedding vector for text.

        Args:
            text: The text to embed
            cancellation: Optional token checked around the upstream call

        Returns:
            1-D float32 array of length ``dimension``

        Raises:
            EmbeddingUnavailableError: If the upstream call fails
            OperationCancelledError: If the token was triggered
        """

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Get the embedding dimension."""


class HashEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic hash-based embeddings.

    WARNING: Semantically similar text will NOT have similar embeddings.
    Identical text always maps to the identical unit vector, which is
    enough for tests and offline demos.
    """

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension
        self._warning_shown = False

    @property
    def dimension(self) -> int:
        return self._dimension

    def generate(self, text, cancellation=None):
        check_cancelled(cancellation, "embedding")

        if not self._warning_shown:
            logger.warning("Using placeholder hash-based embeddings. Configure a real embedding model in production!")
            self._warning_shown = True

        seed = int.from_bytes(hashlib.sha256(text.encode('utf-8')).digest()[:8], 'big')
        rng = np.random.default_rng(seed)
        embedding = rng.standard_normal(self._dimension)
        embedding = embedding / np.linalg.norm(embedding)
        return embedding.astype(np.float32)


class OllamaEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings from an Ollama server's ``/api/embed`` endpoint.

    One request per call, no retries. The HTTP client is created once and
    shared between threads.
    """

    def __init__(
        self,
        base_url: str = 'http://localhost:11434',
        model: str = 'all-minilm:33m-l12-v2-fp16',
        dimension: int = 384,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        """
        Initialize the Ollama provider.

        Args:
            base_url: Ollama server URL
            model: Embedding model name
            dimension: Expected vector length; other lengths are rejected
            timeout: Request timeout in seconds
            client: Optional pre-built httpx client (mainly for tests)
        """
        self.base_url = base_url.rstrip('/')
        self.model = model
        self._dimension = dimension
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    @property
    def dimension(self) -> int:
        return self._dimension

    def generate(self, text, cancellation=None):
        check_cancelled(cancellation, "embedding")

        try:
            response = self._client.post(
                f"{self.base_url}/api/embed",
                json={'model': self.model, 'input': text}
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise EmbeddingUnavailableError(
                f"Embedding request failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingUnavailableError(f"Embedding request failed: {e}") from e
        except ValueError as e:
            raise EmbeddingUnavailableError(f"Embedding response is not valid JSON: {e}") from e

        check_cancelled(cancellation, "embedding")

        try:
            embedding = np.asarray(data['embeddings'][0], dtype=np.float32)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingUnavailableError(f"Malformed embedding response: {e}") from e

        if embedding.ndim != 1 or embedding.shape[0] != self._dimension:
            raise EmbeddingUnavailableError(
                f"Expected embedding of dimension {self._dimension}, got shape {embedding.shape}"
            )

        logger.debug(f"Generated {self._dimension}-d embedding with {self.model}")
        return embedding

    def close(self):
        """Close the HTTP client."""
        self._client.close()
