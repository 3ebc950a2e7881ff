"""
Embedding providers.

Ollama is the production provider; sentence-transformers runs in-process,
and the deterministic hash provider lets tests and offline runs work
without any model.
"""

from abc import ABC, abstractmethod
import hashlib
import re

import httpx
import numpy as np
import ollama

from ..core.errors import EmbeddingUnavailable

_TOKEN = re.compile(r"\w+", re.UNICODE)


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic token-hashing embedding provider.

    Each lower-cased word token is hashed into a bucket with a sign, so texts
    sharing words end up close in cosine space. Reproducible across runs and
    needs no model service, which makes it the provider for tests.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector from hashed word tokens."""
        vector = np.zeros(self.dimension, dtype=np.float64)

        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).hexdigest()
            bucket = int(digest[:8], 16) % self.dimension
            sign = 1.0 if int(digest[8:10], 16) % 2 == 0 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class OllamaEmbedding(IEmbeddingProvider):
    """Embeddings from an Ollama server (one HTTP call per text, no retry)."""

    def __init__(self, host: str = "http://localhost:11434", model_name: str = "mxbai-embed-large",
                 timeout: float = 30.0, client=None):
        self.host = host
        self.model_name = model_name
        self.timeout = timeout
        self._client = client
        self._dimension = None

    @property
    def client(self):
        if self._client is None:
            self._client = ollama.Client(host=self.host, timeout=self.timeout)
        return self._client

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using the configured Ollama model."""
        try:
            response = self.client.embed(model=self.model_name, input=text)
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            raise EmbeddingUnavailable("embed", e)

        embeddings = response["embeddings"]
        if not embeddings or not embeddings[0]:
            raise EmbeddingUnavailable("embed", ValueError(f"model {self.model_name} returned no embedding"))
        return list(embeddings[0])

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = len(self.embed_text("dimension probe"))
        return self._dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False)
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            # Get dimension by encoding a dummy string
            dummy_embedding = self.model.encode("test", convert_to_tensor=False)
            self._dimension = len(dummy_embedding)
        return self._dimension
