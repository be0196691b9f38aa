"""
Embedding Capability

Pluggable text-to-vector providers. The core only relies on the async
interface below: a fixed dimensionality and batched embedding.

Providers:
- HashEmbeddingProvider: deterministic hashing-trick vectors, no model download
- EmbeddingService: on-device embeddings using fastembed
"""

import abc
import asyncio
import hashlib
import logging
import re
from typing import List, Optional

import numpy as np

logger = logging.getLogger("georag.common.embedding_service")

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class EmbeddingProvider(abc.ABC):
    """
    Async embedding capability.

    ``embed_batch`` processes texts in sub-batches of ``batch_size``; the
    requests inside one sub-batch run concurrently, which bounds the number
    of outstanding calls. Failures propagate to the caller, nothing is
    retried here.
    """

    batch_size: int = 10

    @abc.abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text"""

    @abc.abstractmethod
    def dimensions(self) -> int:
        """Length of the vectors returned by ``embed``"""

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        results: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            results.extend(await asyncio.gather(*(self.embed(t) for t in batch)))
        return results


class HashEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic embeddings from hashed word unigrams and bigrams.

    Texts sharing vocabulary get positive cosine similarity, identical texts
    get identical vectors. Vectors are L2 normalized; a text without any
    tokens maps to the zero vector.
    """

    def __init__(self, dimensions: int = 384, batch_size: int = 10):
        self._dimensions = dimensions
        self.batch_size = batch_size

    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)

    def embed_sync(self, text: str) -> List[float]:
        vector = np.zeros(self._dimensions, dtype=np.float64)

        tokens = _TOKEN_RE.findall(text.lower())
        grams = tokens + [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]
        for gram in grams:
            digest = hashlib.blake2b(gram.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self._dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()


class EmbeddingService(EmbeddingProvider):
    """
    On-device embedding service backed by fastembed.

    The model runs in a worker thread so embedding does not block the
    event loop.
    """

    def __init__(
        self,
        model: str = "sentence-transformers/all-MiniLM-L6-v2",
        batch_size: int = 10,
    ):
        self._model_name = model
        self.batch_size = batch_size
        self._model = None
        self._dimensions: Optional[int] = None

        try:
            from fastembed import TextEmbedding
            self._model = TextEmbedding(model_name=model)
            logger.info("Initialized fastembed model %s", model)
        except ImportError as e:
            logger.warning("fastembed not available, embedding service disabled: %s", e)

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._model is not None

    def dimensions(self) -> int:
        if self._dimensions is None:
            self._dimensions = len(self._embed_sync(["dimension check"])[0])
        return self._dimensions

    async def embed(self, text: str) -> List[float]:
        if not text:
            raise ValueError("Cannot embed empty text")
        vectors = await asyncio.to_thread(self._embed_sync, [text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        results: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            results.extend(await asyncio.to_thread(self._embed_sync, batch))
        return results

    def _embed_sync(self, texts: List[str]) -> List[List[float]]:
        if not self._model:
            raise RuntimeError("Embedding model not initialized")

        # fastembed yields one numpy array per text
        return [np.asarray(vec, dtype=np.float64).tolist() for vec in self._model.embed(texts)]


def create_embedding_provider(mode: str, model: str, dimensions: int, batch_size: int) -> EmbeddingProvider:
    """
    Build the provider selected by configuration.

    Args:
        mode: "hash" or "femb"
        model: Model name (fastembed only)
        dimensions: Vector length (hash only)
        batch_size: Sub-batch size for batched embedding
    """
    if mode == "hash":
        return HashEmbeddingProvider(dimensions=dimensions, batch_size=batch_size)
    if mode == "femb":
        return EmbeddingService(model=model, batch_size=batch_size)
    raise ValueError(f"Unsupported embedding mode: {mode}")
