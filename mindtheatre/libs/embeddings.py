from __future__ import annotations

import hashlib
import logging
import re
from typing import Any, List, Protocol, Sequence

import numpy as np
from openai import AsyncOpenAI

LOGGER = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class EmbeddingError(RuntimeError):
    """Raised when an embedding cannot be produced at the configured dimension."""


class Embedder(Protocol):
    dimension: int

    async def embed(self, text: str) -> List[float]: ...

    async def aclose(self) -> None: ...


def _normalise_input(text: str) -> str:
    # Newlines degrade embedding quality for the OpenAI models.
    return " ".join((text or "").split())


def _check_dimension(vector: Sequence[float], dimension: int) -> List[float]:
    if len(vector) != dimension:
        raise EmbeddingError(f"Embedding has {len(vector)} dimensions, expected {dimension}")
    return [float(x) for x in vector]


class OpenAIEmbedder:
    """Embedding capability backed by the OpenAI embeddings endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        dimension: int,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if client is None and not api_key:
            raise RuntimeError("OPENAI_API_KEY is required for embeddings.")
        self.model = model
        self.dimension = dimension
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def embed(self, text: str) -> List[float]:
        normalized = _normalise_input(text)
        if not normalized:
            raise EmbeddingError("Cannot embed empty text")
        try:
            response = await self._client.embeddings.create(model=self.model, input=[normalized])
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        if not response.data:
            raise EmbeddingError("No embedding data received from the embeddings API")
        return _check_dimension(response.data[0].embedding, self.dimension)

    async def aclose(self) -> None:
        await self._client.close()


class HashingEmbedder:
    """
    Deterministic feature-hashing embedder.
    Identical text always maps to the same unit vector, so self-distance is zero.
    Used for local runs without an embeddings API and throughout the tests.
    """

    def __init__(self, dimension: int) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        normalized = _normalise_input(text).lower()
        if not normalized:
            raise EmbeddingError("Cannot embed empty text")
        vec = np.zeros(self.dimension, dtype=float)
        for token in _TOKEN_RE.findall(normalized):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[bucket] += sign
        norm = float(np.linalg.norm(vec))
        if norm == 0.0:
            vec[0] = 1.0
            norm = 1.0
        return (vec / norm).tolist()

    async def aclose(self) -> None:
        return None


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """pgvector-compatible cosine distance (1 - cosine similarity)."""

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 1.0
    return float(1.0 - np.dot(va, vb) / denom)


def to_pgvector(vec: Sequence[Any]) -> str:
    """Render a Python sequence as a pgvector literal."""

    floats = [float(x) for x in vec]
    return "[" + ",".join(repr(value) for value in floats) + "]"


def parse_pgvector(value: Any) -> List[float]:
    """Parse a pgvector column (list, tuple, or string literal) into floats."""

    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [float(x) for x in value]
    if isinstance(value, np.ndarray):
        return value.astype(float).tolist()
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = bytes(value).decode("utf-8", errors="ignore")
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        parts = [part.strip() for part in text.split(",") if part.strip()]
        return [float(part) for part in parts]
    return []


__all__ = [
    "Embedder",
    "EmbeddingError",
    "HashingEmbedder",
    "OpenAIEmbedder",
    "cosine_distance",
    "parse_pgvector",
    "to_pgvector",
]
