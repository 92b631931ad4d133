"""
Embedding Backends for Code Units

This module turns canonical unit text into fixed-dimension, L2-normalized
vectors. Three backends are available:

- hashing: deterministic token hashing, offline, no model download
- openai: OpenAI's text-embedding-3-small over the REST API
- sentence-transformers: local all-MiniLM-L6-v2 (optional dependency)

Backends initialize lazily. Initialization failures raise
EmbeddingUnavailableError so callers can decide whether to run without
semantic search.
"""

import hashlib
import logging
import os
import re
import shutil
from typing import Dict, List, Optional, Sequence

import numpy as np
import requests

from .errors import EmbeddingUnavailableError

logger = logging.getLogger(__name__)


def normalize(vector) -> np.ndarray:
    """L2-normalize a vector; zero vectors are returned unchanged."""
    vec = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec
    return vec / norm


class EmbeddingBackend:
    """Interface shared by all embedding backends."""

    model_name: str = "unknown"
    dimensions: int = 0

    def __init__(self):
        self.initialized = False

    def initialize(self) -> None:
        """Prepare the backend. Raises EmbeddingUnavailableError on failure."""
        self.initialized = True

    def ensure_initialized(self) -> None:
        if not self.initialized:
            self.initialize()

    def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        """Embed a batch of texts, one normalized vector per text."""
        raise NotImplementedError

    def embed_one(self, text: str) -> np.ndarray:
        return self.embed([text])[0]


_STOP_TOKENS = frozenset({'the', 'a', 'an', 'and', 'or', 'of', 'to', 'in'})


def tokenize(text: str) -> List[str]:
    """Split text into lower-cased word tokens, camelCase and snake_case aware."""
    tokens = []
    for part in re.split(r'[^A-Za-z0-9]+', text):
        if not part:
            continue
        for segment in re.findall(r'[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+', part):
            lowered = segment.lower()
            if lowered not in _STOP_TOKENS:
                tokens.append(lowered)
    return tokens


class HashingEmbeddingBackend(EmbeddingBackend):
    """Deterministic bag-of-tokens vectors via the hashing trick."""

    def __init__(self, dimensions: int = 384):
        super().__init__()
        self.dimensions = dimensions
        self.model_name = f"hashing-{dimensions}"

    def _vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dimensions, dtype=np.float32)
        for token in tokenize(text):
            digest = int(hashlib.md5(token.encode('utf-8')).hexdigest()[:8], 16)
            vec[digest % self.dimensions] += 1.0
        return normalize(vec)

    def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        self.ensure_initialized()
        return [self._vector(text) for text in texts]


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """Embeddings from the OpenAI REST API."""

    API_URL = "https://api.openai.com/v1/embeddings"

    def __init__(self, api_key: Optional[str] = None, model: str = "text-embedding-3-small",
                 dimensions: int = 1536, timeout: int = 60):
        super().__init__()
        self.api_key = api_key or os.getenv('OPENAI_API_KEY')
        self.model_name = model
        self.dimensions = dimensions
        self.timeout = timeout

    def initialize(self) -> None:
        if not self.api_key:
            raise EmbeddingUnavailableError("OpenAI API key required for embedding service")
        self.initialized = True

    def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        self.ensure_initialized()
        response = requests.post(
            self.API_URL,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            },
            json={
                "model": self.model_name,
                "input": list(texts),
                "dimensions": self.dimensions
            },
            timeout=self.timeout
        )
        response.raise_for_status()
        data = response.json()

        ordered = sorted(data["data"], key=lambda item: item.get("index", 0))
        return [normalize(item["embedding"]) for item in ordered]


class SentenceTransformerBackend(EmbeddingBackend):
    """Local embeddings with sentence-transformers."""

    def __init__(self, model: str = "sentence-transformers/all-MiniLM-L6-v2"):
        super().__init__()
        self.model_name = model
        self.dimensions = 384
        self._model = None

    def initialize(self) -> None:
        logger.info(f"🤖 Initializing local embedding model ({self.model_name})...")
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise EmbeddingUnavailableError(
                "sentence-transformers is not installed (pip install 'codeindex[local]')"
            ) from e
        try:
            self._model = SentenceTransformer(self.model_name)
        except Exception as e:
            raise EmbeddingUnavailableError(f"Failed to load {self.model_name}: {e}") from e
        self.dimensions = int(self._model.get_sentence_embedding_dimension() or self.dimensions)
        self.initialized = True
        logger.info("✅ Local embedding model ready")

    def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        self.ensure_initialized()
        vectors = self._model.encode(list(texts), normalize_embeddings=True, convert_to_numpy=True)
        return [normalize(vector) for vector in vectors]


BACKENDS = {
    "hashing": HashingEmbeddingBackend,
    "openai": OpenAIEmbeddingBackend,
    "sentence-transformers": SentenceTransformerBackend,
}


def create_backend(name: str = "hashing", model: Optional[str] = None,
                   api_key: Optional[str] = None) -> EmbeddingBackend:
    """Build a backend by name. The backend is not initialized yet."""
    if name not in BACKENDS:
        raise EmbeddingUnavailableError(f"Unknown embedding backend: {name} (choose from {', '.join(BACKENDS)})")
    if name == "openai":
        return OpenAIEmbeddingBackend(api_key=api_key, model=model or "text-embedding-3-small")
    if name == "sentence-transformers":
        return SentenceTransformerBackend(model=model or "sentence-transformers/all-MiniLM-L6-v2")
    return HashingEmbeddingBackend()


def cosine_similarity(vec1, vec2) -> float:
    """Cosine similarity; does not assume the inputs are normalized."""
    a = np.asarray(vec1, dtype=np.float32)
    b = np.asarray(vec2, dtype=np.float32)
    if a.size == 0 or b.size == 0 or a.shape != b.shape:
        return 0.0

    norm1 = np.linalg.norm(a)
    norm2 = np.linalg.norm(b)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(a, b) / (norm1 * norm2))


class EmbeddingCache:
    """Simple file-based cache for embeddings to avoid recomputation."""

    def __init__(self, cache_dir: str = ".embeddings_cache"):
        self.cache_dir = cache_dir
        os.makedirs(cache_dir, exist_ok=True)

    @staticmethod
    def cache_key(model_name: str, text: str) -> str:
        return hashlib.sha256(f"{model_name}\n{text}".encode()).hexdigest()[:16]

    def get(self, key: str) -> Optional[np.ndarray]:
        """Get a cached embedding."""
        cache_file = os.path.join(self.cache_dir, f"{key}.npy")

        if os.path.exists(cache_file):
            try:
                return np.load(cache_file)
            except (OSError, ValueError, EOFError):
                # Remove corrupted cache file
                os.remove(cache_file)

        return None

    def put(self, key: str, embedding) -> None:
        """Cache an embedding."""
        cache_file = os.path.join(self.cache_dir, f"{key}.npy")

        try:
            np.save(cache_file, np.asarray(embedding, dtype=np.float32))
        except OSError as e:
            logger.warning(f"⚠️ Failed to cache embedding for {key}: {e}")

    def clear(self) -> None:
        """Clear all cached embeddings."""
        if os.path.exists(self.cache_dir):
            shutil.rmtree(self.cache_dir)
        os.makedirs(self.cache_dir, exist_ok=True)

    def get_stats(self) -> Dict[str, float]:
        """Get cache statistics."""
        cache_files = [f for f in os.listdir(self.cache_dir) if f.endswith('.npy')]

        total_size = sum(
            os.path.getsize(os.path.join(self.cache_dir, f))
            for f in cache_files
        )

        return {
            "cached_embeddings": len(cache_files),
            "total_size_bytes": total_size,
            "total_size_mb": total_size / (1024 * 1024)
        }
