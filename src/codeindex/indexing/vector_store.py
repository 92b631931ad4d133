"""
In-Memory Vector Index for Classified Units

This module keeps one embedding per classified unit and answers similarity
queries with a linear scan, which is fast enough at single-project scale.
The searchable text of a unit is canonical: identical unit content always
produces identical text, so a deterministic backend produces identical vectors.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from .chunker import file_basename
from .embeddings import EmbeddingBackend, HashingEmbeddingBackend, cosine_similarity

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingRecord:
    """A stored vector and the metadata needed to redisplay its unit."""
    id: str
    vector: np.ndarray
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    """Result from vector search."""
    id: str
    similarity: float
    metadata: Dict[str, Any]


def unit_files(unit) -> List[str]:
    files = getattr(unit, 'files', None)
    if files:
        return list(files)
    return [unit.file_path] if getattr(unit, 'file_path', None) else []


def build_search_text(unit) -> str:
    """
    Canonical searchable text for a unit.

    Parts, in order and only when present: code, type, domains, patterns,
    purpose, file basenames, joined with `` | ``.
    """
    parts = []

    if unit.code:
        parts.append(unit.code)
    if unit.purpose:
        parts.append(f"Type: {unit.purpose}")
    if unit.domains:
        parts.append(f"Domain: {', '.join(sorted(unit.domains))}")
    if unit.patterns:
        parts.append(f"Patterns: {', '.join(sorted(unit.patterns))}")
    if unit.purpose:
        parts.append(f"Purpose: {unit.purpose}")

    files = unit_files(unit)
    if files:
        parts.append(f"Files: {', '.join(file_basename(f) for f in files)}")

    return " | ".join(parts)


def unit_metadata(unit) -> Dict[str, Any]:
    complexity = getattr(unit, 'complexity', None)
    return {
        "content": unit.code or '',
        "name": unit.name,
        "filePath": unit.file_path,
        "startLine": unit.start_line,
        "kind": unit.kind,
        "purpose": unit.purpose,
        "domains": sorted(unit.domains),
        "patterns": sorted(unit.patterns),
        "files": unit_files(unit),
        "complexity": complexity.score if complexity is not None else 0,
    }


def record_id(name: Optional[str], file_path: Optional[str], start_line: Optional[int], position: int) -> str:
    """Identity key of a record, with a positional fallback."""
    if name and file_path:
        return f"{name}:{file_path}:{start_line if start_line is not None else ''}"
    return f"chunk-{position}"


def _matches_label(value: Any, label: str) -> bool:
    wanted = label.strip().lower()
    if isinstance(value, (list, tuple, set)):
        return any(str(item).lower() == wanted for item in value)
    return value is not None and str(value).lower() == wanted


class VectorIndex:
    """Vector index for classified units with search capabilities."""

    def __init__(self, backend: Optional[EmbeddingBackend] = None, batch_size: int = 32):
        self.backend = backend if backend is not None else HashingEmbeddingBackend()
        self.batch_size = batch_size
        self._records: Dict[str, EmbeddingRecord] = {}
        self._lock = threading.RLock()

    def _ensure_backend(self) -> None:
        if not self.backend.initialized:
            self.backend.initialize()

    def _embed_batch(self, texts: List[str], ids: List[str]) -> List[Optional[np.ndarray]]:
        """Embed a batch; if the batch call fails, retry items one at a time."""
        try:
            return list(self.backend.embed(texts))
        except Exception as e:
            logger.warning(f"⚠️ Batch embedding failed ({e}), retrying items individually")

        vectors: List[Optional[np.ndarray]] = []
        for text, unit_id in zip(texts, ids):
            try:
                vectors.append(self.backend.embed_one(text))
            except Exception as e:
                logger.warning(f"⚠️ Failed to embed {unit_id}: {e}")
                vectors.append(None)
        return vectors

    def index(self, units: Sequence) -> int:
        """
        Embed and store classified units.

        Raises:
            EmbeddingUnavailableError: If the backend cannot be initialized.

        Returns:
            Number of units stored. Units whose embedding failed are skipped.
        """
        self._ensure_backend()
        units = list(units)
        logger.info(f"🔤 Generating embeddings for {len(units)} units...")

        stored = 0
        for i in range(0, len(units), self.batch_size):
            batch = units[i:i + self.batch_size]
            ids = [record_id(u.name, u.file_path, u.start_line, i + j) for j, u in enumerate(batch)]
            vectors = self._embed_batch([build_search_text(u) for u in batch], ids)

            with self._lock:
                for unit, unit_id, vector in zip(batch, ids, vectors):
                    if vector is None:
                        continue
                    self._records[unit_id] = EmbeddingRecord(unit_id, np.asarray(vector, dtype=np.float32),
                                                             unit_metadata(unit))
                    stored += 1

        logger.info(f"✅ Stored {stored}/{len(units)} embeddings")
        return stored

    def index_precomputed(self, items: Iterable) -> int:
        """
        Store units that already carry vectors, without calling the backend.

        Each item is either a ``(unit, vector)`` pair or a mapping with an
        ``embedding`` and optional ``id``, ``name``, ``filePath``,
        ``startLine`` and ``metadata``.
        """
        stored = 0
        with self._lock:
            for position, item in enumerate(items):
                if isinstance(item, tuple):
                    unit, vector = item
                    unit_id = record_id(unit.name, unit.file_path, unit.start_line, position)
                    metadata = unit_metadata(unit)
                else:
                    vector = item.get("embedding")
                    unit_id = item.get("id") or record_id(item.get("name"), item.get("filePath"),
                                                          item.get("startLine"), position)
                    metadata = item.get("metadata") or {
                        "content": item.get("code", ""),
                        "name": item.get("name"),
                        "filePath": item.get("filePath"),
                        "purpose": item.get("purpose", ""),
                        "domains": list(item.get("domains", [])),
                        "patterns": list(item.get("patterns", [])),
                        "files": [item["filePath"]] if item.get("filePath") else [],
                    }

                if vector is None or len(vector) == 0:
                    continue
                self._records[unit_id] = EmbeddingRecord(unit_id, np.asarray(vector, dtype=np.float32), metadata)
                stored += 1

        logger.info(f"✅ Stored {stored} precomputed embeddings")
        return stored

    def upsert(self, unit_id: str, vector, metadata: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self._records[unit_id] = EmbeddingRecord(unit_id, np.asarray(vector, dtype=np.float32), metadata or {})

    def get_vector(self, unit_id: str) -> Optional[np.ndarray]:
        with self._lock:
            record = self._records.get(unit_id)
        return record.vector if record is not None else None

    def _rank(self, query_vec: np.ndarray, limit: int, min_similarity: float, keep) -> List[SearchHit]:
        with self._lock:
            hits = []
            for record in self._records.values():
                if keep is not None and not keep(record.metadata):
                    continue
                similarity = cosine_similarity(query_vec, record.vector)
                if similarity >= min_similarity:
                    hits.append(SearchHit(record.id, similarity, record.metadata))

        # Stable sort keeps insertion order for equal similarities
        hits.sort(key=lambda hit: hit.similarity, reverse=True)
        return hits[:limit]

    def search(self, query: str, limit: int = 10, min_similarity: float = 0.5,
               type_filter: Optional[str] = None) -> List[SearchHit]:
        """
        Rank stored units by cosine similarity to the query.

        Args:
            query: Free text, embedded with the index's backend
            limit: Maximum number of hits
            min_similarity: Hits below this similarity are dropped
            type_filter: Keep only units whose purpose or kind equals this label
        """
        if limit <= 0:
            return []
        self._ensure_backend()
        query_vec = self.backend.embed_one(query)

        keep = None
        if type_filter:
            keep = lambda meta: _matches_label(meta.get("purpose"), type_filter) or \
                _matches_label(meta.get("kind"), type_filter)
        return self._rank(query_vec, limit, min_similarity, keep)

    def _search_label(self, prefix: str, field_name: str, label: str, limit: int) -> List[SearchHit]:
        if limit <= 0:
            return []
        self._ensure_backend()
        query_vec = self.backend.embed_one(f"{prefix}: {label}")
        return self._rank(query_vec, limit, -1.0, lambda meta: _matches_label(meta.get(field_name), label))

    def search_by_type(self, label: str, limit: int = 10) -> List[SearchHit]:
        """Units whose purpose is ``label``, most similar to it first."""
        return self._search_label("Type", "purpose", label, limit)

    def search_by_domain(self, label: str, limit: int = 10) -> List[SearchHit]:
        return self._search_label("Domain", "domains", label, limit)

    def search_by_pattern(self, label: str, limit: int = 10) -> List[SearchHit]:
        return self._search_label("Patterns", "patterns", label, limit)

    def clear(self) -> None:
        """Drop every record. Rebuild from the classified-unit store afterwards."""
        with self._lock:
            self._records.clear()
        logger.info("🗑️ Cleared vector index")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            count = len(self._records)
        return {
            "total_records": count,
            "model_name": self.backend.model_name,
            "dimensions": self.backend.dimensions,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
