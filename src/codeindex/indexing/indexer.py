"""
Main Codebase Indexer

This module provides the query surface of the indexing system, orchestrating
extraction, classification, embedding and bundle resolution over an explicit
list of source files.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .bundles import BundleDefinition, BundleResolver
from .chunker import DEFAULT_MIN_BODY_SIZE, FunctionChunker
from .classifier import ClassificationEngine, ClassifiedUnit
from .embeddings import EmbeddingCache, create_backend
from .rules import RuleConfigManager
from .store import ClassifiedUnitStore
from .vector_store import SearchHit, VectorIndex, build_search_text, record_id

logger = logging.getLogger(__name__)


@dataclass
class IndexingStats:
    """Statistics from a scan."""
    total_files_scanned: int = 0
    total_files_indexed: int = 0
    total_units_created: int = 0
    indexing_time_seconds: float = 0.0
    units_by_kind: Dict[str, int] = field(default_factory=dict)
    units_by_purpose: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


class CodebaseIndexer:
    """Indexes JavaScript/TypeScript files into classified, searchable units."""

    def __init__(self,
                 rule_manager: Optional[RuleConfigManager] = None,
                 store: Optional[ClassifiedUnitStore] = None,
                 vector_index: Optional[VectorIndex] = None,
                 cache: Optional[EmbeddingCache] = None,
                 min_body_size: int = DEFAULT_MIN_BODY_SIZE,
                 workers: int = 4):
        self.rule_manager = rule_manager if rule_manager is not None else RuleConfigManager(config_path=None)
        self.store = store if store is not None else ClassifiedUnitStore()
        self.vector_index = vector_index if vector_index is not None else VectorIndex()
        self.cache = cache
        self.workers = max(1, workers)

        self.chunker = FunctionChunker(min_body_size)
        self.engine = ClassificationEngine(self.rule_manager)
        self.bundles = BundleResolver(self.store)

        # file path -> generation of the scan whose output is in the store
        self._generations: Dict[str, int] = {}
        self._generation = 0
        self._generation_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> 'CodebaseIndexer':
        """Build an indexer from IndexerSettings."""
        backend = create_backend(settings.embedding_backend,
                                 model=settings.embedding_model,
                                 api_key=settings.openai_api_key)
        return cls(
            rule_manager=RuleConfigManager(settings.rules_path, poll_interval=settings.config_poll_seconds),
            vector_index=VectorIndex(backend, batch_size=settings.batch_size),
            cache=EmbeddingCache(settings.cache_dir) if settings.cache_dir else None,
            min_body_size=settings.min_body_size,
            workers=settings.workers,
        )

    def _next_generation(self) -> int:
        with self._generation_lock:
            self._generation += 1
            return self._generation

    def _commit(self, file_path: str, units: List[ClassifiedUnit], generation: int) -> bool:
        """Write a file's units unless a newer scan already wrote that file."""
        with self._generation_lock:
            if self._generations.get(file_path, 0) > generation:
                return False
            self._generations[file_path] = generation
            self.store.replace_file(file_path, units)
        return True

    def process_text(self, file_text: str, file_path: str) -> List[ClassifiedUnit]:
        """Extract and classify one file's units without touching the store."""
        raw_units = self.chunker.extract(file_text, file_path)
        return self.engine.classify_all(raw_units)

    def _process_file(self, file_path: str) -> Tuple[str, List[ClassifiedUnit]]:
        content = Path(file_path).read_text(encoding='utf-8', errors='replace')
        return file_path, self.process_text(content, file_path)

    def scan_files(self, file_paths: Iterable[str]) -> IndexingStats:
        """
        Extract and classify the given files into the store.

        Files are processed in parallel; each file's units replace its previous
        units in one write. An unreadable file is recorded in the stats and skipped.
        """
        start_time = time.time()
        paths = list(dict.fromkeys(str(p) for p in file_paths))
        generation = self._next_generation()
        stats = IndexingStats(total_files_scanned=len(paths))

        logger.info(f"🔍 Scanning {len(paths)} files...")

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {executor.submit(self._process_file, path): path for path in paths}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    _, units = future.result()
                except OSError as e:
                    error_msg = f"Error reading {path}: {e}"
                    stats.errors.append(error_msg)
                    logger.warning(f"⚠️ {error_msg}")
                    continue

                if not self._commit(path, units, generation):
                    logger.debug(f"Skipping stale results for {path}")
                    continue

                stats.total_files_indexed += 1
                stats.total_units_created += len(units)
                for unit in units:
                    stats.units_by_kind[unit.kind] = stats.units_by_kind.get(unit.kind, 0) + 1
                    stats.units_by_purpose[unit.purpose] = stats.units_by_purpose.get(unit.purpose, 0) + 1

        stats.indexing_time_seconds = time.time() - start_time
        logger.info(f"✅ Scan complete: {stats.total_units_created} units from "
                    f"{stats.total_files_indexed} files in {stats.indexing_time_seconds:.2f}s")
        if stats.errors:
            logger.warning(f"⚠️ {len(stats.errors)} files failed")
        return stats

    def scan_text(self, file_text: str, file_path: str) -> List[ClassifiedUnit]:
        """Extract, classify and store units from in-memory source text."""
        units = self.process_text(file_text, file_path)
        self._commit(file_path, units, self._next_generation())
        return units

    def build_vector_index(self) -> int:
        """
        Rebuild the vector index from the store.

        Cached vectors are restored without calling the backend; the rest are
        embedded and written back to the cache.

        Returns:
            Number of units in the index.
        """
        units = self.store.all_units()
        self.vector_index.clear()
        if not units:
            return 0

        model_name = self.vector_index.backend.model_name
        cached: List[Tuple[ClassifiedUnit, object]] = []
        missing: List[ClassifiedUnit] = []
        keys: Dict[str, str] = {}

        for unit in units:
            if self.cache is None:
                missing.append(unit)
                continue
            key = EmbeddingCache.cache_key(model_name, build_search_text(unit))
            vector = self.cache.get(key)
            if vector is not None:
                cached.append((unit, vector))
            else:
                keys[unit.unit_id] = key
                missing.append(unit)

        if cached:
            logger.info(f"💾 Restored {len(cached)} embeddings from cache")
            self.vector_index.index_precomputed(cached)

        if missing:
            self.vector_index.index(missing)
            if self.cache is not None:
                for unit in missing:
                    vector = self.vector_index.get_vector(
                        record_id(unit.name, unit.file_path, unit.start_line, 0))
                    if vector is not None:
                        self.cache.put(keys[unit.unit_id], vector)

        return len(self.vector_index)

    def search(self, query: str, limit: int = 10, type_filter: Optional[str] = None,
               min_similarity: float = 0.5) -> List[SearchHit]:
        return self.vector_index.search(query, limit=limit, min_similarity=min_similarity,
                                        type_filter=type_filter)

    def suggest_bundles(self, file_path: str) -> List[str]:
        return self.engine.suggest_bundle_labels(file_path)

    def resolve_bundle(self, label: str) -> List[str]:
        """Files covered by a bundle label, sorted."""
        files: Set[str] = self.bundles.resolve(label)
        return sorted(files)

    def list_bundles(self) -> List[BundleDefinition]:
        return self.bundles.bundle_definitions()

    def get_stats(self) -> Dict[str, object]:
        config = self.rule_manager.config
        return {
            "files": len(self.store.file_paths()),
            "units": len(self.store),
            "rules_version": config.version,
            "rules_revision": config.revision,
            "vector_index": self.vector_index.get_stats(),
        }

    def clear(self) -> None:
        self.vector_index.clear()
        self.store.clear()
        with self._generation_lock:
            self._generations.clear()
