"""
Semantic Code Indexing System

This package turns JavaScript/TypeScript source files into classified,
searchable units and derives label-based bundles from them.

Core Components:
- CodebaseIndexer: Main indexing orchestrator
- FunctionChunker: Function-level unit extraction
- RuleConfigManager: Hot-reloadable classification rules
- ClassificationEngine: Purpose, domain and pattern labelling
- VectorIndex: Embedding storage and similarity search
- BundleResolver: Label to file-set resolution
"""

from .indexer import CodebaseIndexer, IndexingStats
from .chunker import FunctionChunker, RawUnit
from .rules import RuleConfig, RuleConfigManager
from .classifier import ClassificationEngine, ClassifiedUnit
from .embeddings import EmbeddingCache, create_backend
from .vector_store import VectorIndex, SearchHit
from .store import ClassifiedUnitStore
from .bundles import BundleResolver
from .errors import IndexingError, ExtractionError, RuleConfigError, EmbeddingUnavailableError

__version__ = "1.0.0"
__all__ = [
    "CodebaseIndexer",
    "IndexingStats",
    "FunctionChunker",
    "RawUnit",
    "RuleConfig",
    "RuleConfigManager",
    "ClassificationEngine",
    "ClassifiedUnit",
    "EmbeddingCache",
    "create_backend",
    "VectorIndex",
    "SearchHit",
    "ClassifiedUnitStore",
    "BundleResolver",
    "IndexingError",
    "ExtractionError",
    "RuleConfigError",
    "EmbeddingUnavailableError",
]
