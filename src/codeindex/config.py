"""
Indexer settings.

Values come from the environment, after loading a ``.env`` file from the
current directory when one exists.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .indexing.chunker import DEFAULT_MIN_BODY_SIZE
from .indexing.rules import DEFAULT_RULES_PATH

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"⚠️ Ignoring {name}={raw!r}: not an integer")
        return default
    return max(value, minimum)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return max(float(raw), 0.1)
    except ValueError:
        logger.warning(f"⚠️ Ignoring {name}={raw!r}: not a number")
        return default


@dataclass
class IndexerSettings:
    """Runtime settings for the indexer and CLI."""
    rules_path: str = DEFAULT_RULES_PATH
    embedding_backend: str = "hashing"
    embedding_model: Optional[str] = None
    openai_api_key: Optional[str] = None
    cache_dir: Optional[str] = ".embeddings_cache"
    batch_size: int = 32
    workers: int = 4
    min_body_size: int = DEFAULT_MIN_BODY_SIZE
    config_poll_seconds: float = 2.0

    @classmethod
    def from_env(cls, dotenv: bool = True) -> 'IndexerSettings':
        if dotenv:
            load_dotenv()

        cache_dir = os.getenv('CODEINDEX_CACHE_DIR', '.embeddings_cache')
        return cls(
            rules_path=os.getenv('CODEINDEX_RULES_PATH', DEFAULT_RULES_PATH),
            embedding_backend=os.getenv('CODEINDEX_EMBEDDING_BACKEND', 'hashing').strip().lower(),
            embedding_model=os.getenv('CODEINDEX_EMBEDDING_MODEL') or None,
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
            # An empty value disables the embedding cache
            cache_dir=cache_dir or None,
            batch_size=_int_env('CODEINDEX_BATCH_SIZE', 32),
            workers=_int_env('CODEINDEX_WORKERS', 4),
            min_body_size=_int_env('CODEINDEX_MIN_BODY_SIZE', DEFAULT_MIN_BODY_SIZE, minimum=0),
            config_poll_seconds=_float_env('CODEINDEX_CONFIG_POLL_SECONDS', 2.0),
        )
