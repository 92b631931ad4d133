"""
Error types for the indexing pipeline.

Extraction and configuration errors are recovered inside the pipeline (the
offending match, file or rule document is skipped or replaced by defaults).
Embedding backend initialization errors are surfaced to the caller, who decides
whether to continue without semantic search.
"""

from typing import Optional


class IndexingError(Exception):
    """Base class for all indexing errors."""


class ExtractionError(IndexingError):
    """A file or a single match could not be extracted."""

    def __init__(self, message: str, file_path: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.file_path = file_path
        self.line = line

    def __str__(self) -> str:
        parts = [self.message]
        if self.file_path:
            parts.append(f"file: {self.file_path}")
        if self.line:
            parts.append(f"line: {self.line}")
        return " | ".join(parts)


class RuleConfigError(IndexingError):
    """The rule configuration document is missing or malformed."""


class EmbeddingUnavailableError(IndexingError):
    """The embedding backend could not be initialized or called."""
