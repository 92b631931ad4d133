"""Semantic indexing of JavaScript/TypeScript codebases."""

__version__ = "1.0.0"
