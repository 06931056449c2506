"""Semantic search and retrieval over note documents."""

__version__ = "0.1.0"
