"""Embedding ingestion and similarity retrieval over a vector record store."""

__version__ = "0.1.0"
