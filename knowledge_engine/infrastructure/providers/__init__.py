"""Embedding provider adapters."""

from .huggingface_embedding_provider import HuggingFaceEmbeddingProvider
from .openrouter_embedding_provider import OpenRouterEmbeddingProvider

__all__ = ["HuggingFaceEmbeddingProvider", "OpenRouterEmbeddingProvider"]
