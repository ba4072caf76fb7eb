"""
Embedding generation for function summaries and queries.
"""

from .embedding_service import EmbeddingService

__all__ = ['EmbeddingService']
