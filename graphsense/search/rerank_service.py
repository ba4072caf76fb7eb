from typing import List, Optional
import re
import numpy as np
from rank_bm25 import BM25Okapi

from ..config import settings
from ..utils.logger import app_logger


def tokenize(text: str) -> List[str]:
    """Lowercased word tokens, with camelCase identifiers split apart."""
    text = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', text or "")
    text = text.lower()
    text = re.sub(r'[^\w\s]', ' ', text)
    return [token for token in text.split() if len(token) > 1]


def normalize_scores(scores) -> np.ndarray:
    """Min-max normalization; a flat score list maps to 0.5."""
    scores = np.asarray(scores, dtype=float)
    if scores.size == 0:
        return scores
    min_score, max_score = scores.min(), scores.max()
    if max_score == min_score:
        return np.full(scores.shape, 0.5)
    return (scores - min_score) / (max_score - min_score)


class SummaryReranker:
    """Reranks vector hits by BM25 relevance of their summaries to the query."""

    def __init__(self, vector_weight: Optional[float] = None, bm25_weight: Optional[float] = None):
        self.logger = app_logger.bind(component="summary_reranker")
        self.vector_weight = settings.rerank_vector_weight if vector_weight is None else vector_weight
        self.bm25_weight = settings.rerank_bm25_weight if bm25_weight is None else bm25_weight

    def bm25_scores(self, query: str, documents: List[str]) -> np.ndarray:
        corpus = [tokenize(doc) for doc in documents]
        query_tokens = tokenize(query)
        if not query_tokens or not any(corpus):
            return np.zeros(len(documents))
        return np.asarray(BM25Okapi(corpus).get_scores(query_tokens), dtype=float)

    def rerank(self, query: str, documents: List[str], scores: Optional[List[float]] = None) -> List[int]:
        """Indices of ``documents`` ordered best first.

        ``scores`` are the similarity scores from the vector search; when
        omitted every candidate gets the same vector score.
        """
        if not documents:
            return []
        if scores is None:
            scores = [1.0] * len(documents)

        vector_norm = normalize_scores(scores)
        bm25_norm = normalize_scores(self.bm25_scores(query, documents))
        combined = vector_norm * self.vector_weight + bm25_norm * self.bm25_weight

        # stable: ties keep the vector order
        order = sorted(range(len(documents)), key=lambda i: -combined[i])
        self.logger.debug(f"Reranked {len(documents)} candidates, top index {order[0]}")
        return order
