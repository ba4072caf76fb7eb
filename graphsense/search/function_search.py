from typing import List, Optional

from ..config import settings
from ..types import RankedFunction
from ..utils.logger import app_logger
from .rerank_service import SummaryReranker


class FunctionSearch:
    """Semantic search over function summaries."""

    def __init__(self, embedding_service, record_store, reranker: Optional[SummaryReranker] = None,
                 rerank_enabled: Optional[bool] = None):
        self.logger = app_logger.bind(component="function_search")
        self.embedding_service = embedding_service
        self.record_store = record_store
        self.rerank_enabled = settings.rerank_enabled if rerank_enabled is None else rerank_enabled
        self.reranker = reranker or SummaryReranker()

    async def search(self, query: str, top_k: Optional[int] = None) -> List[RankedFunction]:
        """Embed the query, fetch the nearest summaries, optionally rerank."""
        top_k = top_k or settings.top_k_results
        self.logger.info(f"Searching functions for: {query}")

        embedding = await self.embedding_service.embed_query(query)
        hits = await self.record_store.similarity_search(embedding, top_k)

        order = list(range(len(hits)))
        if self.rerank_enabled and len(hits) > 1:
            order = self.reranker.rerank(
                query,
                [hit["record"].summary for hit in hits],
                [hit["score"] for hit in hits],
            )

        results = []
        for rank, index in enumerate(order, start=1):
            record = hits[index]["record"]
            results.append(RankedFunction(
                id=record.id,
                name=record.name,
                path=record.path,
                score=hits[index]["score"],
                rank=rank,
                summary=record.summary,
            ))
        return results
