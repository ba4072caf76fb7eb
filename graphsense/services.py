from typing import Any, Dict, Optional

from .config import settings
from .embedding.embedding_service import EmbeddingService
from .enrichment.queue import EnrichmentQueue
from .graph.base import GraphStore
from .graph.json_graph_client import JsonGraphClient
from .graph.neo4j_client import Neo4jClient
from .indexer.pipeline import IndexingPipeline
from .llm.llm_service import LLMService
from .query.classifier import QueryClassifier
from .query.generator import CypherGenerator
from .query.planner import QueryPlanner
from .search.function_search import FunctionSearch
from .utils.logger import app_logger
from .vectordb.milvus_client import MilvusClient
from .watcher.change_watcher import ChangeWatcher


logger = app_logger.bind(component="services")


def build_graph_store(backend: Optional[str] = None) -> GraphStore:
    """Graph backend selected by ``graph_backend``."""
    backend = backend or settings.graph_backend
    if backend == "neo4j":
        return Neo4jClient()
    elif backend == "json":
        return JsonGraphClient(settings.graph_storage_path)
    else:
        raise ValueError(f"Unsupported graph backend: {backend}")


class GraphSenseServices:
    """Wires the stores and services used by every entry point."""

    def __init__(self, graph_store: GraphStore, record_store, embedding_service, llm_service):
        self.graph_store = graph_store
        self.record_store = record_store
        self.embedding_service = embedding_service
        self.llm_service = llm_service

        self.enrichment_queue = EnrichmentQueue(llm_service, embedding_service, record_store)
        self.pipeline = IndexingPipeline(
            graph_store,
            enrichment_queue=self.enrichment_queue,
            record_store=record_store,
        )
        self.function_search = FunctionSearch(embedding_service, record_store)
        self.planner = QueryPlanner(
            graph_store,
            QueryClassifier(llm_service),
            CypherGenerator(llm_service),
            function_search=self.function_search,
            llm_service=llm_service,
        )

    async def setup(self):
        await self.graph_store.setup()

    def create_watcher(self, root_path: str) -> ChangeWatcher:
        """Watcher that re-registers changed files and re-enriches their functions."""
        async def on_change(path: str):
            await self.pipeline.register_file(path, reparse=True)
            await self.graph_store.flush()

        return ChangeWatcher(root_path, on_change)

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "graph": await self.graph_store.get_database_stats(),
            "records": await self.record_store.get_collection_stats(),
            "enrichment": self.enrichment_queue.stats(),
        }

    async def close(self):
        await self.enrichment_queue.stop()
        await self.graph_store.close()
        await self.record_store.close()


def build_services() -> GraphSenseServices:
    """Construct the configured backends and providers."""
    try:
        embedding_service = EmbeddingService()
        llm_service = LLMService()
        graph_store = build_graph_store()
        record_store = MilvusClient(dimension=embedding_service.get_dimension())
    except Exception as e:
        logger.error(f"Error initializing components: {e}")
        raise

    logger.info("All components initialized successfully")
    return GraphSenseServices(graph_store, record_store, embedding_service, llm_service)
