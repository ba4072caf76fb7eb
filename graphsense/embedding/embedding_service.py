from typing import List
import asyncio
from openai import OpenAI
import requests

from ..config import settings
from ..utils.logger import app_logger


OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OllamaEmbeddingProvider:
    """Ollama embedding provider."""

    def __init__(self, host: str = "http://localhost:11434", model: str = "nomic-embed-text",
                 dimension: int = 768):
        self.host = host.rstrip("/")
        self.model = model
        self.logger = app_logger.bind(component="ollama_embedding")
        self.dimension = dimension
        self.session = requests.Session()

    async def embed_text(self, text: str) -> List[float]:
        """Generate embedding for a single text using Ollama."""
        try:
            response = await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.session.post(
                    f"{self.host}/api/embeddings",
                    json={
                        "model": self.model,
                        "prompt": text
                    },
                    timeout=settings.llm_timeout,
                )
            )
            response.raise_for_status()
            result = response.json()
            return result["embedding"]
        except Exception as e:
            self.logger.error(f"Error generating Ollama embedding: {e}")
            raise

    def get_dimension(self) -> int:
        """Get the dimension of embeddings."""
        return self.dimension


class OpenAIEmbeddingProvider:
    """OpenAI embedding provider."""

    def __init__(self, api_key: str, model: str = "text-embedding-3-small"):
        self.client = OpenAI(api_key=api_key, timeout=settings.llm_timeout)
        self.model = model
        self.logger = app_logger.bind(component="openai_embedding")
        self.dimension = OPENAI_DIMENSIONS.get(model, 1536)

    async def embed_text(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        try:
            response = await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.embeddings.create(
                    model=self.model,
                    input=text
                )
            )
            return response.data[0].embedding
        except Exception as e:
            self.logger.error(f"Error generating OpenAI embedding: {e}")
            raise

    def get_dimension(self) -> int:
        """Get the dimension of embeddings."""
        return self.dimension


class EmbeddingService:
    """Embeds function summaries and search queries."""

    def __init__(self, provider=None):
        self.logger = app_logger.bind(component="embedding_service")
        self.provider = provider or self._initialize_provider()
        self.dimension = self.provider.get_dimension()

    def _initialize_provider(self):
        """Initialize the embedding provider based on configuration."""
        if settings.embedding_provider == "ollama":
            return OllamaEmbeddingProvider(
                host=settings.ollama_host,
                model=settings.ollama_model,
                dimension=settings.milvus_dimension,
            )
        elif settings.embedding_provider == "openai":
            if not settings.openai_api_key:
                raise ValueError("OpenAI API key is required for OpenAI embeddings")
            return OpenAIEmbeddingProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_model
            )
        else:
            raise ValueError(f"Unsupported embedding provider: {settings.embedding_provider}")

    async def embed_text(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        return await self.provider.embed_text(text)

    async def embed_query(self, query: str) -> List[float]:
        """Generate embedding for a search query."""
        return await self.embed_text(query)

    def get_dimension(self) -> int:
        """Get the dimension of embeddings."""
        return self.dimension
