from pathlib import Path
from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Graph Database Configuration
    graph_backend: str = Field(default="neo4j", description="neo4j or json")
    graph_storage_path: Optional[str] = Field(default="data/graph_data.json")

    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_username: str = Field(default="neo4j")
    neo4j_password: str = Field(default="neo4j")
    neo4j_database: Optional[str] = Field(default=None)

    # Function record store
    milvus_host: str = Field(default="localhost")
    milvus_port: int = Field(default=19530)
    milvus_collection_name: str = Field(default="functions")
    milvus_dimension: int = Field(default=768)

    # Embedding Service Configuration
    embedding_provider: str = Field(default="ollama")
    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="text-embedding-3-small")

    ollama_host: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="nomic-embed-text")

    # Generation Service Configuration
    llm_provider: str = Field(default="openai")
    openai_chat_model: str = Field(default="gpt-4o-mini")
    ollama_chat_model: str = Field(default="llama3.1")
    llm_temperature: float = Field(default=0.1)
    llm_timeout: float = Field(default=120.0)

    # Source Parsing Configuration
    source_extensions: str = Field(default=".ts,.tsx,.js,.jsx,.mjs,.cjs")
    default_source_extension: str = Field(default=".ts")
    link_local_calls: bool = Field(default=False)
    max_file_size: int = Field(default=2 * 1024 * 1024)

    # Indexing / Watching Configuration
    max_concurrent_files: int = Field(default=16)
    debounce_seconds: float = Field(default=1.0)
    watch_ignore_patterns: str = Field(
        default=r"(^|/)node_modules(/|$),(^|/)\.git(/|$),(^|/)build(/|$),(^|/)dist(/|$),(^|/)logs(/|$),\.log$,\.tmp$,\.temp$"
    )

    # Enrichment Configuration
    enrichment_tick_seconds: float = Field(default=1.0)
    enrichment_queue_maxsize: int = Field(default=10000)
    max_code_length: int = Field(default=16000)

    # Query Configuration
    query_max_attempts: int = Field(default=3)
    top_k_results: int = Field(default=10)
    rerank_enabled: bool = Field(default=True)
    rerank_vector_weight: float = Field(default=0.6)
    rerank_bm25_weight: float = Field(default=0.4)

    # MCP Configuration
    mcp_host: str = Field(default="localhost")
    mcp_port: int = Field(default=8000)

    # HTTP API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3000)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/app.log")

    @property
    def source_extensions_list(self) -> List[str]:
        """Get source extensions as a list."""
        return [ext.strip() for ext in self.source_extensions.split(",") if ext.strip()]

    @property
    def watch_ignore_patterns_list(self) -> List[str]:
        """Get watcher ignore regexes as a list."""
        return [p.strip() for p in self.watch_ignore_patterns.split(",") if p.strip()]

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        return Path(self.log_file).parent

    def ensure_directories(self):
        """Ensure necessary directories exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        if self.graph_backend == "json" and self.graph_storage_path:
            Path(self.graph_storage_path).parent.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_directories()
