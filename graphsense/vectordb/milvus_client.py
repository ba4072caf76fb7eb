from typing import List, Dict, Any, Optional
import asyncio
import json
from pymilvus import (
    connections,
    utility,
    FieldSchema,
    CollectionSchema,
    DataType,
    Collection,
)

from ..config import settings
from ..exceptions import StorageError
from ..types import FunctionRecord
from ..utils.logger import app_logger


OUTPUT_FIELDS = ["id", "name", "path", "code", "summary", "start_line", "end_line"]


def _literal(value: str) -> str:
    """Quote a string for a Milvus boolean expression."""
    return json.dumps(value)


class MilvusClient:
    """Milvus store for FunctionRecords, keyed by Function element id.

    The pymilvus ORM is blocking, so the public methods are coroutines that
    run it in the default executor.
    """

    def __init__(self, dimension: Optional[int] = None, collection_name: Optional[str] = None):
        self.logger = app_logger.bind(component="milvus_client")
        self.collection = None
        self.dimension = dimension or settings.milvus_dimension
        self.collection_name = collection_name or settings.milvus_collection_name

        self._connect()
        self._ensure_collection()

    def _connect(self):
        """Connect to Milvus server."""
        try:
            connections.connect(
                "default",
                host=settings.milvus_host,
                port=settings.milvus_port,
            )
            self.logger.info(f"Connected to Milvus at {settings.milvus_host}:{settings.milvus_port}")
        except Exception as e:
            self.logger.error(f"Failed to connect to Milvus: {e}")
            raise StorageError(f"cannot connect to Milvus: {e}", e)

    def _ensure_collection(self):
        """Ensure collection exists with proper schema."""
        try:
            if utility.has_collection(self.collection_name):
                self.collection = Collection(self.collection_name)
                self.logger.info(f"Using existing collection: {self.collection_name}")
            else:
                self._create_collection()
            self.collection.load()
        except Exception as e:
            self.logger.error(f"Failed to ensure collection: {e}")
            raise StorageError(f"cannot prepare collection {self.collection_name}: {e}", e)

    def _create_collection(self):
        """Create collection with proper schema."""
        fields = [
            FieldSchema(name="id", dtype=DataType.VARCHAR, max_length=128, is_primary=True),
            FieldSchema(name="name", dtype=DataType.VARCHAR, max_length=512),
            FieldSchema(name="path", dtype=DataType.VARCHAR, max_length=2048),
            FieldSchema(name="code", dtype=DataType.VARCHAR, max_length=65535),
            FieldSchema(name="summary", dtype=DataType.VARCHAR, max_length=8192),
            FieldSchema(name="start_line", dtype=DataType.INT32),
            FieldSchema(name="end_line", dtype=DataType.INT32),
            FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.dimension),
        ]

        schema = CollectionSchema(fields=fields, description="Function summaries")
        self.collection = Collection(self.collection_name, schema)

        index_params = {
            "metric_type": "COSINE",
            "index_type": "IVF_FLAT",
            "params": {"nlist": 1024},
        }

        self.collection.create_index("embedding", index_params)
        self.logger.info(f"Created collection: {self.collection_name}")

    async def _run(self, func, *args):
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def _to_record(self, row: Dict[str, Any]) -> FunctionRecord:
        return FunctionRecord(
            id=row["id"],
            name=row.get("name", ""),
            path=row.get("path", ""),
            summary=row.get("summary", ""),
            code=row.get("code"),
            start_line=row.get("start_line", 0),
            end_line=row.get("end_line", 0),
        )

    def _upsert(self, record: FunctionRecord):
        code = (record.code or "")[:settings.max_code_length]
        self.collection.upsert([{
            "id": record.id,
            "name": record.name,
            "path": record.path,
            "code": code,
            "summary": record.summary[:8192],
            "start_line": record.start_line,
            "end_line": record.end_line,
            "embedding": record.embedding,
        }])
        self.collection.flush()

    async def upsert(self, record: FunctionRecord) -> None:
        """Insert or replace the record for a Function."""
        if not record.embedding:
            raise StorageError(f"record {record.id} has no embedding")
        try:
            await self._run(self._upsert, record)
            self.logger.debug(f"Upserted function record {record.name} ({record.id})")
        except Exception as e:
            self.logger.error(f"Failed to upsert function record {record.id}: {e}")
            raise StorageError(f"upsert failed for {record.id}: {e}", e)

    def _get(self, function_id: str) -> Optional[FunctionRecord]:
        rows = self.collection.query(
            expr=f"id == {_literal(function_id)}",
            output_fields=OUTPUT_FIELDS,
        )
        return self._to_record(rows[0]) if rows else None

    async def get(self, function_id: str) -> Optional[FunctionRecord]:
        """Get the record for a Function element id."""
        try:
            return await self._run(self._get, function_id)
        except Exception as e:
            self.logger.error(f"Failed to get function record {function_id}: {e}")
            raise StorageError(f"lookup failed for {function_id}: {e}", e)

    async def exists(self, function_id: str) -> bool:
        return await self.get(function_id) is not None

    def _search(self, embedding: List[float], top_k: int) -> List[Dict[str, Any]]:
        results = self.collection.search(
            data=[embedding],
            anns_field="embedding",
            param={"metric_type": "COSINE", "params": {"nprobe": 10}},
            limit=top_k,
            output_fields=OUTPUT_FIELDS,
        )

        hits = []
        for result in results:
            for hit in result:
                record = self._to_record({
                    field: hit.entity.get(field) for field in OUTPUT_FIELDS
                })
                hits.append({"record": record, "score": float(hit.score)})
        return hits

    async def similarity_search(self, embedding: List[float], top_k: Optional[int] = None) -> List[Dict[str, Any]]:
        """Nearest FunctionRecords by cosine similarity.

        Returns dicts with ``record`` and ``score``, best first.
        """
        top_k = top_k or settings.top_k_results
        try:
            hits = await self._run(self._search, embedding, top_k)
            self.logger.info(f"Found {len(hits)} similar functions")
            return hits
        except Exception as e:
            self.logger.error(f"Failed to search similar functions: {e}")
            raise StorageError(f"similarity search failed: {e}", e)

    async def get_collection_stats(self) -> Dict[str, Any]:
        """Get collection statistics."""
        try:
            if not self.collection:
                return {"error": "Collection not initialized"}

            num_entities = await self._run(lambda: self.collection.num_entities)
            return {
                "collection_name": self.collection_name,
                "num_entities": num_entities,
            }
        except Exception as e:
            self.logger.error(f"Failed to get collection stats: {e}")
            return {"error": str(e)}

    async def close(self) -> None:
        """Close connection to Milvus."""
        try:
            connections.disconnect("default")
            self.logger.info("Disconnected from Milvus")
        except Exception as e:
            self.logger.error(f"Failed to disconnect from Milvus: {e}")
