import pytest
from pathlib import Path
from typing import Any, Dict, List, Optional

from graphsense.graph.json_graph_client import JsonGraphClient
from graphsense.parser.source_parser import SourceParser
from graphsense.services import GraphSenseServices
from graphsense.types import FunctionRecord


FILE_A = """
import { helperFunction, anotherHelper } from './fileB';
import { utilityFunction } from './fileC';

export function mainFunction() {
  helperFunction();
  anotherHelper();
  utilityFunction();
}

export function secondFunction() {
  return helperFunction();
}
"""

FILE_B = """
export function helperFunction() {
  return 1;
}

export function anotherHelper() {
  return 2;
}
"""

FILE_C = """
export function utilityFunction() {
  return 3;
}
"""


class FakeLLMService:
    """Deterministic stand-in for the LLM provider."""

    def __init__(self, responses: Optional[List[str]] = None, fail: bool = False):
        self.responses = list(responses or [])
        self.fail = fail
        self.prompts: List[str] = []
        self.summarized: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise ConnectionError("llm offline")
        return self.responses.pop(0) if self.responses else ""

    async def summarize_function(self, code: str) -> str:
        if self.fail:
            raise ConnectionError("llm offline")
        self.summarized.append(code)
        first_line = code.strip().splitlines()[0] if code.strip() else ""
        return f"Summary of {first_line}"

    async def answer_question(self, query: str, context: str) -> str:
        return f"Answer to {query}"


class FakeEmbeddingService:
    def __init__(self, dimension: int = 4):
        self.dimension = dimension
        self.embedded: List[str] = []

    async def embed_text(self, text: str) -> List[float]:
        self.embedded.append(text)
        return [float(len(text) % 7), 1.0, 0.0, 0.5][:self.dimension]

    async def embed_query(self, query: str) -> List[float]:
        return await self.embed_text(query)

    def get_dimension(self) -> int:
        return self.dimension


class FakeRecordStore:
    """In-memory FunctionRecord store with canned similarity results."""

    def __init__(self):
        self.records: Dict[str, FunctionRecord] = {}
        self.search_order: Optional[List[str]] = None

    async def upsert(self, record: FunctionRecord) -> None:
        self.records[record.id] = record

    async def get(self, function_id: str) -> Optional[FunctionRecord]:
        return self.records.get(function_id)

    async def exists(self, function_id: str) -> bool:
        return function_id in self.records

    async def similarity_search(self, embedding: List[float], top_k: Optional[int] = None) -> List[Dict[str, Any]]:
        ids = self.search_order or list(self.records)
        hits = []
        for position, function_id in enumerate(ids[:top_k or 10]):
            hits.append({"record": self.records[function_id], "score": 1.0 - position * 0.1})
        return hits

    async def get_collection_stats(self) -> Dict[str, Any]:
        return {"collection_name": "functions", "num_entities": len(self.records)}

    async def close(self) -> None:
        pass


@pytest.fixture
def sample_codebase(tmp_path) -> Path:
    """Three files: A imports two helpers from B and one utility from C."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "fileA.ts").write_text(FILE_A)
    (root / "fileB.ts").write_text(FILE_B)
    (root / "fileC.ts").write_text(FILE_C)
    return root


@pytest.fixture
def json_store() -> JsonGraphClient:
    """In-memory graph store."""
    return JsonGraphClient()


@pytest.fixture
def source_parser() -> SourceParser:
    return SourceParser()


@pytest.fixture
def fake_llm() -> FakeLLMService:
    return FakeLLMService()


@pytest.fixture
def fake_embedding() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def fake_record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def services(json_store, fake_record_store, fake_embedding, fake_llm) -> GraphSenseServices:
    """Fully wired services over the JSON graph store and in-memory fakes."""
    return GraphSenseServices(json_store, fake_record_store, fake_embedding, fake_llm)


@pytest.fixture
def fake_llm_factory():
    return FakeLLMService
