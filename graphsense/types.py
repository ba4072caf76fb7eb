from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum


class QueryRoute(Enum):
    """Where a natural-language query is answered."""
    VECTOR = "vector"
    GRAPH = "graph"


@dataclass
class ImportRecord:
    """One imported symbol and the module it comes from."""
    clause: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"clause": self.clause, "source": self.source}


@dataclass
class FunctionDeclaration:
    """A top-level function declaration found in a source file."""
    name: str
    path: str
    text: str
    start_line: int
    end_line: int
    calls: Tuple[str, ...] = ()

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.name, self.path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "path": self.path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "calls": list(self.calls),
        }


@dataclass
class ParsedFile:
    """Imports and top-level functions extracted from one file."""
    path: str
    imports: List[ImportRecord] = field(default_factory=list)
    functions: List[FunctionDeclaration] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "path": self.path,
            "imports": [record.to_dict() for record in self.imports],
            "functions": [function.to_dict() for function in self.functions],
        }


@dataclass
class FileRegistration:
    """Outcome of running one file through the indexing pipeline."""
    path: str
    imports: int = 0
    functions: int = 0
    calls: int = 0
    enqueued: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "path": self.path,
            "imports": self.imports,
            "functions": self.functions,
            "calls": self.calls,
            "enqueued": self.enqueued,
        }


@dataclass
class FunctionRecord:
    """Summary and embedding stored for one Function node."""
    id: str
    name: str
    path: str
    summary: str
    embedding: Optional[List[float]] = None
    code: Optional[str] = None
    start_line: int = 0
    end_line: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "code": self.code,
            "summary": self.summary,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }


@dataclass
class EnrichmentItem:
    """A function waiting for its summary and embedding."""
    function_id: str
    name: str
    path: str
    code: str
    start_line: int = 0
    end_line: int = 0

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.name, self.path)


@dataclass
class RankedFunction:
    """A function returned by semantic search."""
    id: str
    name: str
    path: str
    score: float
    rank: int
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "score": self.score,
            "rank": self.rank,
            "summary": self.summary,
        }


@dataclass
class GraphNode:
    """Represents a node in the code graph."""
    element_id: str
    labels: List[str]
    properties: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.element_id,
            "labels": list(self.labels),
            "properties": dict(self.properties),
        }


@dataclass
class GraphRelationship:
    """Represents a relationship in the code graph."""
    element_id: str
    type: str
    start_node_id: str
    end_node_id: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.element_id,
            "type": self.type,
            "source_id": self.start_node_id,
            "target_id": self.end_node_id,
            "properties": dict(self.properties),
        }


@dataclass
class GraphPath:
    """A path returned by a graph query."""
    nodes: List[GraphNode]
    relationships: List[GraphRelationship]


@dataclass
class Subgraph:
    """Unique nodes and relationships extracted from query records."""
    nodes: List[GraphNode] = field(default_factory=list)
    relationships: List[GraphRelationship] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "relationships": [rel.to_dict() for rel in self.relationships],
        }


@dataclass
class QueryDecision:
    """Routing decision produced by the query classifier."""
    route: QueryRoute
    rationale: str
    search_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "decision": self.route.value,
            "reason": self.rationale,
            "search_text": self.search_text,
        }


@dataclass
class PlanAttempt:
    """One generate/execute round of the graph planner."""
    query: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"query": self.query, "error": self.error}


@dataclass
class PlanResult:
    """A graph query that executed successfully and its records."""
    query_text: str
    records: List[Dict[str, Any]]
    attempts: List[PlanAttempt]
    subgraph: Subgraph = field(default_factory=Subgraph)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "query": self.query_text,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "subgraph": self.subgraph.to_dict(),
        }


@dataclass
class QueryResponse:
    """Answer to a natural-language query, from either route."""
    decision: QueryDecision
    functions: List[RankedFunction] = field(default_factory=list)
    plan: Optional[PlanResult] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "decision": self.decision.to_dict(),
            "functions": [function.to_dict() for function in self.functions],
            "plan": self.plan.to_dict() if self.plan else None,
        }
