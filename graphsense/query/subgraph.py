from typing import Any, Dict, Iterable, List, Optional

from ..graph.base import GraphStore
from ..types import GraphNode, GraphRelationship, GraphPath, Subgraph


class _Collector:
    def __init__(self, allowed_labels, allowed_types):
        self.allowed_labels = set(allowed_labels or ())
        self.allowed_types = set(allowed_types or ())
        self.nodes: Dict[str, GraphNode] = {}
        self.relationships: Dict[str, GraphRelationship] = {}

    def add_node(self, node: GraphNode):
        if node.element_id in self.nodes:
            return
        if self.allowed_labels and not self.allowed_labels.intersection(node.labels):
            return
        self.nodes[node.element_id] = node

    def add_relationship(self, rel: GraphRelationship):
        if rel.element_id in self.relationships:
            return
        if self.allowed_types and rel.type not in self.allowed_types:
            return
        self.relationships[rel.element_id] = rel

    def visit(self, value: Any):
        if isinstance(value, GraphNode):
            self.add_node(value)
        elif isinstance(value, GraphRelationship):
            self.add_relationship(value)
        elif isinstance(value, GraphPath):
            for node in value.nodes:
                self.add_node(node)
            for rel in value.relationships:
                self.add_relationship(rel)
        elif isinstance(value, dict):
            for item in value.values():
                self.visit(item)
        elif isinstance(value, (list, tuple)):
            for item in value:
                self.visit(item)


def extract_subgraph(records: Iterable[Dict[str, Any]],
                     allowed_labels: Optional[Iterable[str]] = None,
                     allowed_types: Optional[Iterable[str]] = None) -> Subgraph:
    """Unique nodes and relationships found anywhere in ``records``.

    Elements are deduplicated by element id and kept in first-seen order. A
    node passes the label filter when it carries any allowed label; empty
    filters allow everything.
    """
    collector = _Collector(allowed_labels, allowed_types)
    for record in records:
        collector.visit(record)
    return Subgraph(
        nodes=list(collector.nodes.values()),
        relationships=list(collector.relationships.values()),
    )


async def function_call_context(graph_store: GraphStore, function_id: str) -> Dict[str, List[GraphNode]]:
    """Callers and callees of one Function node."""
    records = await graph_store.expand_calls(function_id)

    callers = extract_subgraph(
        [r["source"] for r in records if r["target"].element_id == function_id]
    )
    callees = extract_subgraph(
        [r["target"] for r in records if r["source"].element_id == function_id]
    )
    return {"callers": callers.nodes, "callees": callees.nodes}
