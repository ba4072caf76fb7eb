from typing import List, Dict, Any, Optional
import datetime
import hashlib
import json
from pathlib import Path

from .base import GraphStore, CALLS, FUNCTION_LABEL
from ..exceptions import GraphQueryError
from ..types import GraphNode, GraphRelationship
from ..utils.logger import app_logger


def _element_id(*parts: Any) -> str:
    raw = json.dumps(parts, sort_keys=True, ensure_ascii=False)
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def _matches(properties: Dict[str, Any], attrs: Optional[Dict[str, Any]]) -> bool:
    if not attrs:
        return True
    return all(properties.get(k) == v for k, v in attrs.items())


class JsonGraphClient(GraphStore):
    """JSON-based graph storage client.

    Keeps the graph in memory and, when ``storage_path`` is set, writes the
    whole document back on ``flush`` and ``close``. Ad-hoc queries are not
    supported.
    """

    def __init__(self, storage_path: Optional[str] = None):
        self.logger = app_logger.bind(component="json_graph_client")
        self.storage_path = Path(storage_path) if storage_path else None
        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)

        self._dirty = False
        self.data = self._initialize_data()
        self._load_data()

    def _load_data(self):
        """Load data from JSON file."""
        if self.storage_path and self.storage_path.exists():
            try:
                with open(self.storage_path, 'r', encoding='utf-8') as f:
                    self.data = json.load(f)
                self.logger.info(f"Loaded graph data from {self.storage_path}")
            except Exception as e:
                self.logger.error(f"Error loading graph data: {e}")
                self.data = self._initialize_data()

    def _initialize_data(self) -> Dict[str, Any]:
        """Initialize empty data structure."""
        return {
            "nodes": {},
            "relationships": {},
            "metadata": {
                "version": "1.0",
                "created_at": None,
                "updated_at": None
            }
        }

    def _save_data(self):
        """Save data to JSON file."""
        if not self.storage_path:
            self._dirty = False
            return
        try:
            self.data["metadata"]["updated_at"] = datetime.datetime.now().isoformat()
            if not self.data["metadata"]["created_at"]:
                self.data["metadata"]["created_at"] = self.data["metadata"]["updated_at"]

            with open(self.storage_path, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
            self._dirty = False
            self.logger.debug(f"Saved graph data to {self.storage_path}")
        except Exception as e:
            self.logger.error(f"Error saving graph data: {e}")

    def _node(self, node_id: str) -> GraphNode:
        node_data = self.data["nodes"][node_id]
        return GraphNode(
            element_id=node_id,
            labels=list(node_data["labels"]),
            properties=dict(node_data["properties"]),
        )

    def _relationship(self, rel_id: str) -> GraphRelationship:
        rel_data = self.data["relationships"][rel_id]
        return GraphRelationship(
            element_id=rel_id,
            type=rel_data["type"],
            start_node_id=rel_data["source_id"],
            end_node_id=rel_data["target_id"],
            properties=dict(rel_data["properties"]),
        )

    def _merge_node(self, label: str, key: Dict[str, Any]) -> str:
        node_id = _element_id(label, key)
        if node_id not in self.data["nodes"]:
            self.data["nodes"][node_id] = {"labels": [label], "properties": dict(key)}
        return node_id

    async def setup(self) -> None:
        self.logger.info(
            f"Using JSON graph store ({self.storage_path or 'in-memory'}), "
            f"{len(self.data['nodes'])} nodes loaded"
        )

    async def merge_node(self, label: str, key: Dict[str, Any]) -> str:
        node_id = self._merge_node(label, key)
        self._dirty = True
        return node_id

    async def merge_relationship(self, rel_type: str,
                                 from_label: str, from_key: Dict[str, Any],
                                 to_label: str, to_key: Dict[str, Any],
                                 attrs: Optional[Dict[str, Any]] = None) -> str:
        attrs = dict(attrs or {})
        source_id = self._merge_node(from_label, from_key)
        target_id = self._merge_node(to_label, to_key)

        rel_id = _element_id(rel_type, source_id, target_id, attrs)
        if rel_id not in self.data["relationships"]:
            self.data["relationships"][rel_id] = {
                "type": rel_type,
                "source_id": source_id,
                "target_id": target_id,
                "properties": attrs,
            }
        self._dirty = True
        return rel_id

    async def find_relationships(self, rel_type: str, from_label: str,
                                 from_key: Dict[str, Any],
                                 attrs: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        source_id = _element_id(from_label, from_key)
        results = []
        for rel in self.data["relationships"].values():
            if rel["type"] != rel_type or rel["source_id"] != source_id:
                continue
            if not _matches(rel["properties"], attrs):
                continue
            results.append({
                "target": dict(self.data["nodes"][rel["target_id"]]["properties"]),
                "properties": dict(rel["properties"]),
            })
        return results

    async def delete_relationship(self, rel_type: str,
                                  from_label: str, from_key: Dict[str, Any],
                                  to_label: str, to_key: Dict[str, Any],
                                  attrs: Optional[Dict[str, Any]] = None) -> int:
        source_id = _element_id(from_label, from_key)
        target_id = _element_id(to_label, to_key)
        doomed = [
            rel_id for rel_id, rel in self.data["relationships"].items()
            if rel["type"] == rel_type
            and rel["source_id"] == source_id
            and rel["target_id"] == target_id
            and _matches(rel["properties"], attrs)
        ]
        for rel_id in doomed:
            del self.data["relationships"][rel_id]
        if doomed:
            self._dirty = True
        return len(doomed)

    async def get_node(self, label: str, key: Dict[str, Any]) -> Optional[GraphNode]:
        node_id = _element_id(label, key)
        if node_id not in self.data["nodes"]:
            return None
        return self._node(node_id)

    async def get_node_by_id(self, element_id: str) -> Optional[GraphNode]:
        if element_id not in self.data["nodes"]:
            return None
        return self._node(element_id)

    async def run(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        raise GraphQueryError("the JSON graph store does not execute Cypher queries")

    async def expand_calls(self, function_id: str) -> List[Dict[str, Any]]:
        records = []
        for rel_id, rel in self.data["relationships"].items():
            if rel["type"] != CALLS:
                continue
            if function_id not in (rel["source_id"], rel["target_id"]):
                continue
            records.append({
                "source": self._node(rel["source_id"]),
                "relationship": self._relationship(rel_id),
                "target": self._node(rel["target_id"]),
            })
        return records

    async def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        node_counts = {}
        for node_data in self.data["nodes"].values():
            for label in node_data["labels"]:
                node_counts[label] = node_counts.get(label, 0) + 1

        rel_counts = {}
        for rel in self.data["relationships"].values():
            rel_counts[rel["type"]] = rel_counts.get(rel["type"], 0) + 1

        return {"nodes": node_counts, "relationships": rel_counts}

    async def clear_database(self) -> None:
        """Clear all data from the database."""
        self.data = self._initialize_data()
        self._save_data()
        self.logger.info("Cleared all data from JSON graph database")

    async def flush(self) -> None:
        if self._dirty:
            self._save_data()

    async def close(self) -> None:
        await self.flush()

    def all_relationships(self, rel_type: Optional[str] = None) -> List[GraphRelationship]:
        """Every stored relationship, optionally of one type."""
        return [
            self._relationship(rel_id)
            for rel_id, rel in self.data["relationships"].items()
            if rel_type is None or rel["type"] == rel_type
        ]

    def function_nodes(self) -> List[GraphNode]:
        """Every Function node."""
        return [
            self._node(node_id)
            for node_id, node_data in self.data["nodes"].items()
            if FUNCTION_LABEL in node_data["labels"]
        ]
