from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

from ..types import GraphNode


FILE_LABEL = "File"
FUNCTION_LABEL = "Function"
IMPORTS_FROM = "IMPORTS_FROM"
CALLS = "CALLS"


class GraphStore(ABC):
    """Async contract shared by the graph backends.

    Nodes are addressed by a label and a key mapping (``{"path": ...}`` for
    File, ``{"name": ..., "path": ...}`` for Function). Every merge is a
    create-if-absent upsert on the full key, and relationship merges also
    merge both endpoints, so writes commute regardless of arrival order.
    """

    @abstractmethod
    async def setup(self) -> None:
        """Create constraints or load persisted state."""

    @abstractmethod
    async def merge_node(self, label: str, key: Dict[str, Any]) -> str:
        """Create the node if absent and return its element id."""

    @abstractmethod
    async def merge_relationship(self, rel_type: str,
                                 from_label: str, from_key: Dict[str, Any],
                                 to_label: str, to_key: Dict[str, Any],
                                 attrs: Optional[Dict[str, Any]] = None) -> str:
        """Create the relationship (and both endpoints) if absent."""

    @abstractmethod
    async def find_relationships(self, rel_type: str, from_label: str,
                                 from_key: Dict[str, Any],
                                 attrs: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Outgoing relationships of a node.

        Each entry has ``target`` (the target node's properties) and
        ``properties`` (the relationship's properties). Only relationships
        whose properties include every item of ``attrs`` are returned.
        """

    @abstractmethod
    async def delete_relationship(self, rel_type: str,
                                  from_label: str, from_key: Dict[str, Any],
                                  to_label: str, to_key: Dict[str, Any],
                                  attrs: Optional[Dict[str, Any]] = None) -> int:
        """Delete matching relationships and return how many were removed."""

    @abstractmethod
    async def get_node(self, label: str, key: Dict[str, Any]) -> Optional[GraphNode]:
        """Look up a node by label and key."""

    @abstractmethod
    async def get_node_by_id(self, element_id: str) -> Optional[GraphNode]:
        """Look up a node by element id."""

    @abstractmethod
    async def run(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Execute a read-only query and return its records."""

    @abstractmethod
    async def expand_calls(self, function_id: str) -> List[Dict[str, Any]]:
        """CALLS relationships touching a function.

        Records carry ``source``, ``relationship`` and ``target``.
        """

    @abstractmethod
    async def get_database_stats(self) -> Dict[str, Any]:
        """Node counts by label and relationship counts by type."""

    @abstractmethod
    async def clear_database(self) -> None:
        """Remove every node and relationship."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    async def flush(self) -> None:
        """Persist buffered writes. Stores that write through need not override."""
