from typing import List, Dict, Any, Optional, Set, Tuple

from .base import GraphStore, FILE_LABEL, FUNCTION_LABEL, IMPORTS_FROM, CALLS
from ..exceptions import GraphQueryError, GraphWriteError
from ..types import ImportRecord
from ..utils.logger import app_logger


def file_key(path: str) -> Dict[str, Any]:
    return {"path": path}


def function_key(name: str, path: str) -> Dict[str, Any]:
    return {"name": name, "path": path}


class GraphWriter:
    """Idempotent writes of File/Function nodes and their edges.

    A failed merge is logged and skipped; the rest of the file still gets
    written.
    """

    def __init__(self, graph_store: GraphStore):
        self.graph_store = graph_store
        self.logger = app_logger.bind(component="graph_writer")

    async def merge_file(self, path: str) -> Optional[str]:
        try:
            return await self.graph_store.merge_node(FILE_LABEL, file_key(path))
        except GraphWriteError as e:
            self.logger.error(f"Failed to merge File {path}: {e}")
            return None

    async def merge_function(self, name: str, path: str) -> Optional[str]:
        """Merge a Function node and return its element id."""
        try:
            return await self.graph_store.merge_node(FUNCTION_LABEL, function_key(name, path))
        except GraphWriteError as e:
            self.logger.error(f"Failed to merge Function {name} in {path}: {e}")
            return None

    async def merge_import(self, source_path: str, target_path: str, clause: str) -> bool:
        try:
            await self.graph_store.merge_relationship(
                IMPORTS_FROM,
                FILE_LABEL, file_key(source_path),
                FILE_LABEL, file_key(target_path),
                {"clause": clause},
            )
            return True
        except GraphWriteError as e:
            self.logger.error(f"Failed to merge import {clause} from {target_path} in {source_path}: {e}")
            return False

    async def merge_call(self, caller_name: str, caller_path: str,
                         callee_name: str, callee_path: str) -> bool:
        try:
            await self.graph_store.merge_relationship(
                CALLS,
                FUNCTION_LABEL, function_key(caller_name, caller_path),
                FUNCTION_LABEL, function_key(callee_name, callee_path),
            )
            return True
        except GraphWriteError as e:
            self.logger.error(
                f"Failed to merge call {caller_name}@{caller_path} -> {callee_name}@{callee_path}: {e}"
            )
            return False

    async def delete_import(self, source_path: str, target_path: str, clause: str) -> int:
        try:
            return await self.graph_store.delete_relationship(
                IMPORTS_FROM,
                FILE_LABEL, file_key(source_path),
                FILE_LABEL, file_key(target_path),
                {"clause": clause},
            )
        except GraphWriteError as e:
            self.logger.error(f"Failed to delete stale import {clause} in {source_path}: {e}")
            return 0

    async def delete_call(self, caller_name: str, caller_path: str,
                          callee_name: str, callee_path: str) -> int:
        try:
            return await self.graph_store.delete_relationship(
                CALLS,
                FUNCTION_LABEL, function_key(caller_name, caller_path),
                FUNCTION_LABEL, function_key(callee_name, callee_path),
            )
        except GraphWriteError as e:
            self.logger.error(f"Failed to delete stale call from {caller_name}@{caller_path}: {e}")
            return 0

    async def sync_imports(self, path: str, imports: List[ImportRecord]) -> int:
        """Merge a file's imports, then drop IMPORTS_FROM edges it no longer has.

        Returns the number of import edges merged.
        """
        merged = 0
        wanted: Set[Tuple[str, str]] = set()
        for record in imports:
            wanted.add((record.clause, record.source))
            if await self.merge_import(path, record.source, record.clause):
                merged += 1

        try:
            existing = await self.graph_store.find_relationships(
                IMPORTS_FROM, FILE_LABEL, file_key(path)
            )
        except GraphQueryError as e:
            self.logger.error(f"Could not list imports of {path}, keeping old edges: {e}")
            return merged

        for edge in existing:
            clause = edge["properties"].get("clause")
            target_path = edge["target"].get("path")
            if (clause, target_path) not in wanted:
                self.logger.debug(f"Removing stale import {clause} from {target_path} in {path}")
                await self.delete_import(path, target_path, clause)

        return merged
