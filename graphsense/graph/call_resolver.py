from typing import Optional, Set, Tuple

from .base import GraphStore, FILE_LABEL, FUNCTION_LABEL, IMPORTS_FROM, CALLS
from .graph_writer import GraphWriter, file_key, function_key
from ..config import settings
from ..exceptions import GraphQueryError
from ..types import FunctionDeclaration, ParsedFile
from ..utils.logger import app_logger


class CallResolver:
    """Links call sites to the functions they invoke.

    A CALLS edge is created only when the callee name was imported into the
    caller's file; the callee lives in the first file that import points at.
    With ``link_local_calls`` a call to a top-level function of the same
    file is linked as well.
    """

    def __init__(self, graph_store: GraphStore, writer: Optional[GraphWriter] = None,
                 link_local_calls: Optional[bool] = None):
        self.graph_store = graph_store
        self.writer = writer or GraphWriter(graph_store)
        self.link_local_calls = (
            settings.link_local_calls if link_local_calls is None else link_local_calls
        )
        self.logger = app_logger.bind(component="call_resolver")

    async def find_callee_path(self, caller_path: str, callee_name: str) -> Optional[str]:
        """Target path of the first import of ``callee_name`` in ``caller_path``."""
        try:
            edges = await self.graph_store.find_relationships(
                IMPORTS_FROM, FILE_LABEL, file_key(caller_path), {"clause": callee_name}
            )
        except GraphQueryError as e:
            self.logger.error(f"Could not look up import of {callee_name} in {caller_path}: {e}")
            return None
        if not edges:
            return None
        return edges[0]["target"].get("path")

    async def resolve_function(self, function: FunctionDeclaration,
                               local_names: Optional[Set[str]] = None) -> int:
        """Merge CALLS edges for one function and delete the stale ones.

        Returns the number of edges merged.
        """
        local_names = local_names or set()
        wanted: Set[Tuple[str, str]] = set()
        merged = 0

        for callee_name in function.calls:
            callee_path = await self.find_callee_path(function.path, callee_name)
            if callee_path is None and self.link_local_calls and callee_name in local_names:
                callee_path = function.path
            if callee_path is None:
                self.logger.debug(
                    f"Unresolved call {callee_name} in {function.name} ({function.path})"
                )
                continue
            wanted.add((callee_name, callee_path))
            if await self.writer.merge_call(function.name, function.path, callee_name, callee_path):
                merged += 1

        try:
            existing = await self.graph_store.find_relationships(
                CALLS, FUNCTION_LABEL, function_key(function.name, function.path)
            )
        except GraphQueryError as e:
            self.logger.error(f"Could not list calls of {function.name} ({function.path}): {e}")
            return merged

        for edge in existing:
            target = (edge["target"].get("name"), edge["target"].get("path"))
            if target not in wanted:
                self.logger.debug(
                    f"Removing stale call {function.name} -> {target[0]} ({target[1]})"
                )
                await self.writer.delete_call(function.name, function.path, *target)

        return merged

    async def resolve_file(self, parsed: ParsedFile) -> int:
        """Resolve every function of a parsed file; returns the CALLS edge count."""
        local_names = {function.name for function in parsed.functions}
        total = 0
        for function in parsed.functions:
            total += await self.resolve_function(function, local_names)
        return total
