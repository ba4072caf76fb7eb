from typing import List, Optional
import asyncio
import time

from ..config import settings
from ..exceptions import GraphSenseError, ParseError, StorageError
from ..graph.base import GraphStore
from ..graph.call_resolver import CallResolver
from ..graph.graph_writer import GraphWriter
from ..parser.source_parser import SourceParser
from ..scanner.local_codebase_scanner import LocalCodebaseScanner
from ..types import EnrichmentItem, FileRegistration
from ..utils.logger import app_logger


class IndexingPipeline:
    """Parse -> write -> enqueue -> resolve, per file."""

    def __init__(self, graph_store: GraphStore, parser: Optional[SourceParser] = None,
                 enrichment_queue=None, record_store=None,
                 max_concurrent_files: Optional[int] = None):
        self.graph_store = graph_store
        self.parser = parser or SourceParser()
        self.writer = GraphWriter(graph_store)
        self.resolver = CallResolver(graph_store, self.writer)
        self.enrichment_queue = enrichment_queue
        self.record_store = record_store
        self.max_concurrent_files = max_concurrent_files or settings.max_concurrent_files
        self.logger = app_logger.bind(component="indexer")

    async def _needs_enrichment(self, function_id: str, reparse: bool) -> bool:
        if reparse or self.record_store is None:
            return True
        try:
            return not await self.record_store.exists(function_id)
        except StorageError as e:
            self.logger.warning(f"Could not check record for {function_id}, queueing anyway: {e}")
            return True

    async def register_file(self, path: str, reparse: bool = False) -> Optional[FileRegistration]:
        """Run one file through the pipeline.

        Returns None when the file could not be parsed or written.
        """
        try:
            parsed = self.parser.parse_file(path)
        except ParseError as e:
            self.logger.warning(f"Skipping file: {e}")
            return None

        registration = FileRegistration(path=parsed.path, functions=len(parsed.functions))
        try:
            await self.writer.merge_file(parsed.path)
            registration.imports = await self.writer.sync_imports(parsed.path, parsed.imports)

            for function in parsed.functions:
                function_id = await self.writer.merge_function(function.name, function.path)
                if function_id is None or self.enrichment_queue is None:
                    continue
                if not await self._needs_enrichment(function_id, reparse):
                    continue
                item = EnrichmentItem(
                    function_id=function_id,
                    name=function.name,
                    path=function.path,
                    code=function.text,
                    start_line=function.start_line,
                    end_line=function.end_line,
                )
                if self.enrichment_queue.offer(item, force=reparse):
                    registration.enqueued += 1

            registration.calls = await self.resolver.resolve_file(parsed)
        except GraphSenseError as e:
            self.logger.error(f"Failed to register {parsed.path}: {e}")
            return None

        self.logger.debug(
            f"Registered {parsed.path}: {registration.imports} imports, "
            f"{registration.functions} functions, {registration.calls} calls"
        )
        return registration

    async def register_directory(self, root_path: str) -> List[FileRegistration]:
        """Register every source file under ``root_path`` concurrently."""
        start_time = time.time()
        scanner = LocalCodebaseScanner(root_path, self.parser.extensions)
        paths = scanner.scan_directory()

        semaphore = asyncio.Semaphore(self.max_concurrent_files)

        async def register(path: str) -> Optional[FileRegistration]:
            async with semaphore:
                try:
                    return await self.register_file(path)
                except Exception as e:
                    self.logger.error(f"Unexpected error registering {path}: {e}")
                    return None

        results = await asyncio.gather(*(register(path) for path in paths))
        registrations = [r for r in results if r is not None]
        await self.graph_store.flush()

        self.logger.info(
            f"Registered {len(registrations)}/{len(paths)} files from {root_path} "
            f"in {time.time() - start_time:.2f}s"
        )
        return registrations
