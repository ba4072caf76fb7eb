from collections import OrderedDict
from typing import Dict, Any, Optional, Set, Tuple
import asyncio

from ..config import settings
from ..exceptions import EnrichmentError
from ..types import EnrichmentItem, FunctionRecord
from ..utils.logger import app_logger


class EnrichmentQueue:
    """Bounded, deduplicated queue of functions awaiting summaries.

    Pending items are keyed by (name, path) so a function is never queued
    twice while unprocessed; offering it again replaces the payload in
    place. A background task takes one item per tick and runs
    summarize -> embed -> upsert strictly one at a time.
    """

    def __init__(self, llm_service, embedding_service, record_store,
                 maxsize: Optional[int] = None, tick_seconds: Optional[float] = None):
        self.llm_service = llm_service
        self.embedding_service = embedding_service
        self.record_store = record_store
        self.maxsize = maxsize or settings.enrichment_queue_maxsize
        self.tick_seconds = settings.enrichment_tick_seconds if tick_seconds is None else tick_seconds
        self.logger = app_logger.bind(component="enrichment_queue")

        self.pending: "OrderedDict[Tuple[str, str], EnrichmentItem]" = OrderedDict()
        self.processed: Set[Tuple[str, str]] = set()
        self.failed: Set[Tuple[str, str]] = set()
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self.pending)

    def offer(self, item: EnrichmentItem, force: bool = False) -> bool:
        """Queue a function unless it is already pending or done.

        ``force`` re-queues a function that was already processed, used when
        its body may have changed. Returns True when the item is pending
        after the call.
        """
        key = item.identity
        if key in self.pending:
            self.pending[key] = item
            return True

        if key in self.processed and not force:
            return False

        if len(self.pending) >= self.maxsize:
            self.logger.warning(
                f"Enrichment queue full ({self.maxsize}), dropping {item.name} ({item.path})"
            )
            return False

        self.processed.discard(key)
        self.failed.discard(key)
        self.pending[key] = item
        return True

    async def _enrich(self, item: EnrichmentItem) -> FunctionRecord:
        try:
            summary = await self.llm_service.summarize_function(item.code)
        except Exception as e:
            raise EnrichmentError(f"summary failed for {item.name} ({item.path}): {e}", e)
        if not summary:
            raise EnrichmentError(f"empty summary for {item.name} ({item.path})")

        try:
            embedding = await self.embedding_service.embed_text(summary)
        except Exception as e:
            raise EnrichmentError(f"embedding failed for {item.name} ({item.path}): {e}", e)

        record = FunctionRecord(
            id=item.function_id,
            name=item.name,
            path=item.path,
            summary=summary,
            embedding=embedding,
            code=item.code,
            start_line=item.start_line,
            end_line=item.end_line,
        )
        try:
            await self.record_store.upsert(record)
        except Exception as e:
            raise EnrichmentError(f"storing record failed for {item.name} ({item.path}): {e}", e)
        return record

    async def process_next(self) -> Optional[bool]:
        """Process the oldest pending item.

        Returns None when the queue is empty, otherwise whether the item was
        enriched. Failed items are dropped, not requeued.
        """
        if not self.pending:
            return None

        key, item = self.pending.popitem(last=False)
        try:
            await self._enrich(item)
        except EnrichmentError as e:
            self.logger.error(str(e))
            self.failed.add(key)
            return False

        self.processed.add(key)
        self.logger.info(f"Enriched {item.name} ({item.path}), {len(self.pending)} pending")
        return True

    async def drain(self) -> int:
        """Process until the queue is empty; returns the number enriched."""
        enriched = 0
        while self.pending:
            if await self.process_next():
                enriched += 1
        return enriched

    async def run(self):
        """Scheduler loop: one item per tick until cancelled."""
        self.logger.info(f"Enrichment scheduler started (tick {self.tick_seconds}s)")
        while True:
            await self.process_next()
            await asyncio.sleep(self.tick_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Enrichment scheduler stopped")

    def stats(self) -> Dict[str, Any]:
        return {
            "pending": len(self.pending),
            "processed": len(self.processed),
            "failed": len(self.failed),
            "maxsize": self.maxsize,
            "running": self._task is not None and not self._task.done(),
        }
