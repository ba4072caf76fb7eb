"""
Exception hierarchy for GraphSense.

Each exception carries the stage where it was raised so log lines and
request-surface errors point at the failing component.
"""

from typing import List, Optional


class GraphSenseError(Exception):
    """Base exception for indexing and query errors."""

    def __init__(self, stage: str, message: str, original_error: Optional[Exception] = None):
        self.stage = stage
        self.message = message
        self.original_error = original_error
        super().__init__(f"[{stage}] {message}")


class ParseError(GraphSenseError):
    """A source file could not be read or parsed. The file is skipped."""

    def __init__(self, path: str, message: str, original_error: Optional[Exception] = None):
        self.path = path
        super().__init__("parse", f"{path}: {message}", original_error)


class GraphWriteError(GraphSenseError):
    """A single node or edge merge failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__("graph_write", message, original_error)


class GraphQueryError(GraphSenseError):
    """A graph query failed to execute."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__("graph_query", message, original_error)


class StorageError(GraphSenseError):
    """The function record store failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__("storage", message, original_error)


class EnrichmentError(GraphSenseError):
    """Summarizing, embedding or storing a function failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__("enrichment", message, original_error)


class ClassificationError(GraphSenseError):
    """The query classifier could not be reached."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__("classification", message, original_error)


class QueryGenerationError(GraphSenseError):
    """No generated graph query executed within the attempt budget."""

    def __init__(self, query: str, attempts: List, original_error: Optional[Exception] = None):
        self.query = query
        self.attempts = attempts
        last_error = attempts[-1].error if attempts else "no attempts were made"
        super().__init__(
            "generation",
            f"could not produce a valid query after {len(attempts)} attempt(s): {last_error}",
            original_error,
        )
