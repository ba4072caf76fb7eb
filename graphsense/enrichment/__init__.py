from .queue import EnrichmentQueue

__all__ = ['EnrichmentQueue']
