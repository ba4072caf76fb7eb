"""
GraphSense: a File/Function dependency graph of a codebase, queried through
semantic search over function summaries or generated graph queries.
"""

__version__ = "1.0.0"
