"""
Graph stores and the writers that keep File/Function nodes and edges current.
"""

from .base import GraphStore
from .call_resolver import CallResolver
from .graph_writer import GraphWriter
from .json_graph_client import JsonGraphClient
from .neo4j_client import Neo4jClient

__all__ = [
    'GraphStore',
    'CallResolver',
    'GraphWriter',
    'JsonGraphClient',
    'Neo4jClient'
]
