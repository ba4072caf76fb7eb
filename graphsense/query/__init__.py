"""
Query routing, graph query generation and subgraph extraction.
"""

from .classifier import QueryClassifier
from .generator import CypherGenerator
from .planner import QueryPlanner
from .subgraph import extract_subgraph, function_call_context

__all__ = [
    'QueryClassifier',
    'CypherGenerator',
    'QueryPlanner',
    'extract_subgraph',
    'function_call_context'
]
