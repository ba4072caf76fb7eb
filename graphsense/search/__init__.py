from .function_search import FunctionSearch
from .rerank_service import SummaryReranker

__all__ = ['FunctionSearch', 'SummaryReranker']
