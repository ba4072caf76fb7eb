"""
Text generation for summaries, query planning and answers.
"""

from .llm_service import LLMService

__all__ = ['LLMService']
