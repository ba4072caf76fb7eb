"""
Vector store for function records.
"""

from .milvus_client import MilvusClient

__all__ = ['MilvusClient']
