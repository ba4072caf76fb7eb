"""
Tree-sitter extraction of imports, top-level functions and their calls.
"""

from .source_parser import SourceParser, normalize_path, resolve_import_specifier

__all__ = ['SourceParser', 'normalize_path', 'resolve_import_specifier']
