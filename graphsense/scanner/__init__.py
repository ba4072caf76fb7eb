"""
Enumeration of indexable source files.
"""

from .local_codebase_scanner import LocalCodebaseScanner, load_gitignore_spec

__all__ = ['LocalCodebaseScanner', 'load_gitignore_spec']
