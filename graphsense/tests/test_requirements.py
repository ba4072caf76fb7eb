import importlib
import sys

import pytest


class TestRequirements:
    """Test that all required dependencies are available."""

    def test_python_version(self):
        """Test Python version is supported."""
        assert sys.version_info >= (3, 9), f"Python 3.9+ required, got {sys.version_info}"

    def test_core_dependencies(self):
        """Test that core dependencies can be imported."""
        required_modules = [
            'neo4j',
            'pymilvus',
            'numpy',
            'rank_bm25',
            'pydantic',
            'pydantic_settings',
            'loguru',
            'tree_sitter',
            'tree_sitter_language_pack',
            'watchdog',
            'pathspec',
            'openai',
            'requests',
            'fastmcp',
            'fastapi',
        ]

        missing_modules = []
        for module_name in required_modules:
            try:
                importlib.import_module(module_name)
            except ImportError:
                missing_modules.append(module_name)

        if missing_modules:
            pytest.fail(f"Missing required modules: {missing_modules}")

    @pytest.mark.parametrize("language", ["typescript", "tsx", "javascript"])
    def test_tree_sitter_languages(self, language):
        """Test tree-sitter grammars for every supported extension."""
        from tree_sitter_language_pack import get_parser

        tree = get_parser(language).parse(b"function f() { return g(); }\n")
        assert tree.root_node.type == "program"
        assert not tree.root_node.has_error
