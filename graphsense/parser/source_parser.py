import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_parser

from ..config import settings
from ..exceptions import ParseError
from ..types import FunctionDeclaration, ImportRecord, ParsedFile
from ..utils.logger import app_logger


EXTENSION_LANGUAGES = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

QUOTE_CHARS = "'\"`"


@dataclass
class WalkState:
    """Mutable state threaded through one traversal."""
    path: str
    source: bytes
    extensions: List[str]
    default_extension: str
    imports: List[ImportRecord] = field(default_factory=list)
    functions: List[FunctionDeclaration] = field(default_factory=list)
    calls: Dict[str, None] = field(default_factory=dict)


Handler = Callable[[Node, WalkState], bool]


def walk(node: Node, handlers: Dict[str, Handler], state: WalkState) -> None:
    """Visit ``node`` and its descendants, dispatching on the node kind.

    A handler returns True to keep descending into the node's children and
    False when it has consumed the whole subtree. Kinds without a handler are
    descended into.
    """
    if node.child_count == 0:
        return

    handler = handlers.get(node.type)
    if handler is not None and not handler(node, state):
        return

    for child in node.children:
        walk(child, handlers, state)


def normalize_path(path: str) -> str:
    """Absolute, symlink-free form used as the File key."""
    return str(Path(path).resolve())


def resolve_import_specifier(importer_path: str, specifier: str,
                             extensions: Optional[List[str]] = None,
                             default_extension: Optional[str] = None) -> str:
    """Resolve a module specifier as written in ``importer_path``.

    Relative specifiers become absolute paths. When the resolved path has no
    recognized source extension the default extension is appended. Anything
    else (package names, aliases) is returned untouched.
    """
    if extensions is None:
        extensions = settings.source_extensions_list
    if default_extension is None:
        default_extension = settings.default_source_extension

    if not (specifier in (".", "..") or specifier.startswith("./") or specifier.startswith("../")):
        return specifier

    raw_path = os.path.join(os.path.dirname(importer_path), specifier)
    if specifier.rstrip("/") in (".", "..") or specifier.endswith("/"):
        raw_path = os.path.join(raw_path, "index")

    if Path(raw_path).suffix not in extensions:
        raw_path += default_extension

    return normalize_path(raw_path)


def _text(node: Node, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _import_clauses(import_node: Node, source: bytes) -> Iterator[str]:
    for child in import_node.children:
        if child.type != "import_clause":
            continue
        for binding in child.children:
            if binding.type == "identifier":
                yield _text(binding, source)
            elif binding.type == "named_imports":
                for specifier in binding.named_children:
                    if specifier.type != "import_specifier":
                        continue
                    name_node = specifier.child_by_field_name("name")
                    if name_node is not None:
                        yield _text(name_node, source).strip(QUOTE_CHARS)


def _visit_import(node: Node, state: WalkState) -> bool:
    source_node = node.child_by_field_name("source")
    if source_node is None:
        return False

    specifier = _text(source_node, state.source).strip(QUOTE_CHARS)
    resolved = resolve_import_specifier(
        state.path, specifier, state.extensions, state.default_extension
    )
    for clause in _import_clauses(node, state.source):
        state.imports.append(ImportRecord(clause=clause, source=resolved))
    return False


def _is_top_level(node: Node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type == "program":
        return True
    return (
        parent.type == "export_statement"
        and parent.parent is not None
        and parent.parent.type == "program"
    )


def _visit_function(node: Node, state: WalkState) -> bool:
    if not _is_top_level(node):
        return False

    name_node = node.child_by_field_name("name")
    if name_node is None:
        return False

    body = node.child_by_field_name("body")
    calls = extract_call_names(body, state.source) if body is not None else ()

    state.functions.append(FunctionDeclaration(
        name=_text(name_node, state.source),
        path=state.path,
        text=_text(node, state.source),
        start_line=node.start_point[0] + 1,
        end_line=node.end_point[0] + 1,
        calls=calls,
    ))
    return False


def _visit_call(node: Node, state: WalkState) -> bool:
    callee = node.child_by_field_name("function")
    if callee is not None and callee.type == "identifier":
        state.calls.setdefault(_text(callee, state.source), None)
    return True


DECLARATION_HANDLERS: Dict[str, Handler] = {
    "import_statement": _visit_import,
    "function_declaration": _visit_function,
    "generator_function_declaration": _visit_function,
}

CALL_HANDLERS: Dict[str, Handler] = {
    "call_expression": _visit_call,
}


def extract_call_names(body: Node, source: bytes) -> tuple:
    """Distinct names of directly-called identifiers inside ``body``, in order."""
    state = WalkState(path="", source=source, extensions=[], default_extension="")
    walk(body, CALL_HANDLERS, state)
    return tuple(state.calls)


class SourceParser:
    """Tree-sitter based extractor of imports and top-level functions."""

    def __init__(self, extensions: Optional[List[str]] = None,
                 default_extension: Optional[str] = None,
                 skip_malformed: bool = True):
        self.logger = app_logger.bind(component="source_parser")
        self.extensions = extensions or settings.source_extensions_list
        self.default_extension = default_extension or settings.default_source_extension
        self.skip_malformed = skip_malformed
        self.parsers: Dict[str, Parser] = {}

    def language_for(self, path: str) -> Optional[str]:
        """Grammar name for a file, or None when the extension is unsupported."""
        suffix = Path(path).suffix.lower()
        if suffix not in self.extensions:
            return None
        return EXTENSION_LANGUAGES.get(suffix)

    def _get_parser(self, language: str) -> Parser:
        parser = self.parsers.get(language)
        if parser is None:
            parser = get_parser(language)
            self.parsers[language] = parser
            self.logger.debug(f"Initialized parser for {language}")
        return parser

    def parse_file(self, path: str) -> ParsedFile:
        """Read and parse a file from disk."""
        path = normalize_path(path)
        try:
            source = Path(path).read_bytes()
        except OSError as e:
            raise ParseError(path, f"unreadable: {e}", e)
        return self.parse_source(path, source)

    def parse_source(self, path: str, source) -> ParsedFile:
        """Parse in-memory source attributed to ``path``."""
        if isinstance(source, str):
            source = source.encode("utf-8")

        language = self.language_for(path)
        if language is None:
            raise ParseError(path, "unsupported file extension")

        try:
            tree = self._get_parser(language).parse(source)
        except Exception as e:
            raise ParseError(path, f"parser failure: {e}", e)

        root = tree.root_node
        if root.has_error and self.skip_malformed:
            raise ParseError(path, "malformed source")

        state = WalkState(
            path=path,
            source=source,
            extensions=self.extensions,
            default_extension=self.default_extension,
        )
        try:
            walk(root, DECLARATION_HANDLERS, state)
        except RecursionError as e:
            raise ParseError(path, "syntax tree too deep to traverse", e)

        imports = list({(r.clause, r.source): r for r in state.imports}.values())
        self.logger.debug(
            f"Parsed {path}: {len(imports)} imports, {len(state.functions)} functions"
        )
        return ParsedFile(path=path, imports=imports, functions=state.functions)
