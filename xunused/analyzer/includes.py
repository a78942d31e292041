"""Include resolution and the per-TU include graph.

A translation unit is its main file plus every project header it reaches
through ``#include``. Headers found in a system directory are recorded but
never parsed: nothing declared in them can be a definition or a use.
"""
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import networkx as nx
from tree_sitter import Node, Tree

from .compile_db import DEFAULT_SYSTEM_DIRS, CompileCommand
from .parser import LanguageParser
from ..utils.logger import debug_log


def _is_under(path: str, directory: str) -> bool:
    directory = directory.rstrip(os.sep)
    return path == directory or path.startswith(directory + os.sep)


# `#ifdef __cplusplus` / `extern "C" {` or `}` / `#endif`, the C header idiom
EXTERN_C_GUARD = re.compile(
    rb'^([ \t]*#[ \t]*if(?:def[ \t]+__cplusplus|[ \t]+defined[ \t]*\(?[ \t]*__cplusplus[ \t]*\)?)[ \t]*(?://[^\n]*)?\r?\n)'
    rb'([ \t]*(?:extern[ \t]+"C"[ \t]*\{|\})[^\n]*\n)'
    rb'([ \t]*#[ \t]*endif[^\n]*)',
    re.MULTILINE,
)


def _blank(text: bytes) -> bytes:
    return re.sub(rb'[^\r\n]', b' ', text)


def resolve_extern_c_guards(source: bytes, language: str) -> bytes:
    """Apply `#ifdef __cplusplus` guards around `extern "C"` braces.

    Only those directive lines are evaluated: C++ keeps the braces and loses
    the directives, C loses the whole guarded block. Blanked bytes become
    spaces, so offsets and line numbers are unchanged.
    """
    def replace(match):
        if language == 'cpp':
            return _blank(match.group(1)) + match.group(2) + _blank(match.group(3))
        return _blank(match.group(0))

    return EXTERN_C_GUARD.sub(replace, source)


class IncludeResolver:
    """Maps an ``#include`` spelling to a file on disk, compiler style."""

    def __init__(self, command: CompileCommand, extra_system_dirs: Optional[List[str]] = None):
        """Initialize from a compile command's search path.

        Args:
            command: The TU's compile command
            extra_system_dirs: Additional directories whose headers are system headers
        """
        self.quote_dirs = list(command.quote_dirs)
        self.include_dirs = list(command.include_dirs)
        self.system_dirs = list(command.system_dirs)
        for directory in list(extra_system_dirs or []) + DEFAULT_SYSTEM_DIRS:
            directory = os.path.normpath(os.path.abspath(directory))
            if directory not in self.system_dirs:
                self.system_dirs.append(directory)

    def resolve(self, spelling: str, angled: bool, including_file: str) -> Optional[str]:
        """Find the header named by an include directive.

        Args:
            spelling: Text between the quotes or angle brackets
            angled: True for ``#include <...>``
            including_file: Absolute path of the file containing the directive

        Returns:
            Absolute path, or None if the header is not found
        """
        search: List[str] = []
        if not angled:
            search.append(os.path.dirname(including_file))
            search.extend(self.quote_dirs)
        search.extend(self.include_dirs)
        search.extend(self.system_dirs)

        for directory in search:
            candidate = os.path.normpath(os.path.join(directory, spelling))
            if os.path.isfile(candidate):
                return candidate
        return None

    def is_system_header(self, path: str) -> bool:
        """True if ``path`` lives in a system directory and not in a user one."""
        user_dirs = self.quote_dirs + self.include_dirs
        if any(_is_under(path, d) for d in user_dirs):
            # A user dir nested inside a system dir (e.g. -I/usr/include/foo) wins
            # only when it is more specific than every matching system dir.
            best_user = max((len(d) for d in user_dirs if _is_under(path, d)), default=-1)
            best_system = max((len(d) for d in self.system_dirs if _is_under(path, d)), default=-1)
            return best_system > best_user
        return any(_is_under(path, d) for d in self.system_dirs)


@dataclass
class SourceFile:
    """One parsed file of a translation unit."""
    path: str
    source: bytes
    tree: Tree


@dataclass
class IncludeGraph:
    """Files of one TU, their include edges and parse trees."""
    main_file: str
    graph: nx.DiGraph = field(default_factory=nx.DiGraph)
    files: Dict[str, SourceFile] = field(default_factory=dict)
    order: List[str] = field(default_factory=list)
    system_headers: List[str] = field(default_factory=list)
    unresolved: List[Tuple[str, str]] = field(default_factory=list)


class IncludeGraphBuilder:
    """Parses a TU's main file and, recursively, its project headers."""

    def __init__(self, command: CompileCommand, parser: LanguageParser, resolver: IncludeResolver):
        self.command = command
        self.parser = parser
        self.resolver = resolver

    def build(self) -> IncludeGraph:
        """Parse every reachable project header once (include-guard semantics).

        Files are ordered headers-before-includer, which matches the
        preprocessor for the usual includes-at-the-top layout.

        Returns:
            IncludeGraph; ``files`` lacks the main file if it is unreadable
        """
        result = IncludeGraph(main_file=self.command.file)
        self._visit(self.command.file, result)
        return result

    def _visit(self, path: str, result: IncludeGraph):
        result.graph.add_node(path, system=False)
        parsed = self._parse(path)
        if parsed is None:
            return
        result.files[path] = parsed

        for spelling, angled in self._include_directives(parsed.tree.root_node):
            target = self.resolver.resolve(spelling, angled, path)
            if target is None:
                debug_log(f"{path}: cannot find include '{spelling}'")
                result.unresolved.append((path, spelling))
                continue

            if target in result.graph:
                result.graph.add_edge(path, target)
                continue

            if self.resolver.is_system_header(target):
                result.graph.add_node(target, system=True)
                result.graph.add_edge(path, target)
                result.system_headers.append(target)
                continue

            result.graph.add_edge(path, target)
            self._visit(target, result)

        result.order.append(path)

    def _parse(self, path: str) -> Optional[SourceFile]:
        try:
            source = Path(path).read_bytes()
        except OSError as e:
            debug_log(f"cannot read {path}: {e}")
            return None
        source = resolve_extern_c_guards(source, self.parser.language)
        return SourceFile(path=path, source=source, tree=self.parser.parse_source(source))

    def _include_directives(self, root: Node) -> List[Tuple[str, bool]]:
        """Every ``#include`` in a file, including those inside ``#if`` blocks."""
        directives = []
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == 'preproc_include':
                path_node = node.child_by_field_name('path')
                if path_node is not None:
                    text = path_node.text.decode('utf-8', errors='ignore').strip()
                    if text.startswith('<') and text.endswith('>'):
                        directives.append((text[1:-1].strip(), True))
                    elif text.startswith('"') and text.endswith('"'):
                        directives.append((text[1:-1], False))
                continue
            stack.extend(reversed(node.children))
        return directives
