"""Per-TU semantic model: redeclaration chains, class hierarchy and name lookup.

Built once per translation unit from the extracted declarations of its main
file and project headers. Lookup is deliberately generous: when the
syntactic model cannot pick one overload, every remaining candidate is
returned and the caller counts each as used.
"""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx

from .compile_db import CompileCommand
from .extractor import ClassInfo, DeclarationExtractor, FileDeclarations, FunctionDecl, FunctionEntity
from .includes import IncludeGraph, IncludeGraphBuilder, IncludeResolver
from .parser import LanguageParser
from ..engine.declarations import Location
from ..engine.identity import generate_usr
from ..utils.logger import debug_log


TEMPLATE_ARGS = re.compile(r'<[^<>]*>')


def strip_template_args(spelling: str) -> str:
    previous = None
    while previous != spelling:
        previous = spelling
        spelling = TEMPLATE_ARGS.sub('', spelling)
    return spelling


def split_scope(spelling: str) -> List[str]:
    """'::ns::Box<int>::get' -> ['', 'ns', 'Box', 'get']"""
    return [part.strip() for part in strip_template_args(spelling).split('::')]


def _is_copy_or_move(signature: Tuple[str, ...], class_name: str) -> bool:
    """True for '(const X&)' and '(X&&)' style parameter lists."""
    if len(signature) != 1 or not signature[0].endswith('&'):
        return False
    base = strip_template_args(signature[0]).rstrip('&').replace('const ', '').strip()
    return base.split('::')[-1] == class_name


@dataclass(frozen=True)
class UnresolvedOverride:
    """A base method that an ``override`` specifier proves exists but that
    lives in a class this TU cannot see (system header, unresolved base)."""
    name: str


class TUSourceManager:
    """Location queries for one translation unit."""

    def __init__(self, main_file: str, resolver: IncludeResolver, system_headers: Iterable[str] = ()):
        self.main_file = main_file
        self.resolver = resolver
        self.system_headers = set(system_headers)

    def is_in_system_header(self, location: Location) -> bool:
        return location.file in self.system_headers or self.resolver.is_system_header(location.file)

    def is_written_in_main_file(self, location: Location) -> bool:
        return location.file == self.main_file

    def filename(self, location: Location) -> str:
        return location.file

    def spelling_line(self, location: Location) -> int:
        return location.line


class ClassHierarchy:
    """Class inheritance graph of one TU (edge: base -> derived)."""

    def __init__(self, classes: Dict[Tuple[str, ...], ClassInfo], extractor: DeclarationExtractor):
        self.classes = classes
        self.extractor = extractor
        self.graph = nx.DiGraph()

        for info in classes.values():
            self.graph.add_node(info.path)
        for info in classes.values():
            for base in info.bases:
                base_info = self.resolve(base, info.enclosing)
                if base_info is None:
                    debug_log(f"{info.qualified_name}: base '{base}' not found")
                    continue
                if base_info.path != info.path:
                    self.graph.add_edge(base_info.path, info.path)

    def resolve(self, spelling: str, enclosing: Tuple[str, ...] = ()) -> Optional[ClassInfo]:
        """Find the class named by ``spelling`` as seen from ``enclosing``."""
        parts = [p for p in split_scope(spelling) if p]
        if not parts:
            return None
        info = self.extractor.find_class(tuple(parts), enclosing)
        if info is not None:
            return info
        for path, candidate in self.classes.items():
            if path[-len(parts):] == tuple(parts):
                return candidate
        return None

    def ancestors(self, info: ClassInfo) -> List[ClassInfo]:
        """Transitive bases, nearest first."""
        result = []
        seen = {info.path}
        queue = [info.path]
        while queue:
            current = queue.pop(0)
            for base in self.graph.predecessors(current):
                if base not in seen:
                    seen.add(base)
                    result.append(self.classes[base])
                    queue.append(base)
        return result

    def direct_bases(self, info: ClassInfo) -> List[ClassInfo]:
        return [self.classes[p] for p in self.graph.predecessors(info.path)]

    def topological_order(self) -> List[ClassInfo]:
        try:
            return [self.classes[p] for p in nx.topological_sort(self.graph)]
        except nx.NetworkXUnfeasible:
            debug_log("class hierarchy has a cycle; overrides are computed in declaration order")
            return list(self.classes.values())


class TranslationUnit:
    """Everything known about one TU after parsing its files."""

    def __init__(self, command: CompileCommand, include_graph: IncludeGraph, resolver: IncludeResolver):
        self.command = command
        self.include_graph = include_graph
        self.resolver = resolver
        self.main_file = command.file
        self.source_manager = TUSourceManager(self.main_file, resolver, include_graph.system_headers)

        self.extractor = DeclarationExtractor(command.language)
        self.files: Dict[str, FileDeclarations] = {}
        self.functions: List[FunctionDecl] = []
        self.entities: List[FunctionEntity] = []
        self.decl_by_node: Dict[Tuple[str, int], FunctionDecl] = {}
        self.global_vars: Dict[str, str] = {}
        self.macro_identifiers: set = set()

        for path in include_graph.order:
            source_file = include_graph.files.get(path)
            if source_file is None:
                continue
            declarations = self.extractor.extract(source_file.tree.root_node, path)
            self.files[path] = declarations
            self.functions.extend(declarations.functions)
            self.global_vars.update(declarations.global_vars)
            self.macro_identifiers.update(declarations.macro_identifiers)

        self.classes = self.extractor.classes
        self._apply_pragma_weak()
        self._group_redeclarations()
        self.hierarchy = ClassHierarchy(self.classes, self.extractor)
        self._index()
        self._compute_overrides()

    @classmethod
    def load(cls, command: CompileCommand, extra_system_dirs: Optional[List[str]] = None) -> 'TranslationUnit':
        """Parse a TU's main file and project headers and build its model.

        Args:
            command: Compile command of the TU
            extra_system_dirs: Additional system header directories

        Returns:
            TranslationUnit (check ``main_file_missing`` and ``syntax_errors``)
        """
        resolver = IncludeResolver(command, extra_system_dirs)
        parser = LanguageParser(command.language)
        include_graph = IncludeGraphBuilder(command, parser, resolver).build()
        return cls(command, include_graph, resolver)

    @property
    def main_file_missing(self) -> bool:
        return self.main_file not in self.include_graph.files

    def syntax_errors(self) -> List[Tuple[str, int]]:
        """First error position of every parsed file whose tree has errors."""
        errors = []
        for path in self.include_graph.order:
            source_file = self.include_graph.files.get(path)
            if source_file is None or not source_file.tree.root_node.has_error:
                continue
            errors.append((path, self._first_error_line(source_file.tree.root_node)))
        return errors

    @staticmethod
    def _first_error_line(root) -> int:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == 'ERROR' or node.is_missing:
                return node.start_point[0] + 1
            if node.has_error:
                stack.extend(reversed(node.children))
        return root.start_point[0] + 1

    # ------------------------------------------------------------------
    # Model construction

    def _apply_pragma_weak(self):
        weak_names = set()
        for declarations in self.files.values():
            weak_names |= declarations.weak_names
        for decl in self.functions:
            if decl.name in weak_names and decl.owner is None:
                decl.attributes.add('weak')

    def _group_redeclarations(self):
        """Chain declarations of the same entity, first in include order canonical."""
        by_key: Dict[str, FunctionEntity] = {}
        for decl in self.functions:
            if decl.node_key is not None:
                self.decl_by_node.setdefault(decl.node_key, decl)
            key = generate_usr(decl)
            if key is None and decl.is_destructor and decl.owner is not None:
                key = '::'.join(decl.owner) + '::~'
            if key is None:
                self.entities.append(FunctionEntity([decl]))
                continue
            entity = by_key.get(key)
            if entity is None:
                entity = FunctionEntity([decl], usr=key)
                by_key[key] = entity
                self.entities.append(entity)
            else:
                entity.add(decl)

    def _index(self):
        self.free_functions: Dict[str, List[FunctionEntity]] = {}
        self.methods_by_name: Dict[str, List[FunctionEntity]] = {}
        self.methods_by_owner: Dict[Tuple[str, ...], Dict[str, List[FunctionEntity]]] = {}
        for entity in self.entities:
            canonical = entity.canonical
            if canonical.owner is None:
                self.free_functions.setdefault(canonical.name, []).append(entity)
            else:
                self.methods_by_name.setdefault(canonical.name, []).append(entity)
                self.methods_by_owner.setdefault(canonical.owner, {}).setdefault(canonical.name, []).append(entity)

    def _compute_overrides(self):
        for info in self.hierarchy.topological_order():
            ancestors = self.hierarchy.ancestors(info)
            for entities in self.methods_by_owner.get(info.path, {}).values():
                for entity in entities:
                    canonical = entity.canonical
                    if canonical.kind in ('constructor', 'destructor') or canonical.is_static_member:
                        continue
                    overridden = []
                    for base in ancestors:
                        for candidate in self.methods_by_owner.get(base.path, {}).get(canonical.name, []):
                            base_decl = candidate.canonical
                            if (base_decl.signature == canonical.signature
                                    and base_decl.method_qualifiers == canonical.method_qualifiers
                                    and candidate.is_virtual):
                                overridden.append(base_decl)
                    declares_override = any(
                        d.declared_override or (d.declared_final and not d.declared_virtual)
                        for d in entity.redecls
                    )
                    if not overridden and declares_override:
                        overridden.append(UnresolvedOverride(canonical.name))
                    entity.overridden = overridden

    # ------------------------------------------------------------------
    # Lookup

    def definitions(self) -> List[FunctionDecl]:
        """Every declaration written as a function definition, in include order."""
        return [d for d in self.functions if d.is_definition_node]

    def find_class(self, spelling: str, enclosing: Tuple[str, ...] = ()) -> Optional[ClassInfo]:
        return self.hierarchy.resolve(spelling, enclosing)

    def class_of(self, decl: FunctionDecl) -> Optional[ClassInfo]:
        if decl.owner is None:
            return None
        return self.classes.get(decl.owner)

    def member_candidates(self, info: ClassInfo, name: str) -> List[FunctionEntity]:
        """Methods called ``name`` in ``info`` or, if it has none, its nearest bases."""
        for cls in [info] + self.hierarchy.ancestors(info):
            found = self.methods_by_owner.get(cls.path, {}).get(name)
            if found:
                return list(found)
        return []

    def lookup_unqualified(self, name: str, enclosing: Tuple[str, ...],
                           owner: Optional[ClassInfo], arity: Optional[int] = None) -> List[FunctionEntity]:
        """Unqualified name lookup from inside ``enclosing`` (and class ``owner``)."""
        if owner is not None:
            found = self.member_candidates(owner, name)
            if found:
                return self.narrow(found, arity)

        functions = self.free_functions.get(name, [])
        for depth in range(len(enclosing), -1, -1):
            level = [e for e in functions if self._lookup_path(e.canonical) == enclosing[:depth]]
            if level:
                return self.narrow(level, arity)
        return self.narrow(list(functions), arity)

    def lookup_qualified(self, spelling: str, enclosing: Tuple[str, ...],
                         arity: Optional[int] = None) -> List[FunctionEntity]:
        """Lookup of ``a::b::f`` style names."""
        parts = split_scope(spelling)
        name = parts[-1]
        qualifiers = parts[:-1]
        absolute = bool(qualifiers) and qualifiers[0] == ''
        qualifiers = tuple(q for q in qualifiers if q)

        if qualifiers:
            info = self.extractor.find_class(qualifiers, () if absolute else enclosing)
            if info is not None:
                found = self.member_candidates(info, name)
                if found:
                    return self.narrow(found, arity)

        candidates = []
        for entity in self.free_functions.get(name, []) + self.methods_by_name.get(name, []):
            path = self._lookup_path(entity.canonical)
            if absolute and path == qualifiers:
                candidates.append(entity)
            elif not absolute and path[len(path) - len(qualifiers):] == qualifiers:
                candidates.append(entity)
        return self.narrow(candidates, arity)

    def lookup_member(self, name: str, receiver: Optional[ClassInfo],
                      arity: Optional[int] = None) -> List[FunctionEntity]:
        """Lookup of ``x.name`` / ``x->name``; every method of that name if the receiver is unknown."""
        if receiver is not None:
            found = self.member_candidates(receiver, name)
            if found:
                return self.narrow(found, arity)
        return self.narrow(list(self.methods_by_name.get(name, [])), arity)

    def lookup_any(self, name: str) -> List[FunctionEntity]:
        """Every function or method called ``name``."""
        return list(self.free_functions.get(name, [])) + list(self.methods_by_name.get(name, []))

    def constructors(self, info: ClassInfo, arity: Optional[int] = None) -> List[FunctionEntity]:
        ctors = [e for e in self.methods_by_owner.get(info.path, {}).get(info.name.split('<', 1)[0], [])
                 if e.canonical.kind == 'constructor']
        return self.narrow(ctors, arity)

    def construction_uses(self, info: ClassInfo, arity: Optional[int] = None) -> List[FunctionEntity]:
        """Functions constructing an object of ``info`` references.

        The selected constructor(s), plus the members that run without any
        syntactic call site: copy/move constructors, conversion operators,
        and the default constructors of direct bases and class-typed members.
        """
        uses = self.constructors(info, arity)
        simple_name = info.name.split('<', 1)[0]
        implicit = [c for c in self.constructors(info) if _is_copy_or_move(c.canonical.signature, simple_name)]
        for entities in self.methods_by_owner.get(info.path, {}).values():
            implicit.extend(e for e in entities if e.canonical.kind == 'conversion')
        for base in self.hierarchy.direct_bases(info):
            implicit.extend(self.constructors(base, 0))
        for member_type in info.member_types.values():
            member_class = self.find_class(member_type, info.path)
            if member_class is not None and member_class.path != info.path:
                implicit.extend(self.constructors(member_class, 0))

        for entity in implicit:
            if entity not in uses:
                uses.append(entity)
        return uses

    @staticmethod
    def narrow(entities: List[FunctionEntity], arity: Optional[int]) -> List[FunctionEntity]:
        """Keep the overloads callable with ``arity`` arguments, all of them if none is."""
        if arity is None or len(entities) <= 1:
            return entities
        narrowed = [e for e in entities if e.accepts(arity)]
        return narrowed or entities

    @staticmethod
    def _lookup_path(decl: FunctionDecl) -> Tuple[str, ...]:
        return tuple(s.name for s in decl.scope if s.kind != 'anonymous_namespace')
