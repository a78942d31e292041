"""Function and class declaration extraction from C/C++ syntax trees.

The extractor only looks at namespace and class level: namespaces,
``extern "C"`` blocks, class bodies, templates and every branch of
preprocessor conditionals. Function bodies are left to the reference
tracker.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from ..engine.declarations import Linkage, Location, ScopeSegment
from ..utils.logger import debug_log


CLASS_SPECIFIERS = ('class_specifier', 'struct_specifier', 'union_specifier')

# Containers whose children are walked with an unchanged context
TRANSPARENT_NODES = {
    'translation_unit', 'declaration_list', 'preproc_if', 'preproc_ifdef',
    'preproc_else', 'preproc_elif', 'preproc_elifdef', 'field_declaration_list',
    'ERROR',
}

# Declarator wrappers between a declaration and its function_declarator
DECLARATOR_WRAPPERS = {
    'pointer_declarator', 'reference_declarator', 'attributed_declarator',
    'parenthesized_declarator', 'init_declarator',
}

# What may name a function inside a function_declarator
FUNCTION_NAME_NODES = {
    'identifier', 'field_identifier', 'qualified_identifier', 'destructor_name',
    'operator_name', 'template_function', 'template_method', 'operator_cast',
    'qualified_operator_cast_identifier',
}

ATTRIBUTE_NODES = {'attribute_specifier', 'attribute_declaration', 'ms_declspec_modifier'}

WEAK_ATTRIBUTE = re.compile(r'\bweak(ref)?\b')
CONSTRUCTOR_ATTRIBUTE = re.compile(r'\bconstructor\b')
IDENTIFIER = re.compile(r'[A-Za-z_]\w*')

ELABORATED_PREFIX = re.compile(r'\b(struct|class|union|enum|typename)\s+')

# Method qualifier mask, as in clang USRs (const=1, volatile=4) plus ref-qualifiers
QUAL_CONST = 0x1
QUAL_VOLATILE = 0x4
QUAL_LVALUE_REF = 0x8
QUAL_RVALUE_REF = 0x10


def node_text(node: Optional[Node]) -> str:
    if node is None:
        return ''
    return node.text.decode('utf-8', errors='ignore')


def normalize_type(text: str) -> str:
    """Canonical spelling of a type: no elaborated keywords, minimal spaces."""
    text = ELABORATED_PREFIX.sub('', text)
    text = re.sub(r'\s+', ' ', text).strip()
    text = re.sub(r'\s*([*&,<>()\[\]])\s*', r'\1', text)
    return text


def normalize_operator(text: str) -> str:
    """'operator ==' -> 'operator==', 'operator  new[]' -> 'operator new[]'."""
    rest = re.sub(r'\s+', ' ', text[len('operator'):]).strip()
    if rest and (rest[0].isalpha() or rest[0] == '_'):
        return 'operator ' + re.sub(r'\s*\[\s*\]', '[]', rest)
    return 'operator' + rest.replace(' ', '')


@dataclass
class ClassInfo:
    """A class, struct or union definition."""
    name: str
    path: Tuple[str, ...]
    segments: Tuple[ScopeSegment, ...]
    template_arity: int
    file: str
    line: int
    enclosing: Tuple[str, ...] = ()
    bases: List[str] = field(default_factory=list)
    member_types: Dict[str, str] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return '::'.join(self.path)


@dataclass(eq=False)
class FunctionDecl:
    """One syntactic declaration or definition of a function-like entity.

    Implements the engine's ``FunctionLike`` protocol. Properties that are a
    fact about the entity rather than one declaration (virtual, weak, has a
    body somewhere, ...) are answered through the redeclaration chain the
    translation unit attaches as ``entity``.
    """
    name: str
    qualified_name: str
    location: Location
    kind: str  # function, method, constructor, destructor, conversion
    scope: Tuple[ScopeSegment, ...]
    signature: Tuple[str, ...]
    min_args: int
    max_args: Optional[int]
    method_qualifiers: int
    linkage: Linkage
    declaring_file: str
    template_arity: int = 0
    template_args: Optional[str] = None
    is_definition_node: bool = False
    body: bool = False
    is_deleted: bool = False
    is_defaulted: bool = False
    declared_virtual: bool = False
    declared_override: bool = False
    declared_final: bool = False
    declared_pure: bool = False
    is_static_member: bool = False
    attributes: Set[str] = field(default_factory=set)
    owner: Optional[Tuple[str, ...]] = None
    node_key: Optional[Tuple[str, int]] = None
    is_implicit: bool = False
    entity: Optional['FunctionEntity'] = field(default=None, repr=False)

    # -- FunctionLike -----------------------------------------------------

    @property
    def is_method(self) -> bool:
        return self.owner is not None

    @property
    def is_destructor(self) -> bool:
        return self.kind == 'destructor'

    @property
    def is_virtual(self) -> bool:
        return self._entity().is_virtual

    @property
    def is_pure(self) -> bool:
        return self._entity().is_pure

    @property
    def is_weak(self) -> bool:
        return self._entity().is_weak

    @property
    def has_constructor_attr(self) -> bool:
        return self._entity().has_constructor_attr

    def has_body(self) -> bool:
        return self._entity().definition is not None

    def does_this_declaration_have_a_body(self) -> bool:
        return self.body

    def instantiated_from_member_function(self) -> Optional['FunctionDecl']:
        # The syntax tree only holds patterns; instantiations never appear.
        return None

    def is_template_instantiation(self) -> bool:
        return False

    def template_instantiation_pattern(self) -> Optional['FunctionDecl']:
        return self

    def canonical_decl(self) -> 'FunctionDecl':
        return self._entity().canonical

    def definition(self) -> Optional['FunctionDecl']:
        return self._entity().definition

    def redecls(self) -> List['FunctionDecl']:
        return list(self._entity().redecls)

    def overridden_methods(self) -> List[object]:
        return list(self._entity().overridden)

    def is_main(self) -> bool:
        return self.name == 'main' and not self.scope and self.owner is None

    # -- helpers -----------------------------------------------------------

    def accepts(self, arity: Optional[int]) -> bool:
        if arity is None:
            return True
        return self.min_args <= arity and (self.max_args is None or arity <= self.max_args)

    def _entity(self) -> 'FunctionEntity':
        if self.entity is None:
            self.entity = FunctionEntity([self])
        return self.entity


class FunctionEntity:
    """The redeclaration chain of one function inside one TU."""

    def __init__(self, redecls: List[FunctionDecl], usr: Optional[str] = None):
        self.usr = usr
        self.redecls: List[FunctionDecl] = list(redecls)
        self.overridden: List[object] = []
        for decl in self.redecls:
            decl.entity = self

    @property
    def canonical(self) -> FunctionDecl:
        return self.redecls[0]

    @property
    def definition(self) -> Optional[FunctionDecl]:
        for decl in self.redecls:
            if decl.body:
                return decl
        return None

    @property
    def is_pure(self) -> bool:
        return any(d.declared_pure for d in self.redecls)

    @property
    def is_virtual(self) -> bool:
        return (any(d.declared_virtual or d.declared_override or d.declared_final for d in self.redecls)
                or bool(self.overridden))

    @property
    def is_weak(self) -> bool:
        return any('weak' in d.attributes for d in self.redecls)

    @property
    def has_constructor_attr(self) -> bool:
        return any('constructor' in d.attributes for d in self.redecls)

    @property
    def min_args(self) -> int:
        return min(d.min_args for d in self.redecls)

    @property
    def max_args(self) -> Optional[int]:
        if any(d.max_args is None for d in self.redecls):
            return None
        return max(d.max_args for d in self.redecls)

    def accepts(self, arity: Optional[int]) -> bool:
        if arity is None:
            return True
        return self.min_args <= arity and (self.max_args is None or arity <= self.max_args)

    def add(self, decl: FunctionDecl) -> None:
        decl.entity = self
        self.redecls.append(decl)


@dataclass(frozen=True)
class _Context:
    scope: Tuple[ScopeSegment, ...] = ()
    c_linkage: bool = False
    owner: Optional[ClassInfo] = None
    template_stack: Tuple[Tuple[int, Optional[str]], ...] = ()

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.scope if s.kind != 'anonymous_namespace')

    def enter(self, segment: ScopeSegment, owner: Optional[ClassInfo] = None) -> '_Context':
        return _Context(self.scope + (segment,), self.c_linkage, owner, ())

    def plain(self) -> '_Context':
        return _Context(self.scope, self.c_linkage, self.owner, ())


@dataclass
class FileDeclarations:
    """Everything extracted from one file."""
    functions: List[FunctionDecl] = field(default_factory=list)
    classes: List[ClassInfo] = field(default_factory=list)
    global_vars: Dict[str, str] = field(default_factory=dict)
    weak_names: Set[str] = field(default_factory=set)
    macro_identifiers: Set[str] = field(default_factory=set)


class DeclarationExtractor:
    """Extract function declarations/definitions and classes from one TU's files."""

    def __init__(self, language: str, classes: Optional[Dict[Tuple[str, ...], ClassInfo]] = None):
        """Initialize extractor for given language.

        Args:
            language: 'c' or 'cpp' (the TU language, used for headers too)
            classes: Class registry shared across the TU's files, filled as
                files are extracted in include order
        """
        self.language = language
        self.classes: Dict[Tuple[str, ...], ClassInfo] = classes if classes is not None else {}

    def extract(self, root: Node, file_path: str) -> FileDeclarations:
        """Extract every declaration of one file.

        Args:
            root: Root node of the file's tree
            file_path: Absolute path of the file

        Returns:
            FileDeclarations
        """
        result = FileDeclarations()
        self._walk(root, _Context(c_linkage=self.language == 'c'), file_path, result)
        return result

    # ------------------------------------------------------------------
    # Structural walk

    def _walk(self, node: Node, ctx: _Context, file_path: str, out: FileDeclarations):
        node_type = node.type

        if node_type in TRANSPARENT_NODES:
            for child in node.named_children:
                self._walk(child, ctx.plain() if node_type != 'ERROR' else ctx, file_path, out)

        elif node_type == 'namespace_definition':
            name_node = node.child_by_field_name('name')
            inner = ctx
            if name_node is None:
                inner = inner.enter(ScopeSegment('anonymous_namespace', ''))
            else:
                for part in node_text(name_node).split('::'):
                    part = part.strip()
                    if part:
                        inner = inner.enter(ScopeSegment('namespace', part))
            body = node.child_by_field_name('body')
            if body is not None:
                self._walk(body, inner, file_path, out)

        elif node_type == 'linkage_specification':
            value = node_text(node.child_by_field_name('value')).strip('"')
            inner = _Context(ctx.scope, value == 'C' or ctx.c_linkage, ctx.owner, ())
            body = node.child_by_field_name('body')
            if body is not None:
                self._walk(body, inner, file_path, out)

        elif node_type == 'template_declaration':
            params = node.child_by_field_name('parameters')
            arity = len([c for c in params.named_children if c.type != 'comment']) if params is not None else 0
            inner = _Context(ctx.scope, ctx.c_linkage, ctx.owner, ctx.template_stack + ((arity, None),))
            for child in node.named_children:
                if child.type in ('template_parameter_list', 'requires_clause'):
                    continue
                self._walk(child, inner, file_path, out)

        elif node_type in CLASS_SPECIFIERS:
            self._handle_class(node, ctx, file_path, out)

        elif node_type == 'function_definition':
            self._handle_function(node, ctx, file_path, out, is_definition=True)

        elif node_type in ('declaration', 'field_declaration'):
            self._handle_declaration(node, ctx, file_path, out)

        elif node_type == 'friend_declaration':
            self._handle_friend(node, ctx, file_path, out)

        elif node_type == 'type_definition':
            type_node = node.child_by_field_name('type')
            if type_node is not None and type_node.type in CLASS_SPECIFIERS:
                self._handle_class(type_node, ctx.plain(), file_path, out)

        elif node_type == 'preproc_call':
            directive = node_text(node.child_by_field_name('directive')).strip()
            argument = node_text(node.child_by_field_name('argument')).strip()
            if directive == '#pragma' and argument.startswith('weak'):
                tokens = IDENTIFIER.findall(argument)
                if len(tokens) >= 2:
                    out.weak_names.add(tokens[1])

        elif node_type in ('preproc_def', 'preproc_function_def'):
            value = node.child_by_field_name('value')
            if value is not None:
                out.macro_identifiers.update(IDENTIFIER.findall(node_text(value)))

    # ------------------------------------------------------------------
    # Classes

    def _handle_class(self, node: Node, ctx: _Context, file_path: str, out: FileDeclarations):
        body = node.child_by_field_name('body')
        name_node = node.child_by_field_name('name')
        if body is None:
            return  # forward declaration or elaborated type

        arity = ctx.template_stack[-1][0] if ctx.template_stack else 0
        qualifiers: List[str] = []
        if name_node is None:
            name = ''
        elif name_node.type == 'qualified_identifier':
            parts = self._split_qualified(name_node)
            qualifiers, name = parts[:-1], parts[-1]
        elif name_node.type == 'template_type':
            # Explicit or partial specialization: a distinct class named with its arguments
            name = normalize_type(node_text(name_node))
        else:
            name = node_text(name_node)

        scope = ctx.scope + tuple(self._qualifier_segments(qualifiers, ctx))
        segment = ScopeSegment('class', name, arity)
        path = tuple(s.name for s in scope if s.kind != 'anonymous_namespace') + (name,)
        info = ClassInfo(
            name=name,
            path=path,
            segments=scope + (segment,),
            template_arity=arity,
            file=file_path,
            line=node.start_point[0] + 1,
            enclosing=path[:-1],
        )

        for child in node.children:
            if child.type == 'base_class_clause':
                for base in child.named_children:
                    if base.type in ('type_identifier', 'qualified_identifier', 'template_type'):
                        info.bases.append(normalize_type(node_text(base)))

        if name:
            self.classes.setdefault(path, info)
            info = self.classes[path]
        out.classes.append(info)

        inner = _Context(scope + (segment,), ctx.c_linkage, info, ())
        self._walk(body, inner, file_path, out)

    def _qualifier_segments(self, qualifiers: List[str], ctx: _Context) -> List[ScopeSegment]:
        """Turn 'a::B<T>' qualifiers into scope segments, classes looked up C++ style."""
        segments: List[ScopeSegment] = []
        prefix: Tuple[str, ...] = ()
        for raw in qualifiers:
            name = raw.split('<', 1)[0].strip()
            if not name:
                continue  # leading '::'
            info = self.find_class(prefix + (name,), ctx.names if not prefix else ())
            if info is not None:
                segments = list(info.segments)
                prefix = info.path
            else:
                segments.append(ScopeSegment('namespace', name))
                prefix = prefix + (name,)
        return segments

    def find_class(self, parts: Tuple[str, ...], enclosing: Tuple[str, ...]) -> Optional[ClassInfo]:
        """Look ``parts`` up from the innermost enclosing scope outwards."""
        for depth in range(len(enclosing), -1, -1):
            info = self.classes.get(enclosing[:depth] + tuple(parts))
            if info is not None:
                return info
        return None

    # ------------------------------------------------------------------
    # Functions

    def _handle_declaration(self, node: Node, ctx: _Context, file_path: str, out: FileDeclarations):
        type_node = node.child_by_field_name('type')
        if type_node is not None and type_node.type in CLASS_SPECIFIERS:
            self._handle_class(type_node, ctx.plain(), file_path, out)

        for declarator in node.children_by_field_name('declarator'):
            function_declarator = self._function_declarator(declarator)
            if function_declarator is not None:
                self._add_function(node, function_declarator, ctx, file_path, out, is_definition=False)
            elif self._conversion(declarator) is not None:
                self._add_function(node, declarator, ctx, file_path, out, is_definition=False)
            elif ctx.owner is not None and node.type == 'field_declaration' and type_node is not None:
                member = self._declarator_name(declarator)
                if member:
                    ctx.owner.member_types[member] = value_type_name(type_node)
            elif ctx.owner is None and type_node is not None:
                var = self._declarator_name(declarator)
                if var:
                    out.global_vars[var] = value_type_name(type_node)

    def _handle_function(self, node: Node, ctx: _Context, file_path: str, out: FileDeclarations,
                         is_definition: bool):
        declarator = node.child_by_field_name('declarator')
        if declarator is None:
            return
        function_declarator = self._function_declarator(declarator)
        if function_declarator is None and self._conversion(declarator) is not None:
            function_declarator = declarator
        if function_declarator is None:
            debug_log(f"{file_path}:{node.start_point[0] + 1}: unsupported function declarator")
            return
        self._add_function(node, function_declarator, ctx, file_path, out, is_definition=is_definition)

    def _handle_friend(self, node: Node, ctx: _Context, file_path: str, out: FileDeclarations):
        # An inline friend definition defines a function of the enclosing namespace.
        namespace_scope = tuple(s for s in ctx.scope if s.kind != 'class')
        outer = _Context(namespace_scope, ctx.c_linkage, None, ())
        for child in node.named_children:
            if child.type == 'function_definition':
                self._handle_function(child, outer, file_path, out, is_definition=True)

    @staticmethod
    def _conversion(declarator: Optional[Node]) -> Optional[Node]:
        """The operator_cast node of a (possibly qualified) conversion declarator."""
        current = declarator
        while current is not None and current.type in ('qualified_identifier',
                                                       'qualified_operator_cast_identifier'):
            current = current.child_by_field_name('name')
        if current is not None and current.type == 'operator_cast':
            return current
        return None

    def _function_declarator(self, declarator: Optional[Node]) -> Optional[Node]:
        return find_function_declarator(declarator)

    def _add_function(self, node: Node, function_declarator: Node, ctx: _Context, file_path: str,
                      out: FileDeclarations, is_definition: bool):
        if function_declarator.type == 'function_declarator':
            name_node = function_declarator.child_by_field_name('declarator')
            params_node = function_declarator.child_by_field_name('parameters')
            qualifier_holder = function_declarator
        else:
            # Conversion operator: the operator_cast holds an abstract function declarator
            name_node = function_declarator
            cast = self._conversion(function_declarator)
            abstract = cast.child_by_field_name('declarator') if cast is not None else None
            params_node = abstract.child_by_field_name('parameters') if abstract is not None else None
            qualifier_holder = abstract if abstract is not None else function_declarator

        qualifiers, name, kind, template_args = self._function_name(name_node, ctx)
        if name is None:
            return

        scope = ctx.scope + tuple(self._qualifier_segments(qualifiers, ctx))
        owner_info: Optional[ClassInfo] = ctx.owner
        if qualifiers:
            owner_info = self._owner_from_scope(scope)
        if owner_info is not None and (not scope or scope[-1].kind != 'class'):
            owner_info = None

        if kind == 'function' and owner_info is not None:
            kind = 'constructor' if name == owner_info.name.split('<', 1)[0] else 'method'
        if kind == 'constructor' and owner_info is None:
            kind = 'function'

        signature, min_args, max_args = self._signature(params_node)
        decl_children = list(node.children) + list(qualifier_holder.children)
        specifier_texts = {node_text(c) for c in node.children if c.type in ('storage_class_specifier', 'virtual',
                                                                             'virtual_function_specifier')}
        is_static = 'static' in specifier_texts

        attributes: Set[str] = set()
        for child in decl_children:
            if child.type in ATTRIBUTE_NODES:
                text = node_text(child)
                if WEAK_ATTRIBUTE.search(text):
                    attributes.add('weak')
                if CONSTRUCTOR_ATTRIBUTE.search(text):
                    attributes.add('constructor')

        method_qualifiers = 0
        declared_override = declared_final = False
        for child in qualifier_holder.children:
            if child.type == 'type_qualifier':
                text = node_text(child)
                if text == 'const':
                    method_qualifiers |= QUAL_CONST
                elif text == 'volatile':
                    method_qualifiers |= QUAL_VOLATILE
            elif child.type == 'ref_qualifier':
                method_qualifiers |= QUAL_RVALUE_REF if node_text(child) == '&&' else QUAL_LVALUE_REF
        for child in decl_children:
            if child.type == 'virtual_specifier':
                text = node_text(child)
                declared_override |= text == 'override'
                declared_final |= text == 'final'

        child_types = {c.type for c in node.children}
        is_deleted = 'delete_method_clause' in child_types
        is_defaulted = 'default_method_clause' in child_types
        body = is_definition and node.child_by_field_name('body') is not None
        declared_pure = 'pure_virtual_clause' in child_types or (
            node.type == 'field_declaration' and node_text(node.child_by_field_name('default_value')) == '0'
        )

        template_arity = self._own_template_arity(ctx, scope)
        if template_arity == 0 and template_args is None and ctx.template_stack and ctx.template_stack[-1][0] == 0:
            template_args = ''  # explicit specialization spelled without arguments

        if any(s.kind == 'anonymous_namespace' for s in scope) or (is_static and owner_info is None):
            linkage = Linkage.INTERNAL
        elif ctx.c_linkage and owner_info is None:
            linkage = Linkage.C
        else:
            linkage = Linkage.EXTERNAL

        scope_names = [s.name or '(anonymous)' if s.kind != 'anonymous_namespace' else '(anonymous namespace)'
                       for s in scope]
        qualified_name = '::'.join(scope_names + [name])

        decl = FunctionDecl(
            name=name,
            qualified_name=qualified_name,
            location=Location(file_path, node.start_point[0] + 1),
            kind=kind,
            scope=scope,
            signature=signature,
            min_args=min_args,
            max_args=max_args,
            method_qualifiers=method_qualifiers,
            linkage=linkage,
            declaring_file=file_path,
            template_arity=template_arity,
            template_args=template_args,
            is_definition_node=is_definition,
            body=body,
            is_deleted=is_deleted,
            is_defaulted=is_defaulted,
            declared_virtual='virtual' in specifier_texts,
            declared_override=declared_override,
            declared_final=declared_final,
            declared_pure=declared_pure,
            is_static_member=is_static and owner_info is not None,
            attributes=attributes,
            owner=owner_info.path if owner_info is not None else None,
            node_key=(file_path, node.start_byte),
        )
        out.functions.append(decl)

    def _owner_from_scope(self, scope: Tuple[ScopeSegment, ...]) -> Optional[ClassInfo]:
        if not scope or scope[-1].kind != 'class':
            return None
        path = tuple(s.name for s in scope if s.kind != 'anonymous_namespace')
        return self.classes.get(path)

    def _own_template_arity(self, ctx: _Context, scope: Tuple[ScopeSegment, ...]) -> int:
        """Template parameter count that belongs to the function itself.

        ``template<class T> void C<T>::f()`` spends its parameter list on the
        class; only lists beyond the enclosing class templates count.
        """
        if not ctx.template_stack:
            return 0
        class_lists = 0
        if ctx.owner is None:
            class_lists = len([s for s in scope if s.kind == 'class' and s.template_arity])
        remaining = ctx.template_stack[class_lists:]
        return remaining[-1][0] if remaining else 0

    def _function_name(self, name_node: Node, ctx: _Context):
        """Return (qualifiers, name, kind, template_args) for a declarator name."""
        node_type = name_node.type
        if node_type in ('identifier', 'field_identifier'):
            return [], node_text(name_node), 'function', None
        if node_type == 'destructor_name':
            return [], node_text(name_node).replace(' ', ''), 'destructor', None
        if node_type == 'operator_name':
            return [], normalize_operator(node_text(name_node)), 'function', None
        if node_type == 'operator_cast':
            target = name_node.child_by_field_name('type')
            return [], 'operator ' + normalize_type(node_text(target)), 'conversion', None
        if node_type in ('template_function', 'template_method'):
            name = node_text(name_node.child_by_field_name('name'))
            args = node_text(name_node.child_by_field_name('arguments'))
            return [], name, 'function', normalize_type(args[1:-1]) if args else ''
        if node_type in ('qualified_identifier', 'qualified_operator_cast_identifier'):
            qualifiers: List[str] = []
            current = name_node
            while current is not None and current.type in ('qualified_identifier',
                                                           'qualified_operator_cast_identifier'):
                scope_node = current.child_by_field_name('scope')
                if scope_node is not None:
                    qualifiers.append(normalize_type(node_text(scope_node)))
                else:
                    qualifiers.append('')  # leading '::'
                current = current.child_by_field_name('name')
            if current is None:
                return qualifiers, None, 'function', None
            _, name, kind, template_args = self._function_name(current, ctx)
            if kind == 'function' and qualifiers and name == qualifiers[-1].split('<', 1)[0]:
                kind = 'constructor'
            return qualifiers, name, kind, template_args
        return [], None, 'function', None

    def _signature(self, params_node: Optional[Node]) -> Tuple[Tuple[str, ...], int, Optional[int]]:
        """Normalized parameter types plus the accepted argument count range."""
        if params_node is None:
            return (), 0, 0
        types: List[str] = []
        min_args = 0
        max_args: Optional[int] = 0
        # '...' is an anonymous token in current grammars, so walk every child
        for param in params_node.children:
            if param.type == 'comment' or (not param.is_named and param.type != '...'):
                continue
            if param.type in ('variadic_parameter', '...') or node_text(param) == '...':
                types.append('...')
                max_args = None
                continue
            type_text = self._parameter_type(param)
            if param.type == 'variadic_parameter_declaration':
                types.append(type_text + '...')
                max_args = None
                continue
            if type_text == 'void' and len(params_node.named_children) == 1:
                break
            types.append(type_text)
            if max_args is not None:
                max_args += 1
            if param.type != 'optional_parameter_declaration':
                min_args += 1
        return tuple(types), min_args, max_args

    def _parameter_type(self, param: Node) -> str:
        qualifiers = sorted(node_text(c) for c in param.children if c.type == 'type_qualifier')
        type_node = param.child_by_field_name('type')
        base = node_text(type_node)
        shape = self._declarator_shape(param.child_by_field_name('declarator'), outermost=True)
        if not shape:
            # Top-level cv-qualifiers are not part of the signature
            qualifiers = []
        return normalize_type(' '.join(qualifiers + [base]) + shape)

    def _declarator_shape(self, declarator: Optional[Node], outermost: bool = False) -> str:
        """The abstract part of a declarator with the parameter name dropped."""
        if declarator is None:
            return ''
        node_type = declarator.type
        inner = declarator.child_by_field_name('declarator')
        if node_type in ('pointer_declarator', 'abstract_pointer_declarator'):
            quals = '' if outermost else ''.join(
                ' ' + node_text(c) for c in declarator.children if c.type == 'type_qualifier')
            return '*' + quals + self._declarator_shape(inner)
        if node_type in ('reference_declarator', 'abstract_reference_declarator'):
            ref = '&&' if node_text(declarator).lstrip().startswith('&&') else '&'
            if inner is None:
                inner = next((c for c in declarator.named_children), None)
            return ref + self._declarator_shape(inner)
        if node_type in ('array_declarator', 'abstract_array_declarator'):
            return '*' + self._declarator_shape(inner)
        if node_type in ('function_declarator', 'abstract_function_declarator'):
            params = declarator.child_by_field_name('parameters')
            signature, _, _ = self._signature(params)
            return '(' + self._declarator_shape(inner) + ')(' + ','.join(signature) + ')'
        if node_type in ('parenthesized_declarator', 'abstract_parenthesized_declarator'):
            child = next((c for c in declarator.named_children), None)
            return self._declarator_shape(child)
        if node_type == 'variadic_declarator':
            return ''
        return ''

    def _declarator_name(self, declarator: Optional[Node]) -> Optional[str]:
        current = declarator
        while current is not None:
            if current.type in ('identifier', 'field_identifier'):
                return node_text(current)
            nxt = current.child_by_field_name('declarator')
            if nxt is None:
                nxt = next((c for c in current.named_children
                            if c.type in ('identifier', 'field_identifier') or c.type.endswith('declarator')), None)
            current = nxt
        return None

    @staticmethod
    def _split_qualified(node: Node) -> List[str]:
        return [normalize_type(p) for p in node_text(node).split('::')]


SMART_POINTERS = {'unique_ptr', 'shared_ptr', 'weak_ptr', 'auto_ptr', 'optional',
                  'reference_wrapper', 'scoped_ptr', 'intrusive_ptr', 'QSharedPointer',
                  'QScopedPointer', 'QPointer'}


def value_type_name(type_node: Optional[Node]) -> str:
    """The class reachable through a declared type, smart pointers unwrapped.

    'const ns::Widget', 'std::unique_ptr<Widget>' and 'Widget' all give the
    Widget spelling; the caller resolves it to a class.
    """
    if type_node is None:
        return ''
    if type_node.type == 'template_type':
        name = node_text(type_node.child_by_field_name('name'))
        if name.split('::')[-1] in SMART_POINTERS:
            args = type_node.child_by_field_name('arguments')
            if args is not None:
                first = next((c for c in args.named_children if c.type == 'type_descriptor'), None)
                if first is not None:
                    return value_type_name(first.child_by_field_name('type'))
        return normalize_type(name)
    if type_node.type == 'qualified_identifier':
        name = type_node.child_by_field_name('name')
        if name is not None and name.type == 'template_type':
            unwrapped = value_type_name(name)
            scope = node_text(type_node.child_by_field_name('scope'))
            if unwrapped != normalize_type(node_text(name.child_by_field_name('name'))):
                return unwrapped
            return normalize_type(scope + '::' + unwrapped)
    return normalize_type(node_text(type_node)).split('<', 1)[0]


def find_function_declarator(declarator: Optional[Node]) -> Optional[Node]:
    """The function_declarator naming a function under ``declarator``, if any.

    Function pointer variables (``void (*fp)(int)``) are not functions and
    give None.
    """
    current = declarator
    while current is not None:
        if current.type == 'function_declarator':
            inner = current.child_by_field_name('declarator')
            if inner is not None and inner.type in FUNCTION_NAME_NODES:
                return current
            return None
        if current.type in DECLARATOR_WRAPPERS:
            nxt = current.child_by_field_name('declarator')
            if nxt is None:
                nxt = next((c for c in current.named_children if c.type not in ATTRIBUTE_NODES
                            and c.type != 'type_qualifier'), None)
            current = nxt
            continue
        return None
    return None
