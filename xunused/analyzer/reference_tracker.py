"""Reference tracker: turns one TU's syntax trees into definition and use events."""
from typing import Dict, List, Optional, Tuple

from tree_sitter import Node

from .extractor import (
    CLASS_SPECIFIERS, ClassInfo, FunctionEntity, find_function_declarator, node_text, normalize_operator,
    value_type_name,
)
from .translation_unit import TranslationUnit
from ..engine.collector import FactCollector
from ..engine.declarations import UseEvent, UseKind


# Nodes whose subtree never contains a function use
SKIPPED_NODES = {
    'preproc_include', 'preproc_def', 'preproc_function_def', 'preproc_call',
    'using_declaration', 'alias_declaration', 'type_definition', 'friend_declaration',
    'namespace_alias_definition', 'lambda_capture_specifier', 'comment',
    'template_parameter_list', 'base_class_clause', 'access_specifier',
    'static_assert_declaration', 'concept_definition', 'template_instantiation',
}

SCOPE_NODES = {
    'compound_statement', 'for_statement', 'for_range_loop', 'if_statement',
    'while_statement', 'switch_statement', 'catch_clause', 'try_statement',
}

MAKE_FUNCTIONS = {'make_unique', 'make_shared'}


def argument_count(arguments: Optional[Node]) -> Optional[int]:
    if arguments is None:
        return None
    return len([c for c in arguments.named_children if c.type != 'comment'])


class VariableScope:
    """Declared types of the variables visible at one point of a function body.

    Only what is needed to find the class of a member call's receiver is
    kept: variable name -> type spelling (smart pointers unwrapped).
    """

    def __init__(self, enclosing: Tuple[str, ...], owner: Optional[ClassInfo],
                 parent: Optional['VariableScope'] = None):
        self.enclosing = enclosing
        self.owner = owner
        self.parent = parent
        self.types: Dict[str, str] = {}

    def child(self) -> 'VariableScope':
        return VariableScope(self.enclosing, self.owner, self)

    def declare(self, name: str, type_name: str):
        self.types[name] = type_name

    def get_type(self, name: str) -> Optional[str]:
        scope = self
        while scope is not None:
            if name in scope.types:
                return scope.types[name]
            scope = scope.parent
        return None


class ReferenceTracker:
    """Emits the collector callbacks for one translation unit."""

    def __init__(self, tu: TranslationUnit, collector: FactCollector):
        self.tu = tu
        self.collector = collector
        self.sm = tu.source_manager

    def run(self):
        """Report every definition, then every use found in the TU's files."""
        for decl in self.tu.definitions():
            self.collector.on_definition(decl, self.sm)

        for path in self.tu.include_graph.order:
            source_file = self.tu.include_graph.files.get(path)
            if source_file is not None:
                self._traverse(source_file.tree.root_node, path)

        # Identifiers in macro bodies reach the code through expansion
        for name in sorted(self.tu.macro_identifiers):
            self._emit(self.tu.lookup_any(name), UseKind.NAME_REFERENCE)

    def _emit(self, entities: List[FunctionEntity], kind: UseKind):
        for entity in entities:
            self.collector.on_use(UseEvent(kind, entity.canonical), self.sm)

    # ------------------------------------------------------------------
    # Traversal

    def _traverse(self, root: Node, path: str):
        """Iteratively walk a file; handlers return the children still to visit."""
        stack: List[Tuple[Node, VariableScope]] = [(root, VariableScope((), None))]
        while stack:
            node, scope = stack.pop()
            children = self._visit(node, scope, path)
            stack.extend(reversed(children))

    def _visit(self, node: Node, scope: VariableScope, path: str) -> List[Tuple[Node, VariableScope]]:
        node_type = node.type

        if node_type in SKIPPED_NODES:
            return []
        if node_type == 'namespace_definition':
            return self._visit_namespace(node, scope)
        if node_type in CLASS_SPECIFIERS:
            return self._visit_class(node, scope)
        if node_type == 'function_definition':
            return self._visit_function(node, scope, path)
        if node_type in ('declaration', 'field_declaration'):
            return self._visit_declaration(node, scope)
        if node_type == 'template_declaration':
            return [(c, scope) for c in node.named_children if c.type != 'template_parameter_list']
        if node_type in ('preproc_if', 'preproc_elif'):
            return [(c, scope) for c in node.named_children if c != node.child_by_field_name('condition')]
        if node_type in ('preproc_ifdef', 'preproc_elifdef'):
            return [(c, scope) for c in node.named_children if c != node.child_by_field_name('name')]
        if node_type == 'enumerator':
            value = node.child_by_field_name('value')
            return [(value, scope)] if value is not None else []
        if node_type in SCOPE_NODES:
            inner = scope.child()
            if node_type == 'for_range_loop':
                self._declare_range_variable(node, inner)
            return [(c, inner) for c in node.named_children]
        if node_type == 'lambda_expression':
            return self._visit_lambda(node, scope)
        if node_type == 'parameter_list':
            return self._parameter_defaults(node, scope)

        if node_type == 'call_expression':
            return self._visit_call(node, scope)
        if node_type == 'field_expression':
            # Data member access; method uses are only recorded for calls
            argument = node.child_by_field_name('argument')
            return [(argument, scope)] if argument is not None else []
        if node_type == 'identifier':
            self._visit_identifier(node, scope)
            return []
        if node_type == 'qualified_identifier':
            return self._visit_qualified(node, scope)
        if node_type == 'template_function':
            self._visit_template_function(node, scope, None)
            return [(c, scope) for c in node.named_children if c.type == 'template_argument_list']
        if node_type in ('new_expression', 'compound_literal_expression'):
            return self._visit_construction(node, scope)
        if node_type == 'field_initializer':
            return self._visit_field_initializer(node, scope)
        if node_type in ('binary_expression', 'unary_expression', 'update_expression',
                         'assignment_expression', 'pointer_expression'):
            self._visit_operator(node, scope)
        elif node_type == 'subscript_expression':
            self._emit_operator('operator[]', node.child_by_field_name('argument'), scope)

        return [(c, scope) for c in node.named_children]

    # ------------------------------------------------------------------
    # Structure

    def _visit_namespace(self, node: Node, scope: VariableScope):
        enclosing = scope.enclosing
        name_node = node.child_by_field_name('name')
        if name_node is not None:
            enclosing = enclosing + tuple(p.strip() for p in node_text(name_node).split('::') if p.strip())
        body = node.child_by_field_name('body')
        return [(body, VariableScope(enclosing, None))] if body is not None else []

    def _visit_class(self, node: Node, scope: VariableScope):
        body = node.child_by_field_name('body')
        if body is None:
            return []
        name_node = node.child_by_field_name('name')
        info = None
        if name_node is not None:
            info = self.tu.find_class(node_text(name_node), scope.enclosing)
        if info is None:
            return [(body, VariableScope(scope.enclosing, None))]
        return [(body, VariableScope(info.path, info))]

    def _visit_function(self, node: Node, scope: VariableScope, path: str):
        decl = self.tu.decl_by_node.get((path, node.start_byte))
        if decl is not None:
            enclosing = tuple(s.name for s in decl.scope if s.kind == 'namespace')
            inner = VariableScope(enclosing, self.tu.class_of(decl))
        else:
            inner = scope.child()

        children = []
        declarator = node.child_by_field_name('declarator')
        params = self._find_parameters(declarator)
        if params is not None:
            self._declare_parameters(params, inner)
            children.extend(self._parameter_defaults(params, inner))
        for child in node.named_children:
            if child.type in ('field_initializer_list', 'compound_statement', 'try_statement'):
                children.append((child, inner))
        return children

    def _visit_lambda(self, node: Node, scope: VariableScope):
        inner = scope.child()
        children = []
        declarator = node.child_by_field_name('declarator')
        params = self._find_parameters(declarator)
        if params is not None:
            self._declare_parameters(params, inner)
        body = node.child_by_field_name('body')
        if body is not None:
            children.append((body, inner))
        return children

    @staticmethod
    def _find_parameters(declarator: Optional[Node]) -> Optional[Node]:
        current = declarator
        while current is not None:
            params = current.child_by_field_name('parameters')
            if params is not None:
                return params
            nxt = current.child_by_field_name('declarator')
            if nxt is None and current.type == 'qualified_identifier':
                nxt = current.child_by_field_name('name')
            if nxt is None and current.type == 'reference_declarator':
                nxt = next((c for c in current.named_children), None)
            current = nxt
        return None

    def _declare_parameters(self, params: Node, scope: VariableScope):
        for param in params.named_children:
            declarator = param.child_by_field_name('declarator')
            name = self._declared_name(declarator)
            if name:
                scope.declare(name, value_type_name(param.child_by_field_name('type')))

    @staticmethod
    def _parameter_defaults(params: Node, scope: VariableScope):
        return [(p.child_by_field_name('default_value'), scope) for p in params.named_children
                if p.type == 'optional_parameter_declaration' and p.child_by_field_name('default_value') is not None]

    def _declare_range_variable(self, node: Node, scope: VariableScope):
        name = self._declared_name(node.child_by_field_name('declarator'))
        if name:
            scope.declare(name, value_type_name(node.child_by_field_name('type')))

    @staticmethod
    def _declared_name(declarator: Optional[Node]) -> Optional[str]:
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

    # ------------------------------------------------------------------
    # Declarations

    def _visit_declaration(self, node: Node, scope: VariableScope):
        """Variables, their initializers and the constructors they run."""
        children: List[Tuple[Node, VariableScope]] = []
        type_node = node.child_by_field_name('type')
        if type_node is not None and type_node.type in CLASS_SPECIFIERS:
            children.append((type_node, scope))
        elif type_node is not None and type_node.type == 'decltype':
            children.append((type_node, scope))

        in_body = scope.parent is not None
        is_extern = any(node_text(c) == 'extern' for c in node.children if c.type == 'storage_class_specifier')
        type_name = value_type_name(type_node)
        declared_class = self.tu.find_class(type_name, scope.enclosing) if type_name else None

        for declarator in node.children_by_field_name('declarator'):
            function_declarator = find_function_declarator(declarator)
            if function_declarator is not None and not in_body:
                params = function_declarator.child_by_field_name('parameters')
                if params is not None:
                    children.extend(self._parameter_defaults(params, scope))
                continue

            name = self._declared_name(declarator)
            value = declarator.child_by_field_name('value') if declarator.type == 'init_declarator' else None
            variable_class = declared_class
            if type_name == 'auto' and value is not None:
                variable_class = self._class_of_expression(value, scope)
            if name and node.type != 'field_declaration':
                scope.declare(name, variable_class.qualified_name if variable_class is not None else type_name)

            if declarator.type == 'function_declarator':
                # 'Widget w(a, b);' inside a body
                if variable_class is not None:
                    arity = argument_count(declarator.child_by_field_name('parameters'))
                    self._emit(self.tu.construction_uses(variable_class, arity), UseKind.CONSTRUCTOR_CALL)
                continue

            if value is not None:
                if value.type in ('argument_list', 'initializer_list') and variable_class is not None \
                        and type_name != 'auto':
                    self._emit(self.tu.construction_uses(variable_class, argument_count(value)),
                               UseKind.CONSTRUCTOR_CALL)
                children.append((value, scope))
            elif declarator.type in ('identifier', 'array_declarator') and variable_class is not None \
                    and not is_extern and node.type != 'field_declaration':
                self._emit(self.tu.construction_uses(variable_class, 0), UseKind.CONSTRUCTOR_CALL)

        default_value = node.child_by_field_name('default_value')
        if default_value is not None:
            children.append((default_value, scope))
        return children

    def _visit_field_initializer(self, node: Node, scope: VariableScope):
        """``: Base(args)`` and ``: member_(args)`` in a constructor definition."""
        target = node.named_children[0] if node.named_children else None
        arguments = next((c for c in node.named_children if c.type in ('argument_list', 'initializer_list')), None)
        arity = argument_count(arguments)
        if target is not None and scope.owner is not None:
            if target.type == 'field_identifier':
                # Base class initializers parse as field identifiers too
                member_type = self._member_type(scope.owner, node_text(target)) or node_text(target)
                member_class = self.tu.find_class(member_type, scope.owner.path)
            else:
                member_class = self.tu.find_class(node_text(target), scope.owner.path)
            if member_class is not None:
                self._emit(self.tu.constructors(member_class, arity), UseKind.CONSTRUCTOR_CALL)
        return [(arguments, scope)] if arguments is not None else []

    # ------------------------------------------------------------------
    # Expressions

    def _visit_call(self, node: Node, scope: VariableScope):
        function = node.child_by_field_name('function')
        arguments = node.child_by_field_name('arguments')
        arity = argument_count(arguments)
        children = [(arguments, scope)] if arguments is not None else []
        if function is None:
            return children

        if function.type == 'identifier':
            name = node_text(function)
            variable_type = self._variable_type(name, scope)
            if variable_type is not None:
                # Calling a variable: a functor's operator()
                receiver = self.tu.find_class(variable_type, scope.enclosing)
                if receiver is not None:
                    self._emit(self.tu.member_candidates(receiver, 'operator()'), UseKind.MEMBER_ACCESS)
                return children
            entities = self.tu.lookup_unqualified(name, scope.enclosing, scope.owner, arity)
            if not entities:
                info = self.tu.find_class(name, scope.enclosing)
                if info is not None:
                    self._emit(self.tu.construction_uses(info, arity), UseKind.CONSTRUCTOR_CALL)
                    return children
            self._emit(entities, UseKind.NAME_REFERENCE)
            return children

        if function.type == 'qualified_identifier':
            entities = self.tu.lookup_qualified(node_text(function), scope.enclosing, arity)
            if not entities:
                info = self.tu.find_class(node_text(function), scope.enclosing)
                if info is not None:
                    self._emit(self.tu.construction_uses(info, arity), UseKind.CONSTRUCTOR_CALL)
            self._emit(entities, UseKind.NAME_REFERENCE)
            return children

        if function.type == 'template_function':
            self._visit_template_function(function, scope, arity)
            return children + [(c, scope) for c in function.named_children if c.type == 'template_argument_list']

        if function.type == 'field_expression':
            receiver_node = function.child_by_field_name('argument')
            field = function.child_by_field_name('field')
            receiver = self._class_of_expression(receiver_node, scope) if receiver_node is not None else None
            name = self._member_name(field)
            if name:
                self._emit(self.tu.lookup_member(name, receiver, arity), UseKind.MEMBER_ACCESS)
            if receiver_node is not None:
                children.insert(0, (receiver_node, scope))
            return children

        return [(function, scope)] + children

    def _visit_template_function(self, node: Node, scope: VariableScope, arity: Optional[int]):
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return
        if name_node.type == 'qualified_identifier':
            entities = self.tu.lookup_qualified(node_text(name_node), scope.enclosing, arity)
        else:
            entities = self.tu.lookup_unqualified(node_text(name_node), scope.enclosing, scope.owner, arity)
        self._emit(entities, UseKind.NAME_REFERENCE)

        if node_text(name_node).split('::')[-1] in MAKE_FUNCTIONS:
            info = self._template_argument_class(node, scope)
            if info is not None:
                self._emit(self.tu.construction_uses(info, arity), UseKind.CONSTRUCTOR_CALL)

    def _visit_identifier(self, node: Node, scope: VariableScope):
        name = node_text(node)
        if self._variable_type(name, scope) is not None:
            return
        self._emit(self.tu.lookup_unqualified(name, scope.enclosing, scope.owner), UseKind.NAME_REFERENCE)

    def _visit_qualified(self, node: Node, scope: VariableScope):
        innermost = node
        while innermost is not None and innermost.type == 'qualified_identifier':
            innermost = innermost.child_by_field_name('name')
        if innermost is None:
            return []
        if innermost.type in ('identifier', 'operator_name', 'destructor_name', 'template_function'):
            self._emit(self.tu.lookup_qualified(node_text(node), scope.enclosing), UseKind.NAME_REFERENCE)
        if innermost.type == 'template_function':
            return [(c, scope) for c in innermost.named_children if c.type == 'template_argument_list']
        return []

    def _visit_construction(self, node: Node, scope: VariableScope):
        """``new T(args)`` and ``T{args}``."""
        type_node = node.child_by_field_name('type')
        arguments = node.child_by_field_name('arguments') or node.child_by_field_name('value')
        info = self.tu.find_class(value_type_name(type_node), scope.enclosing) if type_node is not None else None
        if info is not None:
            self._emit(self.tu.construction_uses(info, argument_count(arguments) or 0), UseKind.CONSTRUCTOR_CALL)
        children = [(c, scope) for c in node.named_children if c.type == 'argument_list' and c != arguments]
        if arguments is not None:
            children.append((arguments, scope))
        return children

    def _visit_operator(self, node: Node, scope: VariableScope):
        operator = node.child_by_field_name('operator')
        if operator is None:
            # update_expression and pointer_expression keep the operator as an anonymous child
            operator = next((c for c in node.children if not c.is_named), None)
        if operator is None:
            return
        symbol = node_text(operator)
        if node.type == 'pointer_expression' and symbol == '&':
            return  # address-of is never overloaded in practice
        operand = node.child_by_field_name('left') or node.child_by_field_name('argument')
        self._emit_operator(normalize_operator('operator' + symbol), operand, scope)

    def _emit_operator(self, name: str, operand: Optional[Node], scope: VariableScope):
        if not self.tu.lookup_any(name):
            return
        receiver = self._class_of_expression(operand, scope) if operand is not None else None
        if receiver is not None:
            entities = self.tu.member_candidates(receiver, name) + list(self.tu.free_functions.get(name, []))
        else:
            entities = self.tu.lookup_any(name)
        self._emit(entities, UseKind.NAME_REFERENCE)

    # ------------------------------------------------------------------
    # Receiver types

    def _variable_type(self, name: str, scope: VariableScope) -> Optional[str]:
        """Declared type of a local, parameter or member visible as ``name``."""
        declared = scope.get_type(name)
        if declared is not None:
            return declared
        if scope.owner is not None:
            return self._member_type(scope.owner, name)
        return None

    def _member_type(self, owner: ClassInfo, name: str) -> Optional[str]:
        for cls in [owner] + self.tu.hierarchy.ancestors(owner):
            if name in cls.member_types:
                return cls.member_types[name]
        return None

    def _class_of_expression(self, node: Optional[Node], scope: VariableScope) -> Optional[ClassInfo]:
        """Best-effort class of an expression (receiver of a member call)."""
        if node is None:
            return None
        node_type = node.type
        if node_type == 'this':
            return scope.owner
        if node_type == 'identifier':
            name = node_text(node)
            type_name = self._variable_type(name, scope)
            if type_name is None:
                type_name = self.tu.global_vars.get(name)
            return self.tu.find_class(type_name, scope.enclosing) if type_name else None
        if node_type in ('parenthesized_expression', 'pointer_expression'):
            inner = node.child_by_field_name('argument') or next(iter(node.named_children), None)
            return self._class_of_expression(inner, scope)
        if node_type == 'field_expression':
            holder = self._class_of_expression(node.child_by_field_name('argument'), scope)
            field = node.child_by_field_name('field')
            if holder is None or field is None:
                return None
            member_type = self._member_type(holder, node_text(field))
            return self.tu.find_class(member_type, holder.path) if member_type else None
        if node_type in ('new_expression', 'compound_literal_expression'):
            return self.tu.find_class(value_type_name(node.child_by_field_name('type')), scope.enclosing)
        if node_type == 'call_expression':
            function = node.child_by_field_name('function')
            if function is None:
                return None
            if function.type in ('identifier', 'qualified_identifier'):
                return self.tu.find_class(node_text(function), scope.enclosing)
            if function.type == 'template_function':
                name = node_text(function.child_by_field_name('name')).split('::')[-1]
                if name in MAKE_FUNCTIONS:
                    return self._template_argument_class(function, scope)
        return None

    def _template_argument_class(self, node: Node, scope: VariableScope) -> Optional[ClassInfo]:
        arguments = node.child_by_field_name('arguments')
        if arguments is None:
            return None
        first = next((c for c in arguments.named_children if c.type == 'type_descriptor'), None)
        if first is None:
            return None
        return self.tu.find_class(value_type_name(first.child_by_field_name('type')), scope.enclosing)

    @staticmethod
    def _member_name(field: Optional[Node]) -> Optional[str]:
        if field is None:
            return None
        if field.type in ('template_method', 'template_function'):
            return node_text(field.child_by_field_name('name'))
        if field.type == 'operator_name':
            return normalize_operator(node_text(field))
        if field.type == 'qualified_identifier':
            return node_text(field).split('::')[-1]
        return node_text(field)
