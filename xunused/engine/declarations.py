"""Interfaces the engine consumes from the parsing/traversal collaborator.

The engine never looks at syntax. It sees function-like declarations through
the ``FunctionLike`` protocol, source positions through ``SourceManager`` and
references through ``UseEvent``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Protocol, Tuple, runtime_checkable


@dataclass(frozen=True)
class Location:
    """A spelling location: absolute file path plus 1-based line."""
    file: str
    line: int


@dataclass(frozen=True)
class ScopeSegment:
    """One enclosing scope of a declaration, outermost first.

    kind is 'namespace', 'class' or 'anonymous_namespace'. template_arity is
    the number of template parameters of a class template scope (0 otherwise).
    """
    kind: str
    name: str
    template_arity: int = 0


class Linkage(str, Enum):
    """Linkage of a function as far as identity generation is concerned."""
    EXTERNAL = "external"
    INTERNAL = "internal"
    C = "c"


class UseKind(Enum):
    """The closed set of ways a function can be referenced."""
    NAME_REFERENCE = "declRef"
    MEMBER_ACCESS = "memberRef"
    CONSTRUCTOR_CALL = "cxxConstructExpr"
    LOAD_TIME_CONSTRUCTOR = "constructorAttr"


@dataclass(frozen=True)
class UseEvent:
    """A reference to ``decl`` of the given kind.

    decl may be any declaration; the collector ignores non function-like ones.
    """
    kind: UseKind
    decl: Any


@runtime_checkable
class FunctionLike(Protocol):
    """A function, method or constructor declaration as seen in one TU."""

    name: str
    qualified_name: str
    location: Location
    is_implicit: bool
    is_method: bool
    is_virtual: bool
    is_pure: bool
    is_destructor: bool
    is_weak: bool
    has_constructor_attr: bool

    # Identity inputs
    linkage: Linkage
    scope: Tuple[ScopeSegment, ...]
    signature: Tuple[str, ...]
    method_qualifiers: int
    template_arity: int
    template_args: Optional[str]
    declaring_file: str

    def has_body(self) -> bool: ...

    def does_this_declaration_have_a_body(self) -> bool: ...

    def instantiated_from_member_function(self) -> Optional["FunctionLike"]: ...

    def is_template_instantiation(self) -> bool: ...

    def template_instantiation_pattern(self) -> Optional["FunctionLike"]: ...

    def canonical_decl(self) -> "FunctionLike": ...

    def definition(self) -> Optional["FunctionLike"]: ...

    def redecls(self) -> Iterable["FunctionLike"]: ...

    def overridden_methods(self) -> Iterable["FunctionLike"]: ...

    def is_main(self) -> bool: ...


class SourceManager(Protocol):
    """Resolves locations for one translation unit."""

    def is_in_system_header(self, location: Location) -> bool: ...

    def is_written_in_main_file(self, location: Location) -> bool: ...

    def filename(self, location: Location) -> str: ...

    def spelling_line(self, location: Location) -> int: ...
