"""Per-TU Fact Collector: classifies traversal events into Defs and Uses.

A collector belongs to exactly one translation unit and one worker, so it
touches no shared state. Defs and Uses hold canonical redeclarations and keep
insertion order, which keeps the finalizer's output order stable.
"""
from typing import Dict, Iterator, Optional

from .declarations import FunctionLike, SourceManager, UseEvent, UseKind
from .errors import InvariantViolation
from ..utils.logger import debug_log


class OrderedDeclSet:
    """Insertion-ordered set of declarations keyed by object identity."""

    def __init__(self):
        self._items: Dict[int, FunctionLike] = {}

    def add(self, decl: FunctionLike) -> None:
        self._items.setdefault(id(decl), decl)

    def discard(self, decl: FunctionLike) -> None:
        self._items.pop(id(decl), None)

    def __contains__(self, decl) -> bool:
        return id(decl) in self._items

    def __iter__(self) -> Iterator[FunctionLike]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def difference(self, other: "OrderedDeclSet") -> "OrderedDeclSet":
        result = OrderedDeclSet()
        for key, decl in self._items.items():
            if key not in other._items:
                result._items[key] = decl
        return result


class FactCollector:
    """Accumulates the definitions and uses observed in one TU."""

    def __init__(self):
        self.defs = OrderedDeclSet()
        self.uses = OrderedDeclSet()

    def on_definition(self, decl: FunctionLike, sm: SourceManager) -> None:
        """Handle one function-like definition match.

        Args:
            decl: The matched declaration
            sm: Source manager of the TU
        """
        if not decl.has_body():
            return  # '= delete', '= default' and plain declarations
        if decl.is_implicit:
            return

        member_pattern = decl.instantiated_from_member_function()
        if member_pattern is not None:
            decl = member_pattern

        if decl.is_template_instantiation():
            decl = self._require_pattern(decl)

        begin = decl.location
        if sm.is_in_system_header(begin):
            return
        if not sm.is_written_in_main_file(begin):
            return

        if decl.is_method:
            if decl.is_virtual and not decl.is_pure and any(True for _ in decl.overridden_methods()):
                return  # overriding method
            if decl.is_destructor:
                return  # destructor uses are never seen

        if decl.is_main():
            return

        debug_log(f"Defs: {decl.qualified_name}")
        self.defs.add(decl.canonical_decl())

        # Load-time constructors have no call site; they use themselves.
        if decl.has_constructor_attr:
            self.on_use(UseEvent(UseKind.LOAD_TIME_CONSTRUCTOR, decl), sm)

    def on_use(self, event: UseEvent, sm: SourceManager) -> None:
        """Handle a name reference, member access, constructor call or
        load-time constructor self-use.

        Args:
            event: The use event
            sm: Source manager of the TU
        """
        self._handle_use(event.decl, sm)

    def _handle_use(self, decl, sm: SourceManager) -> None:
        if not isinstance(decl, FunctionLike):
            return
        if sm.is_in_system_header(decl.location):
            return
        if decl.is_template_instantiation():
            decl = self._require_pattern(decl)

        debug_log(f"Uses: {decl.qualified_name}")
        self.uses.add(decl.canonical_decl())

    @staticmethod
    def _require_pattern(decl: FunctionLike) -> FunctionLike:
        pattern: Optional[FunctionLike] = decl.template_instantiation_pattern()
        if pattern is None:
            raise InvariantViolation(
                f"template instantiation '{decl.qualified_name}' has no pattern"
            )
        return pattern
