"""Per-TU Finalizer: folds one TU's facts into the global store.

Runs once per TU after traversal, holding the store lock for its whole
body:

1. every definition the TU never uses itself becomes (or refreshes) a global
   record, with zero uses when new;
2. weak definitions are dropped from Defs, so a use of a weak symbol is
   still counted globally;
3. every use of a function this TU does not define increments that
   symbol's global use counter.
"""
from typing import List

from .collector import FactCollector
from .declarations import FunctionLike, SourceManager
from .errors import InvariantViolation
from .identity import generate_usr
from .store import DeclarationSite, DefinitionSnapshot, GlobalAggregationStore
from ..utils.logger import debug_log, is_debug_enabled


def get_declarations(function: FunctionLike, sm: SourceManager) -> List[DeclarationSite]:
    """Return every redeclaration of ``function`` that is not its definition."""
    sites = []
    for redecl in function.redecls():
        if redecl.does_this_declaration_have_a_body():
            continue
        sites.append(DeclarationSite(sm.filename(redecl.location), sm.spelling_line(redecl.location)))
    return sites


def finalize_translation_unit(collector: FactCollector, sm: SourceManager,
                              store: GlobalAggregationStore) -> None:
    """Merge one TU's Defs/Uses into ``store``.

    Args:
        collector: The TU's collected facts (Defs is modified in place)
        sm: Source manager of the TU
        store: The shared global store

    Raises:
        InvariantViolation: An unused candidate has no definition
    """
    with store.lock:
        for function in collector.defs.difference(collector.uses):
            definition = function.definition()
            if definition is None:
                raise InvariantViolation(
                    f"'{function.qualified_name}' was collected as a definition but has none"
                )
            usr = generate_usr(definition)
            if usr is None:
                continue
            debug_log(f"UnusedDefs: {definition.qualified_name}")
            snapshot = DefinitionSnapshot(
                qualified_name=definition.qualified_name,
                filename=sm.filename(definition.location),
                line=sm.spelling_line(definition.location),
            )
            store.upsert_definition(usr, snapshot, get_declarations(definition, sm))

        # A weak definition is not "the" definition: uses of it must still
        # reach whichever TU provides the strong one.
        for function in collector.defs:
            if function.is_weak:
                collector.defs.discard(function)

        external_uses = collector.uses.difference(collector.defs)

        if is_debug_enabled():
            for function in collector.uses:
                debug_log(f"Uses: {function.qualified_name}")
            for function in collector.defs:
                debug_log(f"Defs: {function.qualified_name}")

        for function in external_uses:
            usr = generate_usr(function)
            if usr is None:
                continue
            debug_log(f"ExternalUses: {function.qualified_name} USR: {usr}")
            store.add_external_use(usr)
