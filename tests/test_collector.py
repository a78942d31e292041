"""Fact collection, per-TU finalization and the global store."""
import threading

import pytest

from xunused.engine.collector import FactCollector, OrderedDeclSet
from xunused.engine.declarations import Location, UseEvent, UseKind
from xunused.engine.errors import InvariantViolation
from xunused.engine.finalizer import finalize_translation_unit, get_declarations
from xunused.engine.identity import generate_usr
from xunused.engine.store import DeclarationSite, DefinitionSnapshot, GlobalAggregationStore

from conftest import MAIN_FILE, StubDecl, StubSourceManager, chain


def use(decl, kind=UseKind.NAME_REFERENCE):
    return UseEvent(kind, decl)


class TestOrderedDeclSet:
    def test_keeps_insertion_order_and_identity(self):
        a, b, c = StubDecl("a"), StubDecl("b"), StubDecl("c")
        items = OrderedDeclSet()
        for decl in (b, a, c, b):
            items.add(decl)

        assert list(items) == [b, a, c]
        assert len(items) == 3

    def test_difference(self):
        a, b = StubDecl("a"), StubDecl("b")
        left, right = OrderedDeclSet(), OrderedDeclSet()
        left.add(a)
        left.add(b)
        right.add(a)

        assert list(left.difference(right)) == [b]


class TestFactCollector:
    def test_plain_definition_is_recorded(self, sm):
        decl = StubDecl("f")
        collector = FactCollector()
        collector.on_definition(decl, sm)
        assert list(collector.defs) == [decl]

    @pytest.mark.parametrize("kwargs", [
        {"body": False},
        {"is_implicit": True},
        {"location": Location("/project/other.h", 3)},
        {"is_method": True, "is_destructor": True},
        {"name": "main"},
    ])
    def test_definitions_that_are_skipped(self, sm, kwargs):
        collector = FactCollector()
        collector.on_definition(StubDecl(**{"name": "f", **kwargs}), sm)
        assert len(collector.defs) == 0, f"{kwargs} should not be a candidate"

    def test_system_header_definition_is_skipped(self):
        sm = StubSourceManager(system_files={MAIN_FILE})
        collector = FactCollector()
        collector.on_definition(StubDecl("f"), sm)
        assert len(collector.defs) == 0

    def test_overriding_method_is_skipped_but_base_is_kept(self, sm):
        base = StubDecl("h", is_method=True, is_virtual=True)
        derived = StubDecl("h", is_method=True, is_virtual=True, overrides=[base])
        collector = FactCollector()
        collector.on_definition(base, sm)
        collector.on_definition(derived, sm)
        assert list(collector.defs) == [base]

    def test_pure_override_is_still_a_candidate(self, sm):
        base = StubDecl("h", is_method=True, is_virtual=True)
        repure = StubDecl("h", is_method=True, is_virtual=True, is_pure=True, overrides=[base])
        collector = FactCollector()
        collector.on_definition(repure, sm)
        assert list(collector.defs) == [repure]

    def test_definition_is_canonicalized(self, sm):
        declaration, definition = chain(StubDecl("g", body=False), StubDecl("g", body=True))
        collector = FactCollector()
        collector.on_definition(definition, sm)
        assert list(collector.defs) == [declaration]

    def test_instantiation_maps_to_pattern(self, sm):
        pattern = StubDecl("t", template_arity=1)
        instance = StubDecl("t", instantiation=True, pattern=pattern)
        collector = FactCollector()
        collector.on_definition(instance, sm)
        collector.on_use(use(instance), sm)
        assert list(collector.defs) == [pattern]
        assert list(collector.uses) == [pattern]

    def test_member_of_class_template_maps_to_member_pattern(self, sm):
        member = StubDecl("get", is_method=True)
        instance = StubDecl("get", is_method=True, member_pattern=member)
        collector = FactCollector()
        collector.on_definition(instance, sm)
        assert list(collector.defs) == [member]

    def test_instantiation_without_pattern_is_fatal(self, sm):
        collector = FactCollector()
        with pytest.raises(InvariantViolation):
            collector.on_definition(StubDecl("t", instantiation=True), sm)
        with pytest.raises(InvariantViolation):
            collector.on_use(use(StubDecl("t", instantiation=True)), sm)

    def test_constructor_attribute_uses_itself(self, sm):
        init = StubDecl("init", has_constructor_attr=True)
        collector = FactCollector()
        collector.on_definition(init, sm)
        assert list(collector.defs) == [init]
        assert list(collector.uses) == [init]

    def test_uses_ignore_non_functions_and_system_headers(self):
        sm = StubSourceManager(system_files={"/usr/include/stdio.h"})
        printf = StubDecl("printf", location=Location("/usr/include/stdio.h", 10))
        collector = FactCollector()
        collector.on_use(use(object()), sm)
        collector.on_use(use(printf), sm)
        assert len(collector.uses) == 0

    def test_all_use_kinds_count(self, sm):
        decls = [StubDecl(kind.name) for kind in UseKind]
        collector = FactCollector()
        for decl, kind in zip(decls, UseKind):
            collector.on_use(use(decl, kind), sm)
        assert list(collector.uses) == decls


def finalize(store, collector, sm=None):
    finalize_translation_unit(collector, sm or StubSourceManager(), store)


class TestFinalizer:
    def test_unused_definition_creates_record(self, sm):
        f = StubDecl("f", location=Location(MAIN_FILE, 4))
        collector = FactCollector()
        collector.on_definition(f, sm)

        store = GlobalAggregationStore()
        finalize(store, collector, sm)

        record = store.get(generate_usr(f))
        assert record.uses == 0
        assert record.definition == DefinitionSnapshot("f", MAIN_FILE, 4)

    def test_locally_used_definition_is_not_recorded(self, sm):
        f = StubDecl("f")
        collector = FactCollector()
        collector.on_definition(f, sm)
        collector.on_use(use(f), sm)

        store = GlobalAggregationStore()
        finalize(store, collector, sm)
        assert len(store) == 0, "local uses never reach the store"

    def test_external_use_increments_counter(self, sm):
        f = StubDecl("f")
        store = GlobalAggregationStore()

        defining = FactCollector()
        defining.on_definition(f, sm)
        finalize(store, defining, sm)

        for _ in range(2):
            using = FactCollector()
            using.on_use(use(StubDecl("f")), sm)
            finalize(store, using, sm)

        assert store.get(generate_usr(f)).uses == 2

    def test_use_before_definition_keeps_counter(self, sm):
        """A later TU re-defining the symbol refreshes evidence only."""
        store = GlobalAggregationStore()
        using = FactCollector()
        using.on_use(use(StubDecl("f")), sm)
        finalize(store, using, sm)

        defining = FactCollector()
        defining.on_definition(StubDecl("f", location=Location(MAIN_FILE, 9)), sm)
        finalize(store, defining, sm)

        record = store.get("c:@F@f#")
        assert record.uses == 1
        assert record.definition.line == 9

    def test_weak_definition_passes_use_through(self, sm):
        weak = StubDecl("hook", is_weak=True)
        collector = FactCollector()
        collector.on_definition(weak, sm)
        collector.on_use(use(weak), sm)

        store = GlobalAggregationStore()
        finalize(store, collector, sm)

        assert store.get(generate_usr(weak)).uses == 1
        assert weak not in collector.defs

    def test_weak_definition_without_use_is_recorded(self, sm):
        weak = StubDecl("hook", is_weak=True)
        collector = FactCollector()
        collector.on_definition(weak, sm)

        store = GlobalAggregationStore()
        finalize(store, collector, sm)
        assert store.get(generate_usr(weak)).uses == 0

    def test_definitions_without_identity_are_dropped(self, sm):
        collector = FactCollector()
        collector.on_definition(StubDecl(""), sm)
        collector.on_use(use(StubDecl("")), sm)

        store = GlobalAggregationStore()
        finalize(store, collector, sm)
        assert len(store) == 0

    def test_candidate_without_definition_is_fatal(self, sm):
        broken = StubDecl("f", body=False)
        collector = FactCollector()
        collector.defs.add(broken)

        with pytest.raises(InvariantViolation):
            finalize(GlobalAggregationStore(), collector, sm)

    def test_declaration_notes(self, sm):
        header = Location("/project/f.h", 2)
        decl, definition = chain(StubDecl("f", body=False, location=header), StubDecl("f"))
        assert get_declarations(definition, sm) == [DeclarationSite("/project/f.h", 2)]


class TestGlobalStore:
    def test_mutation_requires_lock(self):
        store = GlobalAggregationStore()
        with pytest.raises(InvariantViolation):
            store.add_external_use("c:@F@f#")
        with pytest.raises(InvariantViolation):
            store.upsert_definition("c:@F@f#", DefinitionSnapshot("f", MAIN_FILE, 1), [])

    def test_records_in_discovery_order(self):
        store = GlobalAggregationStore()
        with store.lock:
            store.add_external_use("c:@F@b#")
            store.upsert_definition("c:@F@a#", DefinitionSnapshot("a", MAIN_FILE, 1), [])
            store.upsert_definition("c:@F@b#", DefinitionSnapshot("b", MAIN_FILE, 2), [])

        assert [usr for usr, _ in store.records()] == ["c:@F@b#", "c:@F@a#"]
        assert "c:@F@a#" in store

    def test_concurrent_finalizers_count_every_use(self, sm):
        store = GlobalAggregationStore()

        def worker():
            for _ in range(50):
                collector = FactCollector()
                collector.on_use(use(StubDecl("shared")), sm)
                finalize(store, collector, sm)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get("c:@F@shared#").uses == 400
