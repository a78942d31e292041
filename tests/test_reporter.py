"""Report format and the NumUnusedFunctions statistic."""
from io import StringIO

from xunused.engine.reporter import NUM_UNUSED_FUNCTIONS, Finding, Reporter
from xunused.engine.store import DeclarationSite, DefinitionSnapshot, GlobalAggregationStore
from xunused.utils.safe_console import SafeConsole
from xunused.utils.statistics import all_statistics, build_statistics_table


def make_store():
    store = GlobalAggregationStore()
    with store.lock:
        store.upsert_definition("c:@F@a#", DefinitionSnapshot("a", "/p/a.cpp", 3),
                                [DeclarationSite("/p/a.h", 1)])
        store.upsert_definition("c:@F@used#", DefinitionSnapshot("used", "/p/a.cpp", 7), [])
        store.add_external_use("c:@F@used#")
        store.add_external_use("c:@F@printf#")
        store.upsert_definition("c:@S@W@F@operator[]#int", DefinitionSnapshot("W::operator[]", "/p/w[1].cpp", 2), [])
    return store


def test_finding_format():
    finding = Finding("c:@F@a#", "ns::a", "/p/a.cpp", 3,
                      [DeclarationSite("/p/a.h", 1), DeclarationSite("/p/b.h", 5)])
    assert finding.format() == [
        "/p/a.cpp:3: warning: Function 'ns::a' is unused",
        "/p/a.h:1: note: declared here",
        "/p/b.h:5: note: declared here",
    ]


def test_collect_skips_used_and_undefined_symbols():
    findings = Reporter(make_store()).collect()
    assert [f.qualified_name for f in findings] == ["a", "W::operator[]"]


def test_collect_counts_statistic():
    NUM_UNUSED_FUNCTIONS.reset()
    Reporter(make_store()).collect()
    assert NUM_UNUSED_FUNCTIONS.value == 2
    assert NUM_UNUSED_FUNCTIONS in all_statistics()


def test_emit_prints_names_verbatim():
    """Brackets in names and paths must not be eaten as rich markup."""
    buffer = StringIO()
    console = SafeConsole(file=buffer, width=200, color_system=None)
    reporter = Reporter(make_store())
    reporter.emit(reporter.collect(), console)

    assert buffer.getvalue().splitlines() == [
        "/p/a.cpp:3: warning: Function 'a' is unused",
        "/p/a.h:1: note: declared here",
        "/p/w[1].cpp:2: warning: Function 'W::operator[]' is unused",
    ]


def test_statistics_table_lists_counter():
    NUM_UNUSED_FUNCTIONS.reset()
    buffer = StringIO()
    console = SafeConsole(file=buffer, width=200, color_system=None)
    console.print(build_statistics_table())
    assert "The number of unused functions" in buffer.getvalue()
