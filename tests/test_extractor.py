"""Declaration extraction from C and C++ syntax trees."""
import pytest

from xunused.analyzer.extractor import (
    QUAL_CONST,
    DeclarationExtractor,
    normalize_operator,
    normalize_type,
)
from xunused.analyzer.parser import LanguageParser
from xunused.engine.declarations import Linkage


FILE = "/project/main.cpp"


def extract(source: str, language: str = "cpp"):
    tree = LanguageParser(language).parse_source(source.encode("utf-8"))
    extractor = DeclarationExtractor(language)
    return extractor.extract(tree.root_node, FILE), extractor


def by_name(declarations, qualified_name):
    matches = [f for f in declarations.functions if f.qualified_name == qualified_name]
    assert matches, f"{qualified_name} not extracted: {[f.qualified_name for f in declarations.functions]}"
    return matches[0]


def test_normalize_helpers():
    assert normalize_type("const  struct Foo &") == "const Foo&"
    assert normalize_type("std::vector< int >") == "std::vector<int>"
    assert normalize_operator("operator ==") == "operator=="
    assert normalize_operator("operator  new [ ]") == "operator new[]"


def test_free_functions_and_signatures():
    out, _ = extract("""
int add(int a, int b) { return a + b; }
void log(const char* fmt, ...);
void defaults(int a, int b = 2);
static void helper(void) {}
""")
    add = by_name(out, "add")
    assert add.signature == ("int", "int")
    assert add.body and add.is_definition_node
    assert add.linkage == Linkage.EXTERNAL

    log = by_name(out, "log")
    assert log.signature == ("const char*", "...")
    assert not log.body
    assert log.max_args is None

    defaults = by_name(out, "defaults")
    assert (defaults.min_args, defaults.max_args) == (1, 2)

    helper = by_name(out, "helper")
    assert helper.signature == ()
    assert helper.linkage == Linkage.INTERNAL


def test_namespaces_and_linkage():
    out, _ = extract("""
namespace outer { namespace inner { void f() {} } }
namespace a::b { void g(); }
namespace { void hidden() {} }
extern "C" { void c_api(int) {} }
extern "C" void c_single(void);
""")
    assert by_name(out, "outer::inner::f").linkage == Linkage.EXTERNAL
    assert by_name(out, "a::b::g").scope[-1].name == "b"
    assert by_name(out, "(anonymous namespace)::hidden").linkage == Linkage.INTERNAL
    assert by_name(out, "c_api").linkage == Linkage.C
    assert by_name(out, "c_single").linkage == Linkage.C


def test_c_translation_unit_has_c_linkage():
    out, _ = extract("int twice(int x) { return 2 * x; }\n", language="c")
    assert by_name(out, "twice").linkage == Linkage.C


def test_class_members():
    out, extractor = extract("""
struct Base {
    Base();
    virtual ~Base();
    virtual void run() = 0;
    int size() const { return 0; }
    static Base make();
    operator bool() const;
};
Base::Base() {}
Base::~Base() {}
Base::operator bool() const { return true; }
""")
    assert ("Base",) in extractor.classes

    ctors = [f for f in out.functions if f.qualified_name == "Base::Base"]
    assert [c.kind for c in ctors] == ["constructor", "constructor"]
    assert [c.body for c in ctors] == [False, True]

    dtors = [f for f in out.functions if f.kind == "destructor"]
    assert len(dtors) == 2
    assert all(d.name == "~Base" for d in dtors)

    run = by_name(out, "Base::run")
    assert run.declared_virtual and run.declared_pure

    size = by_name(out, "Base::size")
    assert size.kind == "method"
    assert size.method_qualifiers == QUAL_CONST

    assert by_name(out, "Base::make").is_static_member

    conversions = [f for f in out.functions if f.kind == "conversion"]
    assert len(conversions) == 2
    assert conversions[0].name == "operator bool"
    assert all(c.owner == ("Base",) for c in conversions)


def test_override_specifiers_and_bases():
    out, extractor = extract("""
namespace ns {
struct A { virtual void h(); };
struct B : public A { void h() override; void k() final; };
}
""")
    assert extractor.classes[("ns", "B")].bases == ["A"]
    assert by_name(out, "ns::B::h").declared_override
    assert by_name(out, "ns::B::k").declared_final


def test_templates():
    out, _ = extract("""
template <typename T, typename U> T convert(U u) { return T(u); }
template <> int convert<int, double>(double d) { return 0; }
template <typename T> struct Box { T get() const; };
template <typename T> T Box<T>::get() const { return T(); }
""")
    convert = [f for f in out.functions if f.name == "convert"]
    assert convert[0].template_arity == 2
    assert convert[1].template_args == "int,double"

    getters = [f for f in out.functions if f.name == "get"]
    assert len(getters) == 2
    assert all(g.template_arity == 0 for g in getters)
    assert all(g.scope[-1].template_arity == 1 for g in getters)


def test_deleted_defaulted_and_operators():
    out, _ = extract("""
struct S {
    S(const S&) = delete;
    S& operator=(const S&) = default;
    bool operator==(const S&) const;
};
""")
    copy = by_name(out, "S::S")
    assert copy.is_deleted and not copy.body
    assert by_name(out, "S::operator=").is_defaulted
    assert by_name(out, "S::operator==").signature == ("const S&",)


def test_attributes_pragma_weak_and_macros():
    out, _ = extract("""
__attribute__((weak)) void hook(void) {}
__attribute__((constructor)) static void init(void) {}
#pragma weak alias_hook
#define CALLBACK on_event
void plain(void) {}
""", language="c")
    assert "weak" in by_name(out, "hook").attributes
    assert "constructor" in by_name(out, "init").attributes
    assert by_name(out, "plain").attributes == set()
    assert out.weak_names == {"alias_hook"}
    assert "on_event" in out.macro_identifiers


def test_preprocessor_branches_are_all_walked():
    out, _ = extract("""
#ifdef FAST
void impl() {}
#else
void impl_slow() {}
#endif
""")
    names = {f.name for f in out.functions}
    assert {"impl", "impl_slow"} <= names


def test_function_pointers_and_globals_are_not_functions():
    out, _ = extract("""
struct Widget { void draw(); };
void (*callback)(int);
Widget global_widget;
int (*table[4])(void);
""")
    names = {f.name for f in out.functions}
    assert "callback" not in names
    assert "table" not in names
    assert out.global_vars.get("global_widget") == "Widget"


def test_friend_definition_belongs_to_namespace():
    out, _ = extract("""
namespace ns {
struct V { friend bool operator<(V, V) { return false; } };
}
""")
    less = by_name(out, "ns::operator<")
    assert less.owner is None


@pytest.mark.parametrize("source,expected", [
    ("void *alloc(int n) { return 0; }", "alloc"),
    ("const char &at(int i);", "at"),
])
def test_pointer_and_reference_returns(source, expected):
    out, _ = extract(source)
    assert [f.name for f in out.functions] == [expected]
