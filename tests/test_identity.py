"""Symbol identity: one stable string per logical function."""
from xunused.engine.declarations import Linkage, ScopeSegment
from xunused.engine.identity import generate_usr

from conftest import StubDecl, chain


def test_free_function_usr():
    decl = StubDecl("resize", signature=("int", "int"))
    assert generate_usr(decl) == "c:@F@resize#int#int"


def test_scopes_and_method_qualifiers():
    decl = StubDecl(
        "get",
        scope=(ScopeSegment("namespace", "ns"), ScopeSegment("class", "Box", 1)),
        method_qualifiers=1,
    )
    assert generate_usr(decl) == "c:@N@ns@ST>1@Box@F@get##1"


def test_function_template_and_specialization():
    template = StubDecl("convert", template_arity=2, signature=("const char*",))
    specialization = StubDecl("convert", template_args="int", signature=("int",))

    assert generate_usr(template) == "c:@FT@>2convert#const char*"
    assert generate_usr(specialization) == "c:@F@convert<int>#int"


def test_c_linkage_drops_parameters():
    decl = StubDecl("legacy_api", linkage=Linkage.C, signature=("int",))
    assert generate_usr(decl) == "c:@F@legacy_api"


def test_internal_linkage_is_file_qualified():
    a = StubDecl("helper", linkage=Linkage.INTERNAL, declaring_file="/p/a.cpp")
    b = StubDecl("helper", linkage=Linkage.INTERNAL, declaring_file="/p/b.cpp")

    assert generate_usr(a) != generate_usr(b), "static functions of different files must not merge"
    assert generate_usr(a).startswith("c:/p/a.cpp@F@helper")


def test_anonymous_namespace_segment():
    decl = StubDecl("f", scope=(ScopeSegment("anonymous_namespace", ""),), linkage=Linkage.INTERNAL,
                    declaring_file="/p/a.cpp")
    assert generate_usr(decl) == "c:/p/a.cpp@aN@F@f#"


def test_redeclarations_share_identity():
    """Every redeclaration resolves through the canonical one."""
    declaration, definition = chain(
        StubDecl("g", body=False, signature=("int",)),
        StubDecl("g", body=True, signature=("int",)),
    )
    assert generate_usr(declaration) == generate_usr(definition)


def test_instantiation_uses_pattern():
    pattern = StubDecl("t", template_arity=1, signature=("T",))
    first = StubDecl("t", instantiation=True, pattern=pattern, signature=("int",))
    second = StubDecl("t", instantiation=True, pattern=pattern, signature=("double",))

    assert generate_usr(first) == generate_usr(second) == generate_usr(pattern)


def test_unsupported_shapes_have_no_identity():
    assert generate_usr(StubDecl("~S", is_destructor=True, is_method=True)) is None
    assert generate_usr(StubDecl("")) is None
    assert generate_usr(StubDecl("m", scope=(ScopeSegment("class", ""),))) is None
    assert generate_usr(StubDecl("t", instantiation=True, pattern=None)) is None
