"""Symbol Identity Resolver: a stable, cross-TU string for a function.

The string follows the layout of clang's Unified Symbol Resolutions closely
enough that two declarations of the same entity in different translation
units produce the same value:

    c:@N@ns@S@Widget@F@resize#int#int#1
    c:@ST>1@Box@F@get#
    c:@FT@>2convert#const char*#
    c:/abs/path/util.cpp@F@helper#int#     (internal linkage)
    c:@F@legacy_api                        (C linkage)
"""
from typing import Optional

from .declarations import FunctionLike, Linkage, ScopeSegment
from ..utils.logger import debug_log


def _scope_segment(segment: ScopeSegment) -> Optional[str]:
    if segment.kind == "anonymous_namespace":
        return "@aN"
    if not segment.name:
        return None
    if segment.kind == "namespace":
        return f"@N@{segment.name}"
    if segment.kind == "class":
        if segment.template_arity:
            return f"@ST>{segment.template_arity}@{segment.name}"
        return f"@S@{segment.name}"
    return None


def generate_usr(decl: FunctionLike) -> Optional[str]:
    """Return the canonical symbol for a function-like declaration.

    Always works on the instantiation pattern and the canonical
    redeclaration, so every redeclaration of an entity maps to one string.

    Args:
        decl: Declaration to name

    Returns:
        The USR string, or None for shapes that have no stable identity
        (destructors, unnamed declarations, unnamed enclosing classes).
    """
    if decl.is_template_instantiation():
        pattern = decl.template_instantiation_pattern()
        if pattern is None:
            return None
        decl = pattern
    decl = decl.canonical_decl()

    if decl.is_destructor or not decl.name:
        return None

    if decl.linkage == Linkage.C:
        return f"c:@F@{decl.name}"

    parts = ["c:"]
    if decl.linkage == Linkage.INTERNAL:
        parts.append(decl.declaring_file)

    for segment in decl.scope:
        encoded = _scope_segment(segment)
        if encoded is None:
            debug_log(f"No USR for {decl.qualified_name}: unsupported scope {segment}")
            return None
        parts.append(encoded)

    if decl.template_arity:
        parts.append(f"@FT@>{decl.template_arity}{decl.name}")
    else:
        parts.append(f"@F@{decl.name}")
    if decl.template_args is not None:
        parts.append(f"<{decl.template_args}>")

    parts.append("#")
    parts.append("#".join(decl.signature))
    if decl.method_qualifiers:
        parts.append(f"#{decl.method_qualifiers}")

    return "".join(parts)
