"""Shared fixtures: stub declarations for engine tests and a tiny project builder."""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from xunused.analyzer.compile_db import CompilationDatabase
from xunused.analyzer.executor import AllTUsExecutor
from xunused.engine.declarations import Linkage, Location, ScopeSegment
from xunused.engine.reporter import Reporter
from xunused.engine.store import GlobalAggregationStore
from xunused.utils.logger import set_debug


MAIN_FILE = "/project/main.cpp"


@dataclass(eq=False)
class StubDecl:
    """Hand-built FunctionLike for exercising the engine without a parser."""
    name: str
    qualified_name: str = ""
    location: Location = field(default_factory=lambda: Location(MAIN_FILE, 1))
    body: bool = True
    is_implicit: bool = False
    is_method: bool = False
    is_virtual: bool = False
    is_pure: bool = False
    is_destructor: bool = False
    is_weak: bool = False
    has_constructor_attr: bool = False
    linkage: Linkage = Linkage.EXTERNAL
    scope: Tuple[ScopeSegment, ...] = ()
    signature: Tuple[str, ...] = ()
    method_qualifiers: int = 0
    template_arity: int = 0
    template_args: Optional[str] = None
    declaring_file: str = MAIN_FILE
    overrides: List["StubDecl"] = field(default_factory=list)
    pattern: Optional["StubDecl"] = None
    instantiation: bool = False
    member_pattern: Optional["StubDecl"] = None
    canonical: Optional["StubDecl"] = None
    chain: List["StubDecl"] = field(default_factory=list)

    def __post_init__(self):
        if not self.qualified_name:
            self.qualified_name = self.name

    def has_body(self) -> bool:
        return any(d.body for d in self.redecls())

    def does_this_declaration_have_a_body(self) -> bool:
        return self.body

    def instantiated_from_member_function(self):
        return self.member_pattern

    def is_template_instantiation(self) -> bool:
        return self.instantiation

    def template_instantiation_pattern(self):
        return self.pattern

    def canonical_decl(self):
        return self.canonical or self

    def definition(self):
        return next((d for d in self.redecls() if d.body), None)

    def redecls(self):
        return self.chain or [self]

    def overridden_methods(self):
        return list(self.overrides)

    def is_main(self) -> bool:
        return self.name == "main" and not self.scope and not self.is_method


def chain(*decls: StubDecl) -> List[StubDecl]:
    """Link stub declarations as redeclarations of one entity (first is canonical)."""
    group = list(decls)
    for decl in group:
        decl.chain = group
        decl.canonical = group[0]
    return group


class StubSourceManager:
    def __init__(self, main_file: str = MAIN_FILE, system_files=()):
        self.main_file = main_file
        self.system_files = set(system_files)

    def is_in_system_header(self, location: Location) -> bool:
        return location.file in self.system_files

    def is_written_in_main_file(self, location: Location) -> bool:
        return location.file == self.main_file

    def filename(self, location: Location) -> str:
        return location.file

    def spelling_line(self, location: Location) -> int:
        return location.line


@pytest.fixture
def sm():
    return StubSourceManager()


@pytest.fixture(autouse=True)
def no_debug():
    set_debug(False)
    yield
    set_debug(False)


class Project:
    """Writes a small C/C++ project to disk and runs the whole pipeline on it."""

    def __init__(self, root: Path):
        self.root = root

    def write(self, files: Dict[str, str]) -> "Project":
        for name, text in files.items():
            path = self.root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        return self

    def path(self, name: str) -> str:
        return str(self.root / name)

    def compile_commands(self, sources: List[str], extra: Optional[List[str]] = None) -> Path:
        entries = [
            {
                "directory": str(self.root),
                "file": source,
                "arguments": ["c++" if not source.endswith(".c") else "cc", f"-I{self.root}",
                              *(extra or []), "-c", source],
            }
            for source in sources
        ]
        database = self.root / "compile_commands.json"
        database.write_text(json.dumps(entries))
        return database

    def run(self, sources: Optional[List[str]] = None, jobs: int = 1):
        """Analyze ``sources`` (default: scan the project).

        Returns:
            (findings, errors)
        """
        if sources is not None:
            database = CompilationDatabase.load(self.compile_commands(sources))
        else:
            database = CompilationDatabase.discover(self.root)
        store = GlobalAggregationStore()
        errors = AllTUsExecutor(database, store, jobs=jobs).execute()
        return Reporter(store).collect(), errors

    def unused(self, sources: Optional[List[str]] = None, jobs: int = 1) -> List[str]:
        findings, errors = self.run(sources, jobs)
        assert not errors, f"unexpected TU errors: {[str(e) for e in errors]}"
        return [f.qualified_name for f in findings]


@pytest.fixture
def project(tmp_path):
    return Project(tmp_path)
