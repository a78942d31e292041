"""Compilation database loading (``compile_commands.json``) and source discovery."""
import json
import os
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .parser import LanguageParser
from ..engine.errors import CompilationDatabaseError


DATABASE_NAME = "compile_commands.json"

# Directories never scanned when no database is available
EXCLUDED_DIRS = {
    'build', 'cmake-build-debug', 'cmake-build-release', 'out', 'dist',
    'vendor', 'extern', 'external', 'third_party', 'thirdparty', 'deps',
    '.git', '.svn', '.hg', 'node_modules', '.cache', 'CMakeFiles',
}

DEFAULT_SYSTEM_DIRS = ['/usr/include', '/usr/local/include']


def _normalize(path: str | Path, base: str | Path) -> str:
    """Absolute, lexically normalized path (symlinks are not resolved)."""
    path = Path(path)
    if not path.is_absolute():
        path = Path(base) / path
    return os.path.normpath(str(path))


@dataclass
class CompileCommand:
    """How one translation unit is compiled."""
    file: str
    directory: str
    arguments: List[str]
    language: str = 'cpp'
    quote_dirs: List[str] = field(default_factory=list)
    include_dirs: List[str] = field(default_factory=list)
    system_dirs: List[str] = field(default_factory=list)

    @classmethod
    def from_arguments(cls, file: str, directory: str, arguments: List[str]) -> 'CompileCommand':
        """Build a command and extract its include search path and language.

        Args:
            file: Main file (absolute or relative to ``directory``)
            directory: Working directory of the compiler invocation
            arguments: Full argv, compiler first

        Returns:
            CompileCommand with absolute paths
        """
        directory = _normalize(directory, os.getcwd())
        command = cls(file=_normalize(file, directory), directory=directory, arguments=list(arguments))
        command.language = LanguageParser.language_for(command.file) or 'cpp'

        flags_with_dirs = {
            '-I': command.include_dirs,
            '--include-directory': command.include_dirs,
            '-iquote': command.quote_dirs,
            '-isystem': command.system_dirs,
            '-idirafter': command.system_dirs,
        }

        args = iter(arguments[1:])
        for arg in args:
            if arg == '-x':
                command.language = _language_from_x(next(args, ''), command.language)
                continue
            if arg.startswith('-x') and len(arg) > 2:
                command.language = _language_from_x(arg[2:], command.language)
                continue

            for flag, target in flags_with_dirs.items():
                if arg == flag:
                    value = next(args, None)
                    if value is not None:
                        target.append(_normalize(value, directory))
                    break
                if arg.startswith(flag + '='):
                    target.append(_normalize(arg[len(flag) + 1:], directory))
                    break
                if flag in ('-I', '-iquote', '-isystem', '-idirafter') and arg.startswith(flag) and len(arg) > len(flag):
                    target.append(_normalize(arg[len(flag):], directory))
                    break

        return command


def _language_from_x(value: str, default: str) -> str:
    if value in ('c', 'c-header'):
        return 'c'
    if value in ('c++', 'c++-header'):
        return 'cpp'
    return default


class CompilationDatabase:
    """The set of translation units to analyze."""

    def __init__(self, commands: Iterable[CompileCommand], source: Optional[str] = None):
        """Keep the first command of every file, in database order.

        Args:
            commands: Compile commands
            source: Where the commands came from (database path or scanned dir)
        """
        self.source = source
        self._commands: Dict[str, CompileCommand] = {}
        for command in commands:
            self._commands.setdefault(command.file, command)

    @property
    def commands(self) -> List[CompileCommand]:
        return list(self._commands.values())

    def __len__(self) -> int:
        return len(self._commands)

    def filtered(self, pattern: Optional[str]) -> 'CompilationDatabase':
        """Only the files whose absolute path matches ``pattern`` (regex search)."""
        if not pattern:
            return self
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise CompilationDatabaseError(f"invalid --filter pattern {pattern!r}: {e}") from e
        return CompilationDatabase(
            (c for c in self._commands.values() if regex.search(c.file)), self.source
        )

    def with_extra_args(self, extra_args: Optional[List[str]]) -> 'CompilationDatabase':
        """Append ``extra_args`` to every command and re-derive its search paths."""
        if not extra_args:
            return self
        return CompilationDatabase(
            (CompileCommand.from_arguments(c.file, c.directory, c.arguments + list(extra_args))
             for c in self._commands.values()),
            self.source,
        )

    @classmethod
    def load(cls, path: str | Path) -> 'CompilationDatabase':
        """Load a ``compile_commands.json`` file.

        Args:
            path: The JSON file

        Returns:
            CompilationDatabase

        Raises:
            CompilationDatabaseError: If the file is unreadable or malformed
        """
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                entries = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CompilationDatabaseError(f"cannot load {path}: {e}") from e

        if not isinstance(entries, list):
            raise CompilationDatabaseError(f"{path}: expected a JSON array of compile commands")

        commands = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict) or 'file' not in entry or 'directory' not in entry:
                raise CompilationDatabaseError(f"{path}: entry {index} needs 'file' and 'directory'")
            if 'arguments' in entry:
                arguments = [str(a) for a in entry['arguments']]
            elif 'command' in entry:
                try:
                    arguments = shlex.split(entry['command'])
                except ValueError as e:
                    raise CompilationDatabaseError(f"{path}: entry {index}: {e}") from e
            else:
                raise CompilationDatabaseError(f"{path}: entry {index} has neither 'arguments' nor 'command'")
            commands.append(CompileCommand.from_arguments(entry['file'], entry['directory'], arguments))

        return cls(commands, source=str(path))

    @classmethod
    def find(cls, project_root: str | Path, build_path: Optional[str | Path] = None) -> Optional[Path]:
        """Locate ``compile_commands.json``.

        Args:
            project_root: Project being analyzed
            build_path: Explicit build directory or database file (``-p``)

        Returns:
            Path of the database, or None if there is none
        """
        candidates = []
        if build_path is not None:
            build_path = Path(build_path)
            candidates.append(build_path if build_path.suffix == '.json' else build_path / DATABASE_NAME)
        else:
            root = Path(project_root)
            candidates.extend([root / DATABASE_NAME, root / 'build' / DATABASE_NAME])

        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None

    @classmethod
    def discover(cls, project_root: str | Path, excluded_dirs: Optional[Iterable[str]] = None) -> 'CompilationDatabase':
        """Synthesize commands for every C/C++ source under ``project_root``.

        Used when no database exists. The root and ``<root>/include`` are
        the include directories.

        Args:
            project_root: Directory to scan
            excluded_dirs: Extra directory names to skip

        Returns:
            CompilationDatabase
        """
        root = Path(_normalize(project_root, os.getcwd()))
        skip = EXCLUDED_DIRS | set(excluded_dirs or ())
        include_args = [f"-I{root}"]
        if (root / 'include').is_dir():
            include_args.append(f"-I{root / 'include'}")

        sources = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in skip and not d.startswith('.'))
            for filename in sorted(filenames):
                if Path(filename).suffix in LanguageParser.SOURCE_EXTENSIONS:
                    sources.append(os.path.join(dirpath, filename))

        commands = []
        for source in sources:
            compiler = 'cc' if LanguageParser.language_for(source) == 'c' else 'c++'
            commands.append(CompileCommand.from_arguments(
                source, str(root), [compiler, *include_args, '-c', source]
            ))
        return cls(commands, source=str(root))
