"""Tree-sitter parser for C and C++ translation units."""
from pathlib import Path
from typing import Optional
from tree_sitter import Language, Parser, Tree
import tree_sitter_c as tsc
import tree_sitter_cpp as tscpp


class LanguageParser:
    """C/C++ parser using the tree-sitter v0.22+ API."""

    SUPPORTED_LANGUAGES = {
        '.c': 'c',
        '.cc': 'cpp',
        '.cp': 'cpp',
        '.cpp': 'cpp',
        '.cxx': 'cpp',
        '.c++': 'cpp',
        '.C': 'cpp',
        '.h': 'cpp',
        '.hh': 'cpp',
        '.hpp': 'cpp',
        '.hxx': 'cpp',
        '.h++': 'cpp',
        '.inl': 'cpp',
        '.ipp': 'cpp',
        '.tpp': 'cpp',
    }

    SOURCE_EXTENSIONS = {'.c', '.cc', '.cp', '.cpp', '.cxx', '.c++', '.C'}

    def __init__(self, language: str):
        """Initialize parser for given language.

        Args:
            language: 'c' or 'cpp'

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        """Factory method using the tree-sitter v0.25+ API.

        Returns:
            Configured Parser instance

        Raises:
            ValueError: If language is not supported
        """
        if self.language == 'c':
            lang = Language(tsc.language())
        elif self.language == 'cpp':
            lang = Language(tscpp.language())
        else:
            raise ValueError(f"Unsupported language: {self.language}")

        return Parser(lang)

    def parse_source(self, source_code: bytes) -> Tree:
        """Parse an in-memory buffer."""
        return self.parser.parse(source_code)

    def parse_file(self, file_path: str | Path) -> Optional[Tree]:
        """Parse file and return tree-sitter Tree.

        Args:
            file_path: Path to source file to parse

        Returns:
            Parsed Tree object, or None if the file could not be read
        """
        file_path = Path(file_path)

        try:
            source_code = file_path.read_bytes()
        except OSError:
            return None
        return self.parser.parse(source_code)

    @classmethod
    def language_for(cls, file_path: str | Path) -> Optional[str]:
        """Language of a file from its extension ('.C' is C++, '.c' is C)."""
        suffix = Path(file_path).suffix
        return cls.SUPPORTED_LANGUAGES.get(suffix) or cls.SUPPORTED_LANGUAGES.get(suffix.lower())

    @classmethod
    def from_file_extension(cls, file_path: str | Path) -> Optional['LanguageParser']:
        """Create parser based on file extension.

        Args:
            file_path: Path to determine language from

        Returns:
            LanguageParser instance, or None if extension not supported
        """
        language = cls.language_for(file_path)
        if language:
            return cls(language)
        return None
