"""Terminal-safe Console wrapper for the Rich library.

Wraps Rich's Console so that diagnostics (file paths, C++ names with
brackets) are printed verbatim and Unicode decorations degrade to ASCII on
terminals that cannot encode them.
"""
from rich.console import Console
from typing import Any
from .logger import sanitize_for_terminal, is_utf8_capable


class SafeConsole(Console):
    """Console wrapper that sanitizes Unicode output for legacy terminals.

    Inherits from Rich's Console and overrides print() to automatically
    replace Unicode icons with ASCII equivalents on non-UTF-8 terminals.
    """

    def __init__(self, *args, **kwargs):
        """Initialize SafeConsole with UTF-8 capability detection.

        All arguments are passed through to Rich's Console.
        """
        self._needs_sanitization = not is_utf8_capable()
        if self._needs_sanitization:
            kwargs['legacy_windows'] = True
        super().__init__(*args, **kwargs)

    def print(self, *objects: Any, **kwargs) -> None:
        """Print with automatic Unicode sanitization.

        Args:
            *objects: Objects to print (same as Rich Console.print)
            **kwargs: Keyword arguments (same as Rich Console.print)
        """
        if self._needs_sanitization:
            objects = tuple(sanitize_for_terminal(o) if isinstance(o, str) else o for o in objects)
        super().print(*objects, **kwargs)

    def diagnostic(self, line: str) -> None:
        """Print one compiler-style diagnostic line exactly as given.

        Markup, highlighting and wrapping are disabled: ``operator[]`` or a
        path containing ``[...]`` must reach the terminal unchanged so that
        editors can parse ``file:line:`` prefixes.
        """
        self.print(line, markup=False, highlight=False, soft_wrap=True)
