"""Terminal-safe output and the debug trace channel.

Detects terminal encoding and provides ASCII alternatives for Unicode icons
so that diagnostics never crash a non-UTF-8 terminal, and exposes
``debug_log`` for the engine's trace output (enabled with ``--debug`` or
``XUNUSED_DEBUG``).
"""
import sys
import locale
import threading
from typing import Callable


DEBUG_TYPE = "xunused"

# Unicode to ASCII icon mapping for non-UTF-8 terminals
ICON_MAP = {
    '✓': '[OK]',
    '✗': '[FAIL]',
    '⚠': '[WARN]',
    '→': '->',
    '←': '<-',
    '⇒': '=>',
    '│': '|',
    '─': '-',
    '…': '...',
    '•': '*',
}


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    if hasattr(sys.stderr, 'encoding') and sys.stderr.encoding:
        return sys.stderr.encoding.lower()

    try:
        return locale.getpreferredencoding().lower()
    except (LookupError, ValueError):
        pass

    return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 Unicode characters."""
    return detect_terminal_encoding() in ('utf-8', 'utf8', 'utf_8')


def sanitize_for_terminal(text: str) -> str:
    """Replace Unicode icons with ASCII equivalents if terminal doesn't support UTF-8.

    Args:
        text: Text potentially containing Unicode icons

    Returns:
        str: Sanitized text safe for current terminal
    """
    if is_utf8_capable():
        return text

    sanitized = text
    for unicode_char, ascii_replacement in ICON_MAP.items():
        sanitized = sanitized.replace(unicode_char, ascii_replacement)
    return sanitized


def create_safe_print() -> Callable:
    """Create a print function that sanitizes output and never interleaves lines.

    Returns:
        Callable: Safe print function
    """
    lock = threading.Lock()

    def safe_print(*args, **kwargs):
        """Print with automatic Unicode sanitization."""
        sanitized_args = [
            sanitize_for_terminal(arg) if isinstance(arg, str) else arg
            for arg in args
        ]
        with lock:
            print(*sanitized_args, **kwargs)

    return safe_print


safe_print = create_safe_print()

_debug_enabled = False


def set_debug(enabled: bool) -> None:
    """Turn the debug trace channel on or off for the whole process."""
    global _debug_enabled
    _debug_enabled = bool(enabled)


def is_debug_enabled() -> bool:
    return _debug_enabled


def debug_log(message: str) -> None:
    """Write one trace line to stderr when debugging is enabled.

    Args:
        message: Trace message, printed as ``[xunused] message``
    """
    if _debug_enabled:
        safe_print(f"[{DEBUG_TYPE}] {message}", file=sys.stderr)
