"""Error types raised by the unused-function engine and its driver."""


class XUnusedError(Exception):
    """Base class for all xunused errors."""


class CompilationDatabaseError(XUnusedError):
    """The compilation database is missing, unreadable or malformed."""


class TranslationUnitError(XUnusedError):
    """A single translation unit could not be analyzed completely.

    Never fatal for the run: the executor records it and keeps going with the
    remaining translation units.
    """

    def __init__(self, file: str, message: str):
        """Initialize with the TU main file and a human readable reason.

        Args:
            file: Absolute path of the translation unit's main file
            message: What went wrong
        """
        super().__init__(f"{file}: {message}")
        self.file = file
        self.message = message


class InvariantViolation(XUnusedError):
    """The classification logic reached a state it considers impossible.

    Fatal: the executor re-raises it instead of recording a per-TU error.
    """
