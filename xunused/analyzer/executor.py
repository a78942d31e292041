"""All-TUs executor: runs the per-TU pipeline over a thread pool."""
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from .compile_db import CompilationDatabase, CompileCommand
from .reference_tracker import ReferenceTracker
from .translation_unit import TranslationUnit
from ..engine.collector import FactCollector
from ..engine.errors import InvariantViolation, TranslationUnitError
from ..engine.finalizer import finalize_translation_unit
from ..engine.store import GlobalAggregationStore
from ..utils.logger import debug_log


class AllTUsExecutor:
    """Analyzes every TU of a compilation database into one global store.

    Each worker owns its TU's trees, model and collector; the only shared
    object is the store, touched exclusively by the finalizer under its lock.
    """

    def __init__(self, database: CompilationDatabase, store: GlobalAggregationStore,
                 jobs: int = 1, extra_system_dirs: Optional[List[str]] = None,
                 on_done: Optional[Callable[[CompileCommand], None]] = None):
        """Initialize executor.

        Args:
            database: Translation units to analyze
            store: Global store the finalizers write into
            jobs: Worker thread count
            extra_system_dirs: Additional system header directories
            on_done: Called from the main thread after each TU finishes
                (progress reporting)
        """
        self.database = database
        self.store = store
        self.jobs = max(1, jobs)
        self.extra_system_dirs = list(extra_system_dirs or [])
        self.on_done = on_done

    def execute(self) -> List[TranslationUnitError]:
        """Run every TU and wait for all of them.

        Returns:
            Per-TU errors in database order (empty when every TU succeeded)

        Raises:
            InvariantViolation: Re-raised once the pool has shut down
        """
        commands = self.database.commands
        debug_log(f"Analyzing {len(commands)} translation units with {self.jobs} workers")

        errors = {}
        violation: Optional[InvariantViolation] = None

        with ThreadPoolExecutor(max_workers=self.jobs) as executor:
            future_to_command = {
                executor.submit(self.run_translation_unit, command): command
                for command in commands
            }
            for future in as_completed(future_to_command):
                command = future_to_command[future]
                try:
                    error = future.result()
                except InvariantViolation as e:
                    violation = violation or e
                    error = None
                if error is not None:
                    errors[command.file] = error
                if self.on_done is not None:
                    self.on_done(command)

        if violation is not None:
            raise violation

        return [errors[c.file] for c in commands if c.file in errors]

    def run_translation_unit(self, command: CompileCommand) -> Optional[TranslationUnitError]:
        """Parse, collect and finalize one TU.

        A TU with syntax errors is still finalized with the facts that could
        be recovered; the error is returned so the run fails.

        Args:
            command: The TU's compile command

        Returns:
            TranslationUnitError, or None on success
        """
        debug_log(f"Processing {command.file}")
        try:
            tu = TranslationUnit.load(command, self.extra_system_dirs)
        except (OSError, ValueError, RecursionError) as e:
            return TranslationUnitError(command.file, str(e) or type(e).__name__)

        if tu.main_file_missing:
            return TranslationUnitError(command.file, "cannot read main file")

        collector = FactCollector()
        try:
            ReferenceTracker(tu, collector).run()
        except RecursionError:
            return TranslationUnitError(command.file, "nesting too deep to analyze")

        finalize_translation_unit(collector, tu.source_manager, self.store)

        syntax_errors = tu.syntax_errors()
        if syntax_errors:
            where = ", ".join(f"{path}:{line}" for path, line in syntax_errors)
            return TranslationUnitError(command.file, f"syntax errors at {where}")
        return None
