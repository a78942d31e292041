"""Reporter: turns the final global store into unused-function findings."""
from dataclasses import dataclass
from typing import List, Optional

from .store import DeclarationSite, GlobalAggregationStore
from ..utils.logger import DEBUG_TYPE
from ..utils.safe_console import SafeConsole
from ..utils.statistics import register_statistic


NUM_UNUSED_FUNCTIONS = register_statistic(
    DEBUG_TYPE, "NumUnusedFunctions", "The number of unused functions"
)


@dataclass(frozen=True)
class Finding:
    """One unused function with the evidence printed for it."""
    usr: str
    qualified_name: str
    filename: str
    line: int
    declarations: List[DeclarationSite]

    def format(self) -> List[str]:
        """Render the warning line followed by one note per declaration."""
        lines = [f"{self.filename}:{self.line}: warning: Function '{self.qualified_name}' is unused"]
        for site in self.declarations:
            lines.append(f"{site.filename}:{site.line}: note: declared here")
        return lines


class Reporter:
    """Scans the store once every TU has been finalized."""

    def __init__(self, store: GlobalAggregationStore):
        self.store = store

    def collect(self) -> List[Finding]:
        """Return a finding for every defined symbol with zero uses.

        Records without a definition are uses of symbols this run never saw
        defined (third-party or system code) and are not reported.
        """
        findings = []
        for usr, record in self.store.records():
            if record.definition is None or record.uses != 0:
                continue
            findings.append(Finding(
                usr=usr,
                qualified_name=record.definition.qualified_name,
                filename=record.definition.filename,
                line=record.definition.line,
                declarations=list(record.declarations),
            ))
            NUM_UNUSED_FUNCTIONS.increment()
        return findings

    def emit(self, findings: List[Finding], console: Optional[SafeConsole] = None) -> None:
        """Write findings in diagnostic format.

        Args:
            findings: Output of ``collect``
            console: Destination, a stderr console by default
        """
        if console is None:
            console = SafeConsole(stderr=True)
        for finding in findings:
            for line in finding.format():
                console.diagnostic(line)
