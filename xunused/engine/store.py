"""Global Aggregation Store: canonical symbol -> accumulated def/use facts.

One store is shared by every worker. It is only mutated by a TU finalizer
holding ``store.lock`` and only read by the reporter after all workers have
joined.
"""
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import InvariantViolation


@dataclass(frozen=True)
class DeclarationSite:
    """Where a non-defining declaration was written (evidence only)."""
    filename: str
    line: int


@dataclass(frozen=True)
class DefinitionSnapshot:
    """The parts of a definition the report needs, copied out of its TU."""
    qualified_name: str
    filename: str
    line: int


@dataclass
class GlobalRecord:
    """Everything known about one canonical symbol across all TUs."""
    definition: Optional[DefinitionSnapshot] = None
    uses: int = 0
    declarations: List[DeclarationSite] = field(default_factory=list)


class GlobalAggregationStore:
    """Insertion-ordered map from canonical symbol to GlobalRecord."""

    def __init__(self):
        self.lock = threading.Lock()
        self._records: Dict[str, GlobalRecord] = {}

    def _require_lock(self):
        if not self.lock.locked():
            raise InvariantViolation("global store mutated outside the finalizer lock")

    def upsert_definition(self, usr: str, snapshot: DefinitionSnapshot,
                          declarations: List[DeclarationSite]) -> GlobalRecord:
        """Record a definition that had no use inside its own TU.

        A new symbol starts with zero uses. An existing one only gets its
        definition evidence refreshed; its use counter is left alone.

        Args:
            usr: Canonical symbol
            snapshot: Name and location of the definition
            declarations: Non-defining redeclarations, for the report notes

        Returns:
            The stored record
        """
        self._require_lock()
        record = self._records.get(usr)
        if record is None:
            record = GlobalRecord()
            self._records[usr] = record
        record.definition = snapshot
        record.declarations = list(declarations)
        return record

    def add_external_use(self, usr: str) -> GlobalRecord:
        """Count one TU that uses ``usr`` without defining it.

        Args:
            usr: Canonical symbol

        Returns:
            The stored record
        """
        self._require_lock()
        record = self._records.get(usr)
        if record is None:
            record = GlobalRecord(uses=1)
            self._records[usr] = record
        else:
            record.uses += 1
        return record

    def get(self, usr: str) -> Optional[GlobalRecord]:
        return self._records.get(usr)

    def records(self) -> Iterator[Tuple[str, GlobalRecord]]:
        """Iterate records in discovery order."""
        return iter(self._records.items())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, usr: str) -> bool:
        return usr in self._records
