"""Process-wide named counters, printed on demand with ``--print-stats``."""
import threading
from dataclasses import dataclass, field
from typing import Dict, List

from rich.table import Table


@dataclass
class Statistic:
    """A named counter owned by one component (debug type)."""
    debug_type: str
    name: str
    description: str
    value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, amount: int = 1) -> None:
        with self._lock:
            self.value += amount

    def reset(self) -> None:
        with self._lock:
            self.value = 0


_registry: Dict[str, Statistic] = {}
_registry_lock = threading.Lock()


def register_statistic(debug_type: str, name: str, description: str) -> Statistic:
    """Create (or return the already registered) statistic called ``name``."""
    with _registry_lock:
        stat = _registry.get(name)
        if stat is None:
            stat = Statistic(debug_type, name, description)
            _registry[name] = stat
        return stat


def all_statistics() -> List[Statistic]:
    with _registry_lock:
        return list(_registry.values())


def build_statistics_table() -> Table:
    """Render every registered statistic, LLVM ``-stats`` style.

    Returns:
        Rich table with value, debug type and description columns
    """
    table = Table(title="Statistics Collected", show_header=True, header_style="bold magenta", box=None)
    table.add_column("Value", justify="right", style="yellow")
    table.add_column("Type", style="cyan")
    table.add_column("Description")

    for stat in sorted(all_statistics(), key=lambda s: (s.debug_type, s.name)):
        table.add_row(str(stat.value), stat.debug_type, stat.description)

    return table
