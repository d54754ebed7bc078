"""In-memory log of simulation runs and the best time per backend."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RunRecord:
    backend: str
    path_count: int
    elapsed_ms: float


@dataclass
class RunHistory:
    entries: list[RunRecord] = field(default_factory=list)

    def record(self, backend: str, path_count: int, elapsed_ms: float) -> RunRecord:
        entry = RunRecord(backend=backend, path_count=path_count, elapsed_ms=float(elapsed_ms))
        self.entries.append(entry)
        return entry

    def for_backend(self, backend: str) -> list[RunRecord]:
        return [entry for entry in self.entries if entry.backend == backend]

    def best(self, backend: str) -> Optional[RunRecord]:
        """Fastest run recorded for ``backend``, or ``None`` if it never ran."""
        runs = self.for_backend(backend)
        if not runs:
            return None
        return min(runs, key=lambda entry: entry.elapsed_ms)

    def clear(self) -> None:
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)
