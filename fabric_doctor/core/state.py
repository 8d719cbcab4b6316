"""
Migration state container.

Mutable tracking state for a migration run, kept apart from the immutable
MigrationConfig. The report writer reads everything it prints from here.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from fabric_doctor.chain.walker import MigrationWindow, PhaseReport


@dataclass
class CopyResult:
    """Counters for one replication call.

    - ``copied``: records written to the target
    - ``created``: written records whose key was absent from the target before
    - ``skipped``: records over the key or value size ceiling
    - ``not_found``: requested keys absent from the source
    """

    copied: int = 0
    created: int = 0
    skipped: int = 0
    not_found: int = 0

    def __add__(self, other: CopyResult) -> CopyResult:
        return CopyResult(
            copied=self.copied + other.copied,
            created=self.created + other.created,
            skipped=self.skipped + other.skipped,
            not_found=self.not_found + other.not_found,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "copied": self.copied,
            "created": self.created,
            "skipped": self.skipped,
            "not_found": self.not_found,
        }


@dataclass
class StoreState:
    """Per column family outcome."""

    result: CopyResult = field(default_factory=CopyResult)
    verified: bool | None = None
    duration: float = 0.0


@dataclass
class MigrationState:
    """Holds all mutable tracking state for a migration run."""

    stores: dict[str, StoreState] = field(default_factory=dict)
    window: MigrationWindow | None = None
    phase_reports: list[PhaseReport] = field(default_factory=list)
    entries_selected: int = 0
    dependent_hashes: int = 0
    completed_steps: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    def store(self, name: str) -> StoreState:
        if name not in self.stores:
            self.stores[name] = StoreState()
        return self.stores[name]

    def record_copy(self, name: str, result: CopyResult) -> None:
        state = self.store(name)
        state.result = state.result + result

    def finish(self) -> None:
        self.finished_at = time.time()

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    @property
    def total_copied(self) -> int:
        return sum(s.result.copied for s in self.stores.values())

    @property
    def total_skipped(self) -> int:
        return sum(s.result.skipped for s in self.stores.values())

    def to_dict(self) -> dict[str, Any]:
        window = None
        if self.window is not None:
            window = {
                "rooted_height": self.window.rooted_height,
                "temporal_height": self.window.temporal_height,
                "rooted_tip": self.window.rooted_tip.hex(),
            }
        return {
            "window": window,
            "completed_steps": list(self.completed_steps),
            "entries_selected": self.entries_selected,
            "dependent_hashes": self.dependent_hashes,
            "stores": {
                name: {
                    **state.result.to_dict(),
                    "verified": state.verified,
                    "duration_seconds": round(state.duration, 3),
                }
                for name, state in self.stores.items()
            },
            "walk": [report.to_dict() for report in self.phase_reports],
            "errors": list(self.errors),
            "duration_seconds": round(self.duration, 3),
        }
