"""
Chain walker.

Selects the entries a migration carries over. Three phases run in order:

* window: every height from the rooted height up to the temporal height
* above window: heights past the temporal height, until a run of empty heights
* genesis: backward from the rooted tip along prev_hash links

A phase that hits a gap (missing index entry, missing or undecodable entry,
broken link) stops there and keeps what it found. The reason is recorded on
the phase's report instead of being raised to the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from fabric_doctor.chain.metadata import is_genesis_hash, load_metadata, resolve_height
from fabric_doctor.codec import as_bytes, as_int, try_decode
from fabric_doctor.constants import (
    DEFAULT_MAX_CHAIN_ENTRIES,
    DEFAULT_MAX_CONSECUTIVE_EMPTY,
    HASH_SIZE,
    ROOTED_TIP_KEY,
    TEMPORAL_HEIGHT_KEY,
    TEMPORAL_TIP_KEY,
)
from fabric_doctor.core.config import StoreLayout
from fabric_doctor.exceptions import ChainStateError, WalkTerminated
from fabric_doctor.storage.base import Database
from fabric_doctor.utils.logging import log_with_context

WINDOW_PHASE = "window"
ABOVE_WINDOW_PHASE = "above_window"
GENESIS_PHASE = "genesis"


def height_index_key(height: int, entry_hash: bytes) -> bytes:
    """Key of an entry in the height index: ``b"<height>:" + hash``."""
    return f"{height}:".encode("ascii") + entry_hash


def slot_index_key(slot: int, entry_hash: bytes) -> bytes:
    return f"{slot}:".encode("ascii") + entry_hash


@dataclass(frozen=True)
class ChainEntry:
    hash: bytes
    height: int
    slot: int
    entry_bytes: bytes
    prev_hash: Optional[bytes] = None


@dataclass
class PhaseReport:
    """What one walk phase found and why it stopped."""

    phase: str
    entries: int = 0
    first_height: Optional[int] = None
    last_height: Optional[int] = None
    stop_reason: str = ""
    terminated: Optional[WalkTerminated] = None
    duration: float = 0.0

    def record(self, height: int) -> None:
        self.entries += 1
        if self.first_height is None:
            self.first_height = height
        self.last_height = height

    @property
    def complete(self) -> bool:
        return self.terminated is None

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "entries": self.entries,
            "first_height": self.first_height,
            "last_height": self.last_height,
            "stop_reason": self.stop_reason,
            "complete": self.complete,
            "duration_seconds": round(self.duration, 3),
        }


@dataclass(frozen=True)
class MigrationWindow:
    temporal_height: int
    rooted_height: int
    rooted_tip: bytes


@dataclass(frozen=True)
class ChainTips:
    """Chain tip records as stored in sysconf. Any of them may be absent."""

    temporal_height: Optional[int] = None
    temporal_tip: Optional[bytes] = None
    rooted_tip: Optional[bytes] = None
    rooted_height: Optional[int] = None


@dataclass
class MigrationSet:
    """Entries selected for migration, grouped by the phase that found them."""

    window: list[ChainEntry] = field(default_factory=list)
    above_window: list[ChainEntry] = field(default_factory=list)
    genesis_chain: list[ChainEntry] = field(default_factory=list)
    reports: list[PhaseReport] = field(default_factory=list)

    @property
    def dependent_hashes(self) -> list[bytes]:
        """
        Entry hashes whose dependent records get copied.

        Genesis walk entries are migrated themselves but their dependent
        records are not.
        """
        seen: dict[bytes, None] = {}
        for entry in self.window + self.above_window:
            seen.setdefault(entry.hash, None)
        return list(seen)

    @property
    def all_entries(self) -> list[ChainEntry]:
        return self.window + self.above_window + self.genesis_chain

    def report(self, phase: str) -> Optional[PhaseReport]:
        for report in self.reports:
            if report.phase == phase:
                return report
        return None


OnEntry = Callable[[ChainEntry], None]


class ChainWalker:
    """
    Walk the entry store through its height index.

    Args:
        db: Source database
        layout: Column family names
        max_consecutive_empty: Empty heights that end the above-window scan
        max_chain_entries: Upper bound on the genesis walk length
    """

    def __init__(
        self,
        db: Database,
        layout: StoreLayout,
        max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY,
        max_chain_entries: int = DEFAULT_MAX_CHAIN_ENTRIES,
    ):
        self.entries = db.column_family(layout.entry)
        self.height_index = db.column_family(layout.entry_by_height)
        self.max_consecutive_empty = max_consecutive_empty
        self.max_chain_entries = max_chain_entries

    def entry_hashes_at(self, height: int) -> list[bytes]:
        """Return the hashes of all entries indexed at ``height``."""
        prefix = f"{height}:".encode("ascii")
        hashes = []
        for key, value in self.height_index.iterate(prefix=prefix):
            hashes.append(value if len(value) == HASH_SIZE else key[len(prefix) :])
        return hashes

    def load_entry(self, entry_hash: bytes, height: Optional[int] = None) -> ChainEntry:
        """
        Fetch an entry and read its metadata.

        Raises:
            WalkTerminated: If the entry is missing or undecodable
        """
        entry_bytes, metadata = load_metadata(entry_hash, self.entries)
        if entry_bytes is None:
            raise WalkTerminated(f"Entry {entry_hash.hex()} not found", height)
        if metadata is None:
            raise WalkTerminated(f"Entry {entry_hash.hex()} is undecodable", height)
        return ChainEntry(
            entry_hash, metadata.height, metadata.slot, entry_bytes, metadata.prev_hash
        )

    def _run_phase(self, phase: str, body, on_entry: Optional[OnEntry]):
        found: list[ChainEntry] = []
        report = PhaseReport(phase)
        started = time.time()

        def accept(entry: ChainEntry) -> None:
            found.append(entry)
            report.record(entry.height)
            if on_entry is not None:
                on_entry(entry)

        try:
            report.stop_reason = body(accept)
        except WalkTerminated as e:
            report.terminated = e
            report.stop_reason = str(e)
            log_with_context(
                logging.WARNING,
                f"Walk phase ended early: {e}",
                phase=phase,
                height=e.height,
            )
        report.duration = time.time() - started
        log_with_context(
            logging.INFO,
            f"Found {report.entries} entries ({report.stop_reason})",
            phase=phase,
        )
        return found, report

    def window_scan(
        self, rooted_height: int, temporal_height: int, on_entry: Optional[OnEntry] = None
    ) -> tuple[list[ChainEntry], PhaseReport]:
        """Select every indexed entry from ``rooted_height`` to ``temporal_height``."""

        def body(accept):
            for height in range(rooted_height, temporal_height + 1):
                hashes = self.entry_hashes_at(height)
                if not hashes:
                    raise WalkTerminated("No index entry inside window", height)
                for entry_hash in hashes:
                    accept(self.load_entry(entry_hash, height))
            return "reached temporal height"

        return self._run_phase(WINDOW_PHASE, body, on_entry)

    def above_window_scan(
        self, temporal_height: int, on_entry: Optional[OnEntry] = None
    ) -> tuple[list[ChainEntry], PhaseReport]:
        """Select entries above the window until enough consecutive heights are empty."""

        def body(accept):
            height = temporal_height + 1
            empty = 0
            while empty < self.max_consecutive_empty:
                hashes = self.entry_hashes_at(height)
                if hashes:
                    empty = 0
                    for entry_hash in hashes:
                        accept(self.load_entry(entry_hash, height))
                else:
                    empty += 1
                height += 1
            return f"{self.max_consecutive_empty} consecutive empty heights"

        return self._run_phase(ABOVE_WINDOW_PHASE, body, on_entry)

    def genesis_walk(
        self, start_hash: bytes, on_entry: Optional[OnEntry] = None
    ) -> tuple[list[ChainEntry], PhaseReport]:
        """Follow prev_hash links from ``start_hash`` toward genesis."""

        def body(accept):
            entry = self.load_entry(start_hash)
            count = 0
            while True:
                accept(entry)
                count += 1
                if entry.height == 0 or is_genesis_hash(entry.prev_hash):
                    return "reached genesis"
                if count >= self.max_chain_entries:
                    return f"reached {self.max_chain_entries} entries"
                if entry.prev_hash is None:
                    raise WalkTerminated("Broken prev_hash link", entry.height)
                # height in a termination here is the referring entry's
                entry = self.load_entry(entry.prev_hash, entry.height)

        return self._run_phase(GENESIS_PHASE, body, on_entry)

    def walk(
        self, window: MigrationWindow, on_entry: Optional[OnEntry] = None
    ) -> MigrationSet:
        """Run all three phases and collect the selected entries."""
        result = MigrationSet()

        result.window, report = self.window_scan(
            window.rooted_height, window.temporal_height, on_entry
        )
        result.reports.append(report)

        result.above_window, report = self.above_window_scan(
            window.temporal_height, on_entry
        )
        result.reports.append(report)

        result.genesis_chain, report = self.genesis_walk(window.rooted_tip, on_entry)
        result.reports.append(report)

        return result


def _parse_height(raw: Optional[bytes]) -> Optional[int]:
    """Read a height stored either as an encoded integer or as ASCII digits."""
    if raw is None:
        return None
    value = as_int(try_decode(raw))
    if value is not None:
        return value
    text = raw.decode("ascii", errors="replace").strip()
    return int(text) if text.isdigit() else None


def _parse_hash(raw: Optional[bytes]) -> Optional[bytes]:
    """Read a hash stored raw or as an encoded binary."""
    if raw is None:
        return None
    if len(raw) == HASH_SIZE:
        return raw
    return as_bytes(try_decode(raw))


def read_chain_tips(db: Database, layout: StoreLayout) -> ChainTips:
    """Read the chain tip records from sysconf without requiring any of them."""
    sysconf = db.column_family(layout.sysconf)
    rooted_tip = _parse_hash(sysconf.get(ROOTED_TIP_KEY))

    rooted_height = None
    if rooted_tip is not None:
        rooted_height = resolve_height(rooted_tip, db.column_family(layout.entry))

    return ChainTips(
        temporal_height=_parse_height(sysconf.get(TEMPORAL_HEIGHT_KEY)),
        temporal_tip=_parse_hash(sysconf.get(TEMPORAL_TIP_KEY)),
        rooted_tip=rooted_tip,
        rooted_height=rooted_height,
    )


def find_window(db: Database, layout: StoreLayout) -> MigrationWindow:
    """
    Derive the migration window from the source's sysconf records.

    Raises:
        ChainStateError: If the temporal height or rooted tip is missing, the
            rooted tip entry can't be resolved, or the window is inverted
    """
    tips = read_chain_tips(db, layout)
    if tips.temporal_height is None:
        raise ChainStateError("sysconf has no readable temporal_height record")
    if tips.rooted_tip is None:
        raise ChainStateError("sysconf has no readable rooted_tip record")
    if tips.rooted_height is None:
        raise ChainStateError(
            f"Rooted tip entry {tips.rooted_tip.hex()} is missing or undecodable"
        )
    if tips.temporal_height < tips.rooted_height:
        raise ChainStateError(
            f"temporal_height {tips.temporal_height} is below "
            f"rooted height {tips.rooted_height}"
        )

    log_with_context(
        logging.INFO,
        f"Migration window: heights {tips.rooted_height}..{tips.temporal_height}",
    )
    return MigrationWindow(tips.temporal_height, tips.rooted_height, tips.rooted_tip)
