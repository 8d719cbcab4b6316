"""Tests for the chain walker and window discovery."""

import pytest

from fabric_doctor.chain.walker import (
    ABOVE_WINDOW_PHASE,
    GENESIS_PHASE,
    WINDOW_PHASE,
    ChainWalker,
    MigrationWindow,
    find_window,
    height_index_key,
    read_chain_tips,
)
from fabric_doctor.codec import Binary, encode_safe, integer
from fabric_doctor.constants import ROOTED_TIP_KEY, TEMPORAL_HEIGHT_KEY
from fabric_doctor.exceptions import ChainStateError, MissingStoreError
from fabric_doctor.storage.memory import MemoryDatabase
from tests.unit.conftest import build_chain, write_tips


def heights(entries):
    return [e.height for e in entries]


class TestIndexKeys:
    def test_height_index_key(self):
        assert height_index_key(12, b"\xab" * 2) == b"12:\xab\xab"

    def test_entry_hashes_at_does_not_match_longer_heights(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, [9, 90, 91])
        walker = ChainWalker(memory_db, layout)
        assert walker.entry_hashes_at(9) == [hashes[9]]

    def test_entry_hashes_at_empty_height(self, memory_db, layout):
        walker = ChainWalker(memory_db, layout)
        assert walker.entry_hashes_at(5) == []

    def test_entry_hashes_at_multiple_entries(self, memory_db, layout):
        a = build_chain(memory_db, layout, [7])
        fork = MemoryDatabase(layout.schema)
        b = build_chain(fork, layout, [6, 7])
        memory_db.column_family(layout.entry_by_height).put_batch(
            [(height_index_key(7, b[7]), b[7])]
        )
        walker = ChainWalker(memory_db, layout)
        assert sorted(walker.entry_hashes_at(7)) == sorted([a[7], b[7]])


class TestWindowScan:
    def test_selects_every_height_in_window(self, chain_db, layout):
        db, hashes = chain_db
        entries, report = ChainWalker(db, layout).window_scan(90, 100)

        assert heights(entries) == list(range(90, 101))
        assert [e.hash for e in entries] == [hashes[h] for h in range(90, 101)]
        assert report.complete
        assert report.entries == 11

    def test_gap_inside_window_ends_phase(self, memory_db, layout):
        build_chain(memory_db, layout, [1, 2, 4, 5])
        entries, report = ChainWalker(memory_db, layout).window_scan(1, 5)

        assert heights(entries) == [1, 2]
        assert not report.complete
        assert report.terminated.height == 3

    def test_missing_entry_record_ends_phase(self, memory_db, layout):
        build_chain(memory_db, layout, range(1, 6), missing=[3])
        entries, report = ChainWalker(memory_db, layout).window_scan(1, 5)

        assert heights(entries) == [1, 2]
        assert "not found" in report.stop_reason

    def test_on_entry_called_as_entries_are_found(self, chain_db, layout):
        db, _ = chain_db
        seen = []
        ChainWalker(db, layout).window_scan(95, 97, on_entry=seen.append)
        assert heights(seen) == [95, 96, 97]


class TestAboveWindowScan:
    def test_stops_after_consecutive_empty_heights(self, chain_db, layout):
        db, _ = chain_db
        entries, report = ChainWalker(db, layout).above_window_scan(100)

        assert heights(entries) == list(range(101, 111))
        assert report.complete
        assert "5 consecutive empty" in report.stop_reason

    def test_empty_counter_resets_on_found_height(self, memory_db, layout):
        # gaps of 2 never reach a limit of 3
        build_chain(memory_db, layout, [1, 4, 7, 10])
        walker = ChainWalker(memory_db, layout, max_consecutive_empty=3)
        entries, _ = walker.above_window_scan(0)
        assert heights(entries) == [1, 4, 7, 10]

    def test_gap_at_limit_stops_scan(self, memory_db, layout):
        build_chain(memory_db, layout, [1, 5])
        walker = ChainWalker(memory_db, layout, max_consecutive_empty=3)
        entries, _ = walker.above_window_scan(0)
        assert heights(entries) == [1]

    def test_nothing_above_window(self, chain_db, layout):
        db, _ = chain_db
        entries, report = ChainWalker(db, layout).above_window_scan(110)
        assert entries == []
        assert report.complete


class TestGenesisWalk:
    def test_walks_back_to_genesis(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, range(0, 100, 10))
        entries, report = ChainWalker(memory_db, layout).genesis_walk(hashes[90])

        assert heights(entries) == [90, 80, 70, 60, 50, 40, 30, 20, 10, 0]
        assert report.complete
        assert report.stop_reason == "reached genesis"

    def test_missing_reference_stops_walk(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, range(0, 100, 10), missing=[40])
        entries, report = ChainWalker(memory_db, layout).genesis_walk(hashes[90])

        assert heights(entries) == [90, 80, 70, 60, 50]
        assert not report.complete
        assert report.last_height == 50
        assert hashes[40].hex() in report.stop_reason

    def test_max_chain_entries(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, range(0, 20))
        walker = ChainWalker(memory_db, layout, max_chain_entries=5)
        entries, report = walker.genesis_walk(hashes[19])

        assert heights(entries) == [19, 18, 17, 16, 15]
        assert report.complete
        assert "5 entries" in report.stop_reason

    def test_stops_at_genesis_sentinel_above_zero(self, chain_db, layout):
        db, hashes = chain_db
        entries, _ = ChainWalker(db, layout).genesis_walk(hashes[90])
        assert heights(entries) == list(range(90, 79, -1))

    def test_undecodable_reference_stops_walk(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, range(0, 30, 10))
        memory_db.column_family(layout.entry).put_batch([(hashes[10], b"junk")])
        entries, report = ChainWalker(memory_db, layout).genesis_walk(hashes[20])

        assert heights(entries) == [20]
        assert report.terminated.height == 20
        assert "undecodable" in report.stop_reason

    def test_missing_start_entry(self, memory_db, layout):
        entries, report = ChainWalker(memory_db, layout).genesis_walk(b"\x01" * 32)
        assert entries == []
        assert not report.complete


class TestWalk:
    def test_full_walk(self, chain_db, layout):
        db, hashes = chain_db
        window = MigrationWindow(temporal_height=100, rooted_height=90, rooted_tip=hashes[90])
        result = ChainWalker(db, layout).walk(window)

        assert heights(result.window) == list(range(90, 101))
        assert heights(result.above_window) == list(range(101, 111))
        assert heights(result.genesis_chain) == list(range(90, 79, -1))
        assert [r.phase for r in result.reports] == [
            WINDOW_PHASE,
            ABOVE_WINDOW_PHASE,
            GENESIS_PHASE,
        ]

    def test_dependent_hashes_exclude_genesis_walk(self, chain_db, layout):
        db, hashes = chain_db
        window = MigrationWindow(100, 90, hashes[90])
        result = ChainWalker(db, layout).walk(window)

        assert result.dependent_hashes == [hashes[h] for h in range(90, 111)]
        assert hashes[85] not in result.dependent_hashes

    def test_missing_store_raises(self, layout):
        db = MemoryDatabase([layout.entry])
        with pytest.raises(MissingStoreError):
            ChainWalker(db, layout)


class TestFindWindow:
    def test_reads_window_from_sysconf(self, chain_db, layout):
        db, hashes = chain_db
        window = find_window(db, layout)
        assert window == MigrationWindow(100, 90, hashes[90])

    def test_ascii_temporal_height(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, [3, 4])
        memory_db.column_family(layout.sysconf).put_batch(
            [(TEMPORAL_HEIGHT_KEY, b"4"), (ROOTED_TIP_KEY, hashes[3])]
        )
        assert find_window(memory_db, layout) == MigrationWindow(4, 3, hashes[3])

    def test_encoded_rooted_tip(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, [3])
        memory_db.column_family(layout.sysconf).put_batch(
            [
                (TEMPORAL_HEIGHT_KEY, encode_safe(integer(3))),
                (ROOTED_TIP_KEY, encode_safe(Binary(hashes[3]))),
            ]
        )
        assert find_window(memory_db, layout).rooted_tip == hashes[3]

    def test_missing_temporal_height(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, [3])
        memory_db.column_family(layout.sysconf).put_batch([(ROOTED_TIP_KEY, hashes[3])])
        with pytest.raises(ChainStateError, match="temporal_height"):
            find_window(memory_db, layout)

    def test_missing_rooted_tip(self, memory_db, layout):
        memory_db.column_family(layout.sysconf).put_batch(
            [(TEMPORAL_HEIGHT_KEY, encode_safe(integer(3)))]
        )
        with pytest.raises(ChainStateError, match="rooted_tip"):
            find_window(memory_db, layout)

    def test_unresolvable_rooted_tip(self, memory_db, layout):
        write_tips(memory_db, layout, 3, b"\x07" * 32)
        with pytest.raises(ChainStateError, match="missing or undecodable"):
            find_window(memory_db, layout)

    def test_inverted_window(self, memory_db, layout):
        hashes = build_chain(memory_db, layout, [10])
        write_tips(memory_db, layout, 5, hashes[10])
        with pytest.raises(ChainStateError, match="below"):
            find_window(memory_db, layout)


class TestReadChainTips:
    def test_reads_all_tips(self, chain_db, layout):
        db, hashes = chain_db
        tips = read_chain_tips(db, layout)
        assert tips.temporal_height == 100
        assert tips.temporal_tip == hashes[100]
        assert tips.rooted_tip == hashes[90]
        assert tips.rooted_height == 90

    def test_undecodable_rooted_tip_has_no_height(self, memory_db, layout):
        rooted_tip = b"\x05" * 32
        memory_db.column_family(layout.entry).put_batch([(rooted_tip, b"junk")])
        write_tips(memory_db, layout, 10, rooted_tip)

        tips = read_chain_tips(memory_db, layout)
        assert tips.rooted_tip == rooted_tip
        assert tips.rooted_height is None

    def test_missing_records_are_none(self, memory_db, layout):
        tips = read_chain_tips(memory_db, layout)
        assert tips.temporal_height is None
        assert tips.rooted_tip is None
        assert tips.rooted_height is None
