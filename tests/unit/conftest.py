"""Unit test configuration and chain data builders."""

from __future__ import annotations

from typing import Iterable

import pytest
from blake3 import blake3

from fabric_doctor.chain.walker import height_index_key, slot_index_key
from fabric_doctor.codec import Atom, Binary, Map, encode_safe, integer
from fabric_doctor.codec.encoder import encode_safe_deterministic
from fabric_doctor.constants import (
    GENESIS_PREV_HASH,
    ROOTED_TIP_KEY,
    TEMPORAL_HEIGHT_KEY,
    TEMPORAL_TIP_KEY,
)
from fabric_doctor.storage.memory import MemoryDatabase

# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------


def make_header(height: int, slot: int, prev_hash: bytes = GENESIS_PREV_HASH) -> Map:
    return Map.from_dict(
        {
            Atom("height"): integer(height),
            Atom("slot"): integer(slot),
            Atom("prev_hash"): Binary(prev_hash),
        }
    )


def make_entry(
    height: int,
    slot: int | None = None,
    prev_hash: bytes = GENESIS_PREV_HASH,
    embedded: bool = True,
    stored_hash: bytes | None = None,
) -> tuple[bytes, bytes]:
    """Build an encoded entry and return ``(content_hash, entry_bytes)``.

    With ``embedded`` the header is stored as a binary holding the encoded
    header map, otherwise the header map is stored directly.
    """
    slot = height * 2 if slot is None else slot
    header = make_header(height, slot, prev_hash)
    header_bytes = encode_safe_deterministic(header)
    content_hash = blake3(header_bytes).digest()

    entry = Map.from_dict(
        {
            Atom("header"): Binary(header_bytes) if embedded else header,
            Atom("hash"): Binary(stored_hash if stored_hash is not None else content_hash),
            Atom("txs"): Binary(b""),
        }
    )
    return content_hash, encode_safe(entry)


def build_chain(
    db: MemoryDatabase,
    layout,
    heights: Iterable[int],
    missing: Iterable[int] = (),
) -> dict[int, bytes]:
    """Write a linked chain of entries plus their height and slot indexes.

    Each entry's prev_hash points at the entry with the next lower height in
    ``heights``; the lowest points at the genesis sentinel. Heights listed in
    ``missing`` are indexed but their entry record is left out.

    Returns:
        height -> entry hash
    """
    missing = set(missing)
    hashes: dict[int, bytes] = {}
    prev = GENESIS_PREV_HASH

    for height in sorted(heights):
        slot = height * 2
        entry_hash, entry_bytes = make_entry(height, slot, prev)
        hashes[height] = entry_hash
        if height not in missing:
            db.column_family(layout.entry).put_batch([(entry_hash, entry_bytes)])
        db.column_family(layout.entry_by_height).put_batch(
            [(height_index_key(height, entry_hash), entry_hash)]
        )
        db.column_family(layout.entry_by_slot).put_batch(
            [(slot_index_key(slot, entry_hash), entry_hash)]
        )
        prev = entry_hash

    return hashes


def write_tips(
    db: MemoryDatabase,
    layout,
    temporal_height: int,
    rooted_tip: bytes,
    temporal_tip: bytes | None = None,
) -> None:
    records = [
        (TEMPORAL_HEIGHT_KEY, encode_safe(integer(temporal_height))),
        (ROOTED_TIP_KEY, rooted_tip),
    ]
    if temporal_tip is not None:
        records.append((TEMPORAL_TIP_KEY, temporal_tip))
    db.column_family(layout.sysconf).put_batch(records)


@pytest.fixture()
def chain_db(memory_db, layout):
    """Source database with entries at heights 80..110.

    temporal_height is 100 and the rooted tip is the entry at height 90.
    Returns ``(db, hashes)``.
    """
    hashes = build_chain(memory_db, layout, range(80, 111))
    write_tips(memory_db, layout, 100, hashes[90], temporal_tip=hashes[100])
    return memory_db, hashes
