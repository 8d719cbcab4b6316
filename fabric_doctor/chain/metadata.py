"""
Entry metadata extraction.

An entry record is a map with a ``header`` field. The header holds the
``height``, ``slot`` and ``prev_hash`` of the entry and may be stored either
already decoded or as a binary wrapping a second encoded map. The entry's
content hash is blake3 over the header's canonical bytes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from blake3 import blake3

from fabric_doctor.codec import Binary, Map, as_bytes, as_int, decode
from fabric_doctor.codec.encoder import encode_safe_deterministic
from fabric_doctor.constants import (
    GENESIS_PREV_HASH,
    HASH_FIELD,
    HASH_SIZE,
    HEADER_FIELD,
    HEIGHT_FIELD,
    PREV_HASH_FIELD,
    SLOT_FIELD,
)
from fabric_doctor.exceptions import DecodeError, EncodeError
from fabric_doctor.storage.base import ColumnFamily
from fabric_doctor.utils.logging import log_with_context


@dataclass(frozen=True)
class EntryMetadata:
    """Fields of an entry the chain walker needs."""

    height: int
    slot: int
    content_hash: bytes
    prev_hash: Optional[bytes] = None
    stored_hash: Optional[bytes] = None


@dataclass(frozen=True)
class HashCheck:
    """Outcome of recomputing one entry's content hash."""

    key: bytes
    stored_hash: Optional[bytes]
    computed_hash: Optional[bytes]
    matches: bool
    error: Optional[str] = None


def _split_header(entry_bytes: bytes) -> tuple[Map, Map, bytes]:
    """
    Decode an entry and return ``(entry, header, hash_input)``.

    ``hash_input`` is the byte string the content hash is computed over.
    """
    entry = decode(entry_bytes)
    if not isinstance(entry, Map):
        raise DecodeError(f"Entry is a {type(entry).__name__}, expected a map")

    header = entry.get_field(HEADER_FIELD)
    if isinstance(header, Binary):
        hash_input = header.data
        header = decode(hash_input)
        if not isinstance(header, Map):
            raise DecodeError(
                f"Embedded header is a {type(header).__name__}, expected a map"
            )
    elif isinstance(header, Map):
        hash_input = encode_safe_deterministic(header)
    else:
        raise DecodeError("Entry has no header field")

    return entry, header, hash_input


def _prev_hash(header: Map) -> Optional[bytes]:
    value = as_bytes(header.get_field(PREV_HASH_FIELD))
    if value is None or len(value) != HASH_SIZE:
        return None
    return value


def content_hash(data: bytes) -> bytes:
    return blake3(data).digest()


def extract_metadata(entry_bytes: bytes) -> Optional[EntryMetadata]:
    """
    Pull height, slot and content hash out of an encoded entry.

    Args:
        entry_bytes: Raw value from the entry store

    Returns:
        EntryMetadata, or None when the entry can't be decoded or lacks an
        integer height or slot
    """
    try:
        entry, header, hash_input = _split_header(entry_bytes)
    except (DecodeError, EncodeError) as e:
        log_with_context(logging.DEBUG, f"Entry metadata unavailable: {e}")
        return None

    height = as_int(header.get_field(HEIGHT_FIELD))
    slot = as_int(header.get_field(SLOT_FIELD))
    if height is None or slot is None:
        log_with_context(
            logging.DEBUG,
            "Entry header is missing an integer height or slot",
            height=height,
        )
        return None

    return EntryMetadata(
        height=height,
        slot=slot,
        content_hash=content_hash(hash_input),
        prev_hash=_prev_hash(header),
        stored_hash=as_bytes(entry.get_field(HASH_FIELD)),
    )


def extract_prev_hash(entry_bytes: bytes) -> Optional[bytes]:
    """Return the entry's 32-byte prev_hash, or None if absent or malformed."""
    try:
        _, header, _ = _split_header(entry_bytes)
    except (DecodeError, EncodeError) as e:
        log_with_context(logging.DEBUG, f"prev_hash unavailable: {e}")
        return None
    return _prev_hash(header)


def is_genesis_hash(value: Optional[bytes]) -> bool:
    return value == GENESIS_PREV_HASH


def load_metadata(
    entry_hash: bytes, entries: ColumnFamily
) -> tuple[Optional[bytes], Optional[EntryMetadata]]:
    """
    Fetch the entry stored under ``entry_hash`` and read its metadata.

    Returns ``(None, None)`` when the entry is absent and
    ``(entry_bytes, None)`` when it can't be decoded.
    """
    entry_bytes = entries.get(entry_hash)
    if entry_bytes is None:
        return None, None
    return entry_bytes, extract_metadata(entry_bytes)


def resolve_height(prev_hash: bytes, entries: ColumnFamily) -> Optional[int]:
    """
    Resolve the height of the entry ``prev_hash`` points at.

    The all-zero sentinel resolves to height 0 without a lookup. Returns None
    when the referenced entry is absent or has no readable height.
    """
    if is_genesis_hash(prev_hash):
        return 0
    _, metadata = load_metadata(prev_hash, entries)
    return metadata.height if metadata else None


def verify_entry_hash(key: bytes, entry_bytes: bytes) -> HashCheck:
    """
    Recompute an entry's content hash and compare it with its stored hash.

    Failures are reported on the returned HashCheck rather than raised, so a
    self-test can run over many entries and report each one.
    """
    try:
        entry, _, hash_input = _split_header(entry_bytes)
    except (DecodeError, EncodeError) as e:
        return HashCheck(key, None, None, False, error=str(e))

    stored = as_bytes(entry.get_field(HASH_FIELD))
    computed = content_hash(hash_input)
    if stored is None:
        return HashCheck(key, None, computed, False, error="Entry has no hash field")
    return HashCheck(key, stored, computed, stored == computed)
