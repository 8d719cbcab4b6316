"""Named constants shared across the fabric inspection and migration tool."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# External term format
# ---------------------------------------------------------------------------

VERSION_MARKER = 131

NEW_FLOAT_EXT = 70
BIT_BINARY_EXT = 77
SMALL_INTEGER_EXT = 97
INTEGER_EXT = 98
ATOM_EXT = 100
PORT_EXT = 102
PID_EXT = 103
SMALL_TUPLE_EXT = 104
LARGE_TUPLE_EXT = 105
NIL_EXT = 106
STRING_EXT = 107
LIST_EXT = 108
BINARY_EXT = 109
SMALL_BIG_EXT = 110
LARGE_BIG_EXT = 111
NEW_FUN_EXT = 112
EXPORT_EXT = 113
NEW_REFERENCE_EXT = 114
SMALL_ATOM_EXT = 115
MAP_EXT = 116
FUN_EXT = 117
ATOM_UTF8_EXT = 118
SMALL_ATOM_UTF8_EXT = 119

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------

HASH_SIZE = 32
GENESIS_PREV_HASH = bytes(HASH_SIZE)

# sysconf record keys
TEMPORAL_HEIGHT_KEY = b"temporal_height"
TEMPORAL_TIP_KEY = b"temporal_tip"
ROOTED_TIP_KEY = b"rooted_tip"
ROOTED_HEIGHT_KEY = b"rooted_height"

# Entry and header field names
HEADER_FIELD = "header"
HEIGHT_FIELD = "height"
SLOT_FIELD = "slot"
PREV_HASH_FIELD = "prev_hash"
HASH_FIELD = "hash"

# ---------------------------------------------------------------------------
# Heuristic cutoffs and storage ceilings (defaults for MigrationConfig)
# ---------------------------------------------------------------------------

DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_MAX_CONSECUTIVE_EMPTY = 5
DEFAULT_MAX_CHAIN_ENTRIES = 1000
DEFAULT_MAX_OPEN_FILES = 512
MAX_KEY_SIZE = 1024 * 1024
MAX_VALUE_SIZE = 256 * 1024 * 1024

# ---------------------------------------------------------------------------
# Column families
# ---------------------------------------------------------------------------

# Role -> column family name. Roles are what the code refers to; names are
# what the node writes on disk.
DEFAULT_COLUMN_FAMILIES: dict[str, str] = {
    "entry": "default",
    "entry_by_height": "entry_by_height|height:entryhash",
    "entry_by_slot": "entry_by_slot|slot:entryhash",
    "tx": "tx|txhash:entryhash",
    "tx_account_nonce": "tx_account_nonce|account:nonce->txhash",
    "tx_receiver_nonce": "tx_receiver_nonce|receiver:nonce->txhash",
    "my_seen_time_entry": "my_seen_time_entry|entryhash",
    "my_attestation_for_entry": "my_attestation_for_entry|entryhash",
    "consensus": "consensus",
    "consensus_by_entryhash": "consensus_by_entryhash|Map<mutationshash,consensus>",
    "contractstate": "contractstate",
    "muts": "muts",
    "muts_rev": "muts_rev",
    "sysconf": "sysconf",
}

# Known column family names per on-disk schema version. Used when a store's
# column families cannot be listed, and when creating a migration target.
COLUMN_FAMILY_TABLES: dict[int, tuple[str, ...]] = {
    1: tuple(DEFAULT_COLUMN_FAMILIES.values()),
}

CURRENT_SCHEMA_VERSION = 1

# Prefixes seen in contractstate keys, longest first
CONTRACTSTATE_KEY_PREFIXES = (
    "bic:epoch:emission_address:",
    "bic:epoch:solutions_count:",
    "bic:epoch:segment_vr_hash",
    "bic:contract:account:",
    "bic:epoch:trainers:",
    "bic:coin:balance:",
    "bic:base:nonce:",
    "bic:epoch:pop:",
    "bic:coin:",
    "bic:epoch:",
)

PUBLIC_KEY_SIZE = 48
