#!/usr/bin/env python3
"""
Fabric database inspection and migration tool
"""

__version__ = "0.1.0"

from fabric_doctor.chain.metadata import extract_metadata, extract_prev_hash
from fabric_doctor.chain.walker import ChainWalker, MigrationSet
from fabric_doctor.codec import (
    decode,
    encode_native,
    encode_safe,
    encode_safe_deterministic,
)
from fabric_doctor.core.config import load_config
from fabric_doctor.core.migrator import FabricMigrator, MigrationMode
from fabric_doctor.core.replicator import Replicator
