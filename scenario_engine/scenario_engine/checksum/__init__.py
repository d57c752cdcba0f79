"""Scenario fingerprinting."""

from scenario_engine.checksum.hasher import ChecksumEngine, canonical_digest, join_name_parts
from scenario_engine.checksum.paths import collect_files, file_checksum

__all__ = [
    "ChecksumEngine",
    "canonical_digest",
    "collect_files",
    "file_checksum",
    "join_name_parts",
]
