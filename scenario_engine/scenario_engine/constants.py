"""Names and versions shared by every scenariodb installation."""

from __future__ import annotations

# Reserved table holding the reuse metadata inside each built database.
REUSE_TABLE = "____scenariodb____"

# Bumped whenever the reuse table's structure or meaning changes.  Part of
# the build checksum, so a bump invalidates every cached database.
REUSE_TABLE_VERSION = "2"

# Tables used by the change journal.
JOURNAL_CHANGES_TABLE = "____scenariodb_journal____"
JOURNAL_SHADOW_PREFIX = "____scenariodb_shadow__"

# Remote building.
REMOTE_PROTOCOL_VERSION = 3
REMOTE_BUILD_PATH = "/__scenariodb__/remote-build"
BUILD_CHECKSUM_HEADER = "X-ScenarioDB-Build-Checksum"
REMOTE_MESSAGE_LIMIT = 200

# Files in the storage directory that are never databases or snapshots.
IGNORED_STORAGE_FILES = frozenset({".gitignore", "purge-lock"})
