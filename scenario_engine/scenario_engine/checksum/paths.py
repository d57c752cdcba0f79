"""Path resolution and content hashing for build-affecting files."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from scenario_engine.errors import ConfigError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


def resolve_path(path: str | Path, base_path: Path) -> Path:
    """Return *path* as an absolute path, relative paths anchored at *base_path*."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = base_path / candidate
    return candidate.resolve()


def files_in_dir(directory: Path) -> list[Path]:
    """List every file below *directory*, sorted so callers see a stable order."""
    return sorted(p for p in directory.rglob("*") if p.is_file())


def collect_files(
    paths: list[str],
    base_path: Path,
    *,
    dir_allowed: bool,
    kind: str,
) -> list[Path]:
    """Expand *paths* into the files they name.

    Raises
    ------
    ConfigError
        If a path does not exist, or is a directory when *dir_allowed* is
        false.
    """
    collected: list[Path] = []
    for raw in paths:
        resolved = resolve_path(raw, base_path)
        if not resolved.exists():
            raise ConfigError.path_missing(str(raw), kind)
        if resolved.is_file():
            collected.append(resolved)
            continue
        if not dir_allowed:
            raise ConfigError.directory_not_allowed(str(raw), kind)
        collected.extend(files_in_dir(resolved))
    return collected


def relative_key(path: Path, base_path: Path) -> str:
    """Key used for *path* inside the checksum payload.

    Paths under the project root are stored relative to it so that two
    checkouts of the same project in different places agree.
    """
    try:
        return path.relative_to(base_path.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def file_checksum(path: Path) -> str:
    """SHA-256 hex digest of a file's contents, read in chunks."""
    hasher = hashlib.sha256()
    try:
        with path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                hasher.update(chunk)
    except OSError as exc:
        raise ConfigError(f"Could not read {path} to generate its checksum: {exc}") from exc
    return hasher.hexdigest()
