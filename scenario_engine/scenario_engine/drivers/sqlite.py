"""SQLite driver: every database is a file in the storage directory.

Snapshots and pre-data imports of SQLite database files are plain file
copies; ``.sql`` imports are executed as scripts.  Copies are written to a
temporary file next to the target and moved into place, so a concurrent
reader never sees a half-written file.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import Engine, create_engine, event, inspect

from scenario_engine.config import DriverName
from scenario_engine.constants import IGNORED_STORAGE_FILES
from scenario_engine.errors import BuildError
from scenario_engine.models.resolved import ResolvedSettings

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"
_SQL_SUFFIXES = frozenset({".sql"})


class SQLiteDriver:
    """File based driver implementing :class:`DatabaseDriver`."""

    name = DriverName.SQLITE
    snapshot_extension = "sqlite"
    supports_snapshots = True
    supports_journal = True

    def __init__(self, settings: ResolvedSettings) -> None:
        self._base_path = Path(settings.base_path)
        self._storage_dir = self._anchor(settings.storage_dir)
        self._database_prefix = settings.database_prefix
        self._database_modifier = settings.database_modifier
        self._snapshot_prefix = settings.snapshot_prefix
        self._in_memory = settings.database == _MEMORY
        self._engines: dict[str, Engine] = {}

    @property
    def supports_reuse(self) -> bool:
        return not self._in_memory

    @property
    def supports_remote_build(self) -> bool:
        # The caller opens the file the remote side built, so it must exist on disk.
        return not self._in_memory

    @property
    def storage_dir(self) -> Path:
        return self._storage_dir

    def _anchor(self, path: str | Path) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self._base_path / candidate
        return candidate

    def _path(self, database: str) -> Path:
        return self._anchor(database)

    # -- Naming --------------------------------------------------------------

    def database_stem(self, orig_database: str) -> str:
        return Path(orig_database).stem

    def scenario_database_name(self, orig_database: str, name_part: str) -> str:
        stem = self.database_stem(orig_database)
        filename = f"{self._database_prefix}{stem}_{name_part}{self._database_modifier}.sqlite"
        return str(self._storage_dir / filename)

    def original_database_name(self, orig_database: str) -> str:
        if orig_database == _MEMORY:
            return orig_database
        return str(self._path(orig_database))

    # -- Connections ---------------------------------------------------------

    def url(self, database: str) -> str:
        if database == _MEMORY:
            return "sqlite:///:memory:"
        return f"sqlite:///{self._path(database)}"

    def engine(self, database: str) -> Engine:
        engine = self._engines.get(database)
        if engine is None:
            engine = create_engine(self.url(database), echo=False)

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragmas(dbapi_conn: object, _: object) -> None:
                cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            self._engines[database] = engine
        return engine

    def dispose(self, database: str | None = None) -> None:
        targets = [database] if database is not None else list(self._engines)
        for name in targets:
            engine = self._engines.pop(name, None)
            if engine is not None:
                engine.dispose()

    # -- Lifecycle -----------------------------------------------------------

    def database_exists(self, database: str) -> bool:
        if database == _MEMORY:
            return False
        return self._path(database).is_file()

    def create_database(self, database: str) -> None:
        if database == _MEMORY:
            return
        path = self._path(database)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch()
        except OSError as exc:
            raise BuildError(f"Could not create SQLite database {path}: {exc}") from exc

    def drop_database(self, database: str) -> None:
        if database == _MEMORY:
            return
        self.dispose(database)
        path = self._path(database)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise BuildError(f"Could not remove SQLite database {path}: {exc}") from exc
        logger.debug("Removed SQLite database %s", path)

    # -- Imports and snapshots -----------------------------------------------

    def import_file(self, database: str, path: Path) -> None:
        if path.suffix.lower() in _SQL_SUFFIXES:
            self._execute_script(database, path)
            return
        if self.table_names(database):
            raise BuildError(
                f"The SQLite import {path} replaces the whole database, so it must be the first import"
            )
        self._copy_into_place(path, self._path(database), database)

    def _execute_script(self, database: str, path: Path) -> None:
        try:
            script = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise BuildError(f"Could not read import file {path}: {exc}") from exc

        raw = self.engine(database).raw_connection()
        try:
            raw.driver_connection.executescript(script)  # type: ignore[union-attr]
            raw.commit()
        except Exception as exc:
            raise BuildError(f"Import of {path} into {database} failed: {exc}") from exc
        finally:
            raw.close()

    def export_snapshot(self, database: str, path: Path) -> None:
        self._copy_into_place(self._path(database), path, database)

    def import_snapshot(self, database: str, path: Path) -> None:
        self._copy_into_place(path, self._path(database), database)

    def _copy_into_place(self, source: Path, target: Path, database: str) -> None:
        self.dispose(database)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=target.suffix)
            os.close(fd)
            try:
                shutil.copyfile(source, tmp_name)
                os.replace(tmp_name, target)
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
        except OSError as exc:
            raise BuildError(f"Could not copy {source} to {target}: {exc}") from exc

    # -- Introspection -------------------------------------------------------

    def table_names(self, database: str) -> list[str]:
        return inspect(self.engine(database)).get_table_names()

    def list_databases(self) -> list[str]:
        if not self._storage_dir.is_dir():
            return []
        databases = []
        for path in sorted(self._storage_dir.iterdir()):
            if not path.is_file() or path.name in IGNORED_STORAGE_FILES:
                continue
            if path.name.startswith(self._snapshot_prefix) or path.name.startswith(".tmp-"):
                continue
            if path.suffix == ".sqlite":
                databases.append(str(path))
        return databases

    def size(self, database: str) -> int | None:
        try:
            return self._path(database).stat().st_size
        except OSError:
            return None

    def modified_at(self, database: str) -> datetime | None:
        try:
            mtime = self._path(database).stat().st_mtime
        except OSError:
            return None
        return datetime.fromtimestamp(mtime, tz=UTC)
