"""Server based drivers: PostgreSQL and MySQL.

Databases are created, listed and dropped through SQLAlchemy on an
administrative connection.  Pre-data imports and snapshots are plain SQL
files driven through the engine's own client tools (``psql`` / ``pg_dump``,
``mysql`` / ``mysqldump``), invoked with :func:`subprocess.run` and explicit
timeouts so failures surface as :class:`BuildError` with a readable message.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError

from scenario_engine.config import DriverName
from scenario_engine.errors import BuildError, ConfigError
from scenario_engine.models.resolved import ResolvedSettings

logger = logging.getLogger(__name__)

_SUBPROCESS_TIMEOUT = 600  # seconds


def _run_client(
    cmd: list[str],
    *,
    env: dict[str, str],
    stdin_path: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a database client tool and return the completed process.

    Raises
    ------
    BuildError
        On non-zero exit, timeout, or if the executable cannot be started.
    """
    display = " ".join(cmd)
    try:
        if stdin_path is not None:
            with stdin_path.open("r", encoding="utf-8") as fh:
                return subprocess.run(
                    cmd,
                    stdin=fh,
                    env=env,
                    capture_output=True,
                    text=True,
                    check=True,
                    timeout=_SUBPROCESS_TIMEOUT,
                )
        return subprocess.run(
            cmd,
            env=env,
            capture_output=True,
            text=True,
            check=True,
            timeout=_SUBPROCESS_TIMEOUT,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise BuildError(f"Command failed: {display}\nExit code {exc.returncode}: {stderr}") from exc
    except subprocess.TimeoutExpired as exc:
        raise BuildError(f"Command timed out after {_SUBPROCESS_TIMEOUT}s: {display}") from exc
    except FileNotFoundError as exc:
        raise BuildError(f"{cmd[0]} executable not found. Ensure it is installed and on PATH.") from exc
    except OSError as exc:
        raise BuildError(f"Could not run {display}: {exc}") from exc


class _ServerDriver:
    """Shared implementation for drivers that talk to a database server."""

    name: DriverName
    # DBAPI used when database_url names only the dialect.
    dbapi: str
    snapshot_extension = "sql"
    supports_reuse = True
    supports_snapshots = True
    supports_journal = False
    supports_remote_build = True

    def __init__(self, settings: ResolvedSettings) -> None:
        if not settings.database_url:
            raise ConfigError(f"The {self.name.value} driver needs database_url to reach the server")
        self._settings = settings
        url = make_url(settings.database_url)
        if "+" not in url.drivername:
            url = url.set(drivername=f"{url.drivername}+{self.dbapi}")
        self._server_url: URL = url
        self._database_prefix = settings.database_prefix
        self._database_modifier = settings.database_modifier
        self._engines: dict[str, Engine] = {}
        self._admin: Engine | None = None

    # -- Naming --------------------------------------------------------------

    def database_stem(self, orig_database: str) -> str:
        return orig_database

    def scenario_database_name(self, orig_database: str, name_part: str) -> str:
        return f"{self._database_prefix}{orig_database}_{name_part}{self._database_modifier}"

    def original_database_name(self, orig_database: str) -> str:
        return orig_database

    # -- Connections ---------------------------------------------------------

    def url(self, database: str) -> str:
        return self._server_url.set(database=database).render_as_string(hide_password=False)

    def engine(self, database: str) -> Engine:
        engine = self._engines.get(database)
        if engine is None:
            engine = create_engine(self._server_url.set(database=database), echo=False, pool_pre_ping=True)
            self._engines[database] = engine
        return engine

    def _admin_engine(self) -> Engine:
        if self._admin is None:
            self._admin = create_engine(
                self._server_url.set(database=self._admin_database()),
                isolation_level="AUTOCOMMIT",
                echo=False,
            )
        return self._admin

    def _admin_database(self) -> str | None:
        return None

    def dispose(self, database: str | None = None) -> None:
        targets = [database] if database is not None else list(self._engines)
        for name in targets:
            engine = self._engines.pop(name, None)
            if engine is not None:
                engine.dispose()
        if database is None and self._admin is not None:
            self._admin.dispose()
            self._admin = None

    def modified_at(self, database: str) -> datetime | None:
        # Neither server records when a database last changed.
        return None

    def _quote(self, database: str) -> str:
        return self._admin_engine().dialect.identifier_preparer.quote(database)

    def _admin_execute(self, sql: str, **params: object) -> list[tuple]:
        try:
            with self._admin_engine().connect() as conn:
                result = conn.execute(text(sql), params)
                return [tuple(row) for row in result] if result.returns_rows else []
        except SQLAlchemyError as exc:
            raise BuildError(f"{self.name.value} server statement failed: {exc}") from exc

    # -- Lifecycle -----------------------------------------------------------

    def create_database(self, database: str) -> None:
        self._admin_execute(f"CREATE DATABASE {self._quote(database)}")

    def drop_database(self, database: str) -> None:
        self.dispose(database)
        self._admin_execute(f"DROP DATABASE IF EXISTS {self._quote(database)}")
        logger.debug("Dropped %s database %s", self.name.value, database)

    def export_snapshot(self, database: str, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=path.suffix)
        os.close(fd)
        try:
            _run_client(self._dump_command(database, Path(tmp_name)), env=self._client_env())
            os.replace(tmp_name, path)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def import_snapshot(self, database: str, path: Path) -> None:
        self.import_file(database, path)

    def import_file(self, database: str, path: Path) -> None:
        self.dispose(database)
        _run_client(self._load_command(database, path), env=self._client_env(), stdin_path=path)

    # -- Engine specific hooks -------------------------------------------------

    def _client_env(self) -> dict[str, str]:
        return dict(os.environ)

    def _load_command(self, database: str, path: Path) -> list[str]:
        raise NotImplementedError

    def _dump_command(self, database: str, path: Path) -> list[str]:
        raise NotImplementedError


class PostgresDriver(_ServerDriver):
    """PostgreSQL databases reached through ``database_url``."""

    name = DriverName.POSTGRESQL
    dbapi = "psycopg"

    def _admin_database(self) -> str | None:
        return "postgres"

    def database_exists(self, database: str) -> bool:
        rows = self._admin_execute("SELECT 1 FROM pg_database WHERE datname = :name", name=database)
        return bool(rows)

    def list_databases(self) -> list[str]:
        rows = self._admin_execute(
            "SELECT datname FROM pg_database WHERE NOT datistemplate ORDER BY datname"
        )
        # LIKE would treat the "_" in the usual prefix as a wildcard.
        return [row[0] for row in rows if row[0].startswith(self._database_prefix)]

    def size(self, database: str) -> int | None:
        try:
            rows = self._admin_execute("SELECT pg_database_size(:name)", name=database)
        except BuildError:
            return None
        return int(rows[0][0]) if rows and rows[0][0] is not None else None

    def _client_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self._server_url.password:
            env["PGPASSWORD"] = str(self._server_url.password)
        return env

    def _connection_args(self) -> list[str]:
        args = []
        if self._server_url.host:
            args += ["--host", self._server_url.host]
        if self._server_url.port:
            args += ["--port", str(self._server_url.port)]
        if self._server_url.username:
            args += ["--username", self._server_url.username]
        return args

    def _load_command(self, database: str, path: Path) -> list[str]:
        return [
            self._settings.psql_executable,
            "--quiet",
            "--no-psqlrc",
            "--set",
            "ON_ERROR_STOP=1",
            *self._connection_args(),
            "--dbname",
            database,
        ]

    def _dump_command(self, database: str, path: Path) -> list[str]:
        return [
            self._settings.pg_dump_executable,
            "--no-owner",
            "--no-privileges",
            *self._connection_args(),
            "--dbname",
            database,
            "--file",
            str(path),
        ]


class MySQLDriver(_ServerDriver):
    """MySQL / MariaDB databases reached through ``database_url``."""

    name = DriverName.MYSQL
    dbapi = "pymysql"

    def database_exists(self, database: str) -> bool:
        rows = self._admin_execute(
            "SELECT SCHEMA_NAME FROM information_schema.SCHEMATA WHERE SCHEMA_NAME = :name",
            name=database,
        )
        return bool(rows)

    def list_databases(self) -> list[str]:
        rows = self._admin_execute(
            "SELECT SCHEMA_NAME FROM information_schema.SCHEMATA ORDER BY SCHEMA_NAME"
        )
        # LIKE would treat the "_" in the usual prefix as a wildcard.
        return [row[0] for row in rows if row[0].startswith(self._database_prefix)]

    def size(self, database: str) -> int | None:
        try:
            rows = self._admin_execute(
                "SELECT SUM(data_length + index_length) FROM information_schema.TABLES WHERE table_schema = :name",
                name=database,
            )
        except BuildError:
            return None
        return int(rows[0][0]) if rows and rows[0][0] is not None else None

    def _client_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self._server_url.password:
            env["MYSQL_PWD"] = str(self._server_url.password)
        return env

    def _connection_args(self) -> list[str]:
        args = []
        if self._server_url.host:
            args.append(f"--host={self._server_url.host}")
        if self._server_url.port:
            args.append(f"--port={self._server_url.port}")
        if self._server_url.username:
            args.append(f"--user={self._server_url.username}")
        return args

    def _load_command(self, database: str, path: Path) -> list[str]:
        return [self._settings.mysql_executable, *self._connection_args(), database]

    def _dump_command(self, database: str, path: Path) -> list[str]:
        return [
            self._settings.mysqldump_executable,
            *self._connection_args(),
            "--add-drop-table",
            "--skip-lock-tables",
            "--single-transaction",
            f"--result-file={path}",
            database,
        ]
