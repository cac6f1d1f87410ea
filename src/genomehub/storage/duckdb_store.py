"""DuckDB result store with portable Parquet export."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

import duckdb
import pandas as pd

from genomehub.storage.base import ResultStore, normalize_key


_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_CATALOG_TABLE = "store_catalog"


def _quote_identifier(name: str) -> str:
    return '"' + str(name).replace('"', '""') + '"'


def _quote_path(path: Path) -> str:
    return path.as_posix().replace("'", "''")


def _create_table(
    connection: duckdb.DuckDBPyConnection,
    table_name: str,
    frame: pd.DataFrame,
    schema: dict[str, str] | None,
) -> None:
    """Materialise ``frame`` as ``table_name``; empty frames use ``schema`` types."""

    if not _TABLE_RE.match(table_name):
        raise ValueError(f"Unsafe table name: {table_name}")

    if frame.empty:
        column_types = schema or {str(column): "VARCHAR" for column in frame.columns}
        if not column_types:
            raise ValueError(f"Cannot create table {table_name} without columns")
        columns = ", ".join(
            f"{_quote_identifier(column)} {column_type}" for column, column_type in column_types.items()
        )
        connection.execute(f"CREATE OR REPLACE TABLE {table_name} ({columns})")
        return

    connection.register("staged_frame", frame)
    try:
        connection.execute(f"CREATE OR REPLACE TABLE {table_name} AS SELECT * FROM staged_frame")
    finally:
        connection.unregister("staged_frame")


def write_parquet(frame: pd.DataFrame, path: str | Path, schema: dict[str, str] | None = None) -> Path:
    """Write ``frame`` to a Parquet file through an in-memory DuckDB connection."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        target.unlink()

    connection = duckdb.connect()
    try:
        _create_table(connection, "parquet_export", frame, schema)
        connection.execute(f"COPY parquet_export TO '{_quote_path(target)}' (FORMAT PARQUET)")
    finally:
        connection.close()
    return target


def read_parquet(path: str | Path) -> pd.DataFrame:
    """Read a Parquet file written by :func:`write_parquet`."""

    source = Path(path)
    connection = duckdb.connect()
    try:
        return connection.execute(f"SELECT * FROM read_parquet('{_quote_path(source)}')").df()
    finally:
        connection.close()


class DuckDBResultStore(ResultStore):
    """Persist keyed result tables in one DuckDB database file.

    Keys are slash paths; each maps to a generated table name recorded in the
    ``store_catalog`` table so arbitrary parameter and genome ids can be used
    in keys without becoming SQL identifiers.
    """

    def __init__(self, db_path: str | Path, *, read_only: bool = False) -> None:
        self.db_path = Path(db_path)
        self.read_only = read_only
        if not read_only:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = duckdb.connect(str(self.db_path), read_only=read_only)
        self._closed = False
        if not read_only:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {_CATALOG_TABLE} "
                "(key VARCHAR, table_name VARCHAR, n_rows BIGINT)"
            )

    def __enter__(self) -> "DuckDBResultStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._connection.close()
        self._closed = True

    @staticmethod
    def table_name_for(key: str) -> str:
        digest = hashlib.sha1(normalize_key(key).encode("utf-8")).hexdigest()[:20]
        return f"t_{digest}"

    def write(self, key: str, frame: pd.DataFrame, schema: dict[str, str] | None = None) -> None:
        if self.read_only:
            raise RuntimeError(f"Store opened read-only: {self.db_path}")

        key = normalize_key(key)
        table_name = self.table_name_for(key)
        # An index on the old table blocks CREATE OR REPLACE.
        self._connection.execute(f"DROP INDEX IF EXISTS idx_{table_name}")
        _create_table(self._connection, table_name, frame, schema)
        self._connection.execute(f"DELETE FROM {_CATALOG_TABLE} WHERE key = ?", [key])
        self._connection.execute(
            f"INSERT INTO {_CATALOG_TABLE} VALUES (?, ?, ?)",
            [key, table_name, len(frame)],
        )

    def read(self, key: str) -> pd.DataFrame:
        table_name = self._lookup(key)
        return self._connection.execute(f"SELECT * FROM {table_name}").df()

    def keys(self, prefix: str | None = None) -> list[str]:
        if not self._has_catalog():
            return []
        rows = self._connection.execute(f"SELECT key FROM {_CATALOG_TABLE} ORDER BY key").fetchall()
        keys = [str(row[0]) for row in rows]
        if prefix is None:
            return keys
        root = normalize_key(prefix)
        return [key for key in keys if key == root or key.startswith(root + "/")]

    def create_index(self, key: str, columns: tuple[str, ...]) -> None:
        """Create a DuckDB index over ``columns`` of the table under ``key``."""

        table_name = self._lookup(key)
        index_name = f"idx_{table_name}"
        quoted = ", ".join(_quote_identifier(column) for column in columns)
        self._connection.execute(f"DROP INDEX IF EXISTS {index_name}")
        self._connection.execute(f"CREATE INDEX {index_name} ON {table_name} ({quoted})")

    def export_parquet(self, directory: str | Path) -> list[Path]:
        """Copy every table to ``directory/<key>.parquet``."""

        root = Path(directory)
        written: list[Path] = []
        for key in self.keys():
            target = root / f"{key.lstrip('/')}.parquet"
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                target.unlink()
            self._connection.execute(
                f"COPY {self._lookup(key)} TO '{_quote_path(target)}' (FORMAT PARQUET)"
            )
            written.append(target)
        return written

    def _has_catalog(self) -> bool:
        count_query = (
            "SELECT COUNT(*) FROM information_schema.tables "
            "WHERE lower(table_name) = lower(?)"
        )
        return int(self._connection.execute(count_query, [_CATALOG_TABLE]).fetchone()[0]) > 0

    def _lookup(self, key: str) -> str:
        key = normalize_key(key)
        row = None
        if self._has_catalog():
            row = self._connection.execute(
                f"SELECT table_name FROM {_CATALOG_TABLE} WHERE key = ?", [key]
            ).fetchone()
        if row is None:
            raise KeyError(f"No table stored under key: {key}")
        return str(row[0])
