"""Result store backends for genome association runs."""

from .base import ResultStore, normalize_key
from .duckdb_store import DuckDBResultStore, read_parquet, write_parquet

__all__ = [
    "ResultStore",
    "DuckDBResultStore",
    "normalize_key",
    "read_parquet",
    "write_parquet",
]
