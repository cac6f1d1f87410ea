"""Base class for consolidated result stores."""

from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd


class ResultStore(ABC):
    """Keyed table store addressed by slash-separated paths such as ``/genomes/manifest``."""

    @abstractmethod
    def write(self, key: str, frame: pd.DataFrame, schema: dict[str, str] | None = None) -> None:
        """Create or replace the table stored under ``key``."""

    @abstractmethod
    def read(self, key: str) -> pd.DataFrame:
        """Return the table stored under ``key``."""

    @abstractmethod
    def keys(self, prefix: str | None = None) -> list[str]:
        """Return sorted keys, optionally restricted to those under ``prefix``."""

    def create_index(self, key: str, columns: tuple[str, ...]) -> None:
        """Make ``columns`` of the table under ``key`` efficiently queryable.

        Backends without secondary indexes may leave this as a no-op.
        """

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and normalize_key(key) in self.keys()


def normalize_key(key: str) -> str:
    """Return ``key`` with a single leading slash and no trailing slash."""

    cleaned = "/" + key.strip().strip("/")
    if cleaned == "/" or "//" in cleaned:
        raise ValueError(f"Invalid store key: {key!r}")
    return cleaned
