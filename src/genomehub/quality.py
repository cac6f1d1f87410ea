"""Validation helpers and diagnostics for genome association tables."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import pandas as pd


class ValidationError(ValueError):
    """Input data violates a contract the aggregation stages depend on.

    Raised for absent tables or columns, identifiers that do not resolve
    through a lookup map, and required filters that leave no rows.
    """


class AmbiguousMergeError(RuntimeError):
    """Raised instead of a warning when duplicate merge keys are not tolerated."""


@dataclass(frozen=True)
class ComputationAmbiguity:
    """Duplicate key observed while folding independently computed shards."""

    table_key: str
    key_columns: tuple[str, ...]
    key_values: tuple[str, ...]
    row_count: int
    sources: tuple[str, ...] = ()

    def describe(self) -> str:
        pairs = ", ".join(f"{col}={val}" for col, val in zip(self.key_columns, self.key_values))
        origin = f" from shards {', '.join(self.sources)}" if self.sources else ""
        return f"{self.table_key}: {self.row_count} rows share ({pairs}){origin}"


def require_columns(frame: pd.DataFrame, columns: Iterable[str], table_name: str) -> None:
    """Raise :class:`ValidationError` when ``frame`` lacks any of ``columns``."""

    missing = [column for column in columns if column not in frame.columns]
    if missing:
        raise ValidationError(
            f"{table_name} is missing required column(s): {', '.join(missing)}"
        )


def require_resolved(values: pd.Series, lookup: pd.Series | dict, what: str) -> None:
    """Raise :class:`ValidationError` when any of ``values`` is absent from ``lookup``."""

    keys = lookup.index if isinstance(lookup, pd.Series) else pd.Index(list(lookup))
    unresolved = pd.unique(values[~values.isin(keys)])
    if len(unresolved):
        preview = ", ".join(str(item) for item in unresolved[:5])
        more = f" (+{len(unresolved) - 5} more)" if len(unresolved) > 5 else ""
        raise ValidationError(f"{len(unresolved)} {what} id(s) do not resolve: {preview}{more}")


def find_duplicate_keys(
    frame: pd.DataFrame,
    key_columns: Sequence[str],
    *,
    table_key: str,
    source_column: str | None = None,
) -> list[ComputationAmbiguity]:
    """Report every key in ``key_columns`` that occurs on more than one row."""

    if frame.empty:
        return []

    duplicated = frame[frame.duplicated(subset=list(key_columns), keep=False)]
    issues: list[ComputationAmbiguity] = []
    for key_values, group in duplicated.groupby(list(key_columns), sort=True):
        if not isinstance(key_values, tuple):
            key_values = (key_values,)
        sources: tuple[str, ...] = ()
        if source_column is not None and source_column in group.columns:
            sources = tuple(sorted(str(item) for item in group[source_column].unique()))
        issues.append(
            ComputationAmbiguity(
                table_key=table_key,
                key_columns=tuple(key_columns),
                key_values=tuple(str(item) for item in key_values),
                row_count=len(group),
                sources=sources,
            )
        )
    return issues
