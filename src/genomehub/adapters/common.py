"""Shared utilities for tabular input adapters."""

from __future__ import annotations

import glob
import os
from pathlib import Path
from typing import Iterable

import pandas as pd

from genomehub.quality import ValidationError, require_columns


ALIGNMENT_SUFFIXES: tuple[str, ...] = (".tsv.gz", ".tsv", ".aln.gz")


def _has_suffix(path: Path, suffixes: tuple[str, ...]) -> bool:
    name = path.name.lower()
    return any(name.endswith(suffix) for suffix in suffixes)


def expand_input_paths(
    input_paths: str | Path | Iterable[str | Path],
    suffixes: tuple[str, ...] = ALIGNMENT_SUFFIXES,
) -> list[Path]:
    """Expand file, directory, or glob inputs into concrete file paths.

    Explicit files are kept whatever their name; directory and glob matches
    are filtered by ``suffixes``.
    """

    if isinstance(input_paths, (str, Path)):
        items: list[str | Path] = [input_paths]
    else:
        items = list(input_paths)

    resolved: list[Path] = []
    for item in items:
        expanded_item = os.path.expandvars(os.path.expanduser(str(item)))
        item_path = Path(expanded_item)

        if item_path.is_dir():
            resolved.extend(
                sorted(
                    path
                    for path in item_path.iterdir()
                    if path.is_file() and _has_suffix(path, suffixes)
                )
            )
            continue

        if item_path.exists():
            resolved.append(item_path)
            continue

        matches = [Path(path) for path in glob.glob(expanded_item)]
        resolved.extend(sorted(match for match in matches if _has_suffix(match, suffixes)))

    return resolved


def read_delimited(
    path: Path,
    *,
    table_name: str,
    required_columns: tuple[str, ...],
    sep: str = ",",
    id_columns: tuple[str, ...] = (),
) -> pd.DataFrame:
    """Read a headered table, check its columns and normalise id columns to strings."""

    if not path.exists():
        raise ValidationError(f"{table_name} not found: {path}")

    try:
        frame = pd.read_csv(
            path,
            sep=sep,
            dtype={column: str for column in id_columns},
            keep_default_na=False,
            na_values={column: [""] for column in id_columns},
        )
    except pd.errors.EmptyDataError as exc:
        raise ValidationError(f"{table_name} is empty: {path}") from exc

    require_columns(frame, required_columns, table_name)
    for column in id_columns:
        if frame[column].isna().any():
            raise ValidationError(f"{table_name} has blank values in column '{column}'")
        frame[column] = frame[column].astype(str).str.strip()
    return frame
