"""Adapter for contig-header tables mapping contigs to genomes."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd

from genomehub.adapters.base import TableAdapter
from genomehub.adapters.common import read_delimited


class ContigHeaderAdapter(TableAdapter):
    """Read and concatenate ``contig,genome`` CSV files."""

    name = "contig_headers"
    required_columns = ("contig", "genome")

    def __init__(self, paths: str | Path | Iterable[str | Path]) -> None:
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self.paths = [Path(path) for path in paths]

    def read(self) -> pd.DataFrame:
        frames = [
            read_delimited(
                path,
                table_name=f"Contig header table {path.name}",
                required_columns=self.required_columns,
                id_columns=self.required_columns,
            )[list(self.required_columns)]
            for path in self.paths
        ]
        if not frames:
            return pd.DataFrame(columns=list(self.required_columns))
        return pd.concat(frames, ignore_index=True)
