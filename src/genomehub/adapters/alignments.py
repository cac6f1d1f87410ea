"""Adapter for headerless, gzip-compressed aligner output shards."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from genomehub.adapters.base import TableAdapter
from genomehub.models import ALIGNMENT_COLUMNS
from genomehub.quality import ValidationError

_INTEGER_COLUMNS: tuple[str, ...] = (
    "length",
    "contig_start",
    "contig_end",
    "contig_len",
    "gene_start",
    "gene_end",
    "gene_len",
)


class AlignmentShardAdapter(TableAdapter):
    """Read one tabular alignment file with the fixed ten-column layout."""

    name = "alignment_shard"
    required_columns = ALIGNMENT_COLUMNS

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @property
    def shard_id(self) -> str:
        """Shard identifier derived from the file name without its extensions."""

        name = self.path.name
        for suffix in (".gz", ".tsv", ".aln"):
            if name.endswith(suffix):
                name = name[: -len(suffix)]
        return name

    def read(self) -> pd.DataFrame:
        if not self.path.exists():
            raise ValidationError(f"Alignment shard not found: {self.path}")

        try:
            frame = pd.read_csv(
                self.path,
                sep="\t",
                header=None,
                compression="infer",
                dtype={"contig": str, "gene": str},
                keep_default_na=False,
                na_values=[""],
                names=list(ALIGNMENT_COLUMNS),
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame({column: pd.Series(dtype="object") for column in ALIGNMENT_COLUMNS})

        if frame[list(ALIGNMENT_COLUMNS)].isna().any().any():
            incomplete = frame[list(ALIGNMENT_COLUMNS)].isna().any(axis=1).sum()
            raise ValidationError(
                f"Alignment shard {self.path.name} has {incomplete} row(s) with missing columns; "
                f"expected {len(ALIGNMENT_COLUMNS)} tab-separated fields"
            )

        frame["contig"] = frame["contig"].str.strip()
        frame["gene"] = frame["gene"].str.strip()
        frame["pident"] = frame["pident"].astype(float)
        for column in _INTEGER_COLUMNS:
            frame[column] = frame[column].astype("int64")
        return frame
