"""Adapter for the genome manifest."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from genomehub.adapters.base import TableAdapter
from genomehub.adapters.common import read_delimited
from genomehub.quality import ValidationError


class GenomeManifestAdapter(TableAdapter):
    """Read genome metadata, one row per genome."""

    name = "genome_manifest"
    required_columns = ("genome",)

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> pd.DataFrame:
        frame = read_delimited(
            self.path,
            table_name="Genome manifest",
            required_columns=self.required_columns,
            id_columns=self.required_columns,
        )
        duplicated = frame["genome"][frame["genome"].duplicated()].unique()
        if len(duplicated):
            raise ValidationError(
                f"Genome manifest lists {len(duplicated)} genome(s) more than once: "
                f"{', '.join(duplicated[:5])}"
            )
        return frame
