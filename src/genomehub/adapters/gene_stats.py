"""Adapters for per-CAG statistics and CAG membership tables."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from genomehub.adapters.base import TableAdapter
from genomehub.adapters.common import read_delimited
from genomehub.quality import ValidationError


class GeneStatsAdapter(TableAdapter):
    """Read the long-format ``CAG,parameter,type,value`` statistics table."""

    name = "gene_stats"
    required_columns = ("CAG", "parameter", "type", "value")

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> pd.DataFrame:
        frame = read_delimited(
            self.path,
            table_name="Gene statistics table",
            required_columns=self.required_columns,
            id_columns=("CAG", "parameter", "type"),
        )
        frame["value"] = pd.to_numeric(frame["value"], errors="coerce")
        return frame[list(self.required_columns)]


class CagMembershipAdapter(TableAdapter):
    """Read the ``CAG,gene`` membership table (many genes per CAG)."""

    name = "cag_membership"
    required_columns = ("CAG", "gene")

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> pd.DataFrame:
        frame = read_delimited(
            self.path,
            table_name="CAG membership table",
            required_columns=self.required_columns,
            id_columns=self.required_columns,
        )
        if frame.empty:
            raise ValidationError(f"CAG membership table has no rows: {self.path}")
        return frame[list(self.required_columns)]
