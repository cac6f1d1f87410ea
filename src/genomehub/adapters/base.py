"""Base interface for tabular input adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd


class TableAdapter(ABC):
    """Adapter that reads one input file into a validated data frame."""

    name: str
    required_columns: tuple[str, ...] = ()

    @abstractmethod
    def read(self) -> pd.DataFrame:
        """Return the table with at least :attr:`required_columns`."""
