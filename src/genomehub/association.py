"""Per-parameter CAG association tables with multiple-testing correction."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests

from genomehub.config import AnalysisConfig
from genomehub.index import ContigIndex
from genomehub.quality import ValidationError, require_columns

VALUE_TYPES: tuple[str, ...] = ("estimate", "std_error", "p_value")


@dataclass(frozen=True)
class AssociationTable:
    """CAG-level statistics for a single tested parameter.

    ``frame`` is indexed by CAG id and carries ``estimate``, ``std_error``,
    ``p_value``, ``fdr_adjusted_p`` and ``pass_fdr``. ``p_value`` keeps its
    original missing values; only the correction treats them as 1.
    """

    parameter: str
    frame: pd.DataFrame
    fdr_method: str
    alpha: float

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def n_pass(self) -> int:
        return int(self.frame["pass_fdr"].sum())

    def passing_cags(self) -> list[str]:
        return sorted(self.frame.index[self.frame["pass_fdr"]].tolist())


def adjust_pvalues(p_values: pd.Series, *, method: str, alpha: float) -> np.ndarray:
    """Return corrected p-values; missing inputs are treated as 1."""

    filled = p_values.astype(float).fillna(1.0).to_numpy()
    if filled.size == 0:
        return filled
    _, corrected, _, _ = multipletests(filled, alpha=alpha, method=method)
    return corrected


def select_coefficient_rows(gene_stats: pd.DataFrame, config: AnalysisConfig) -> pd.DataFrame:
    """Keep the tested coefficients and strip the prefix from their names."""

    parameters = gene_stats["parameter"].astype(str)
    keep = (
        parameters.str.startswith(config.parameter_prefix)
        & (parameters != config.intercept_parameter)
        & gene_stats["type"].isin(VALUE_TYPES)
    )
    selected = gene_stats.loc[keep].copy()
    if selected.empty:
        raise ValidationError(
            f"No gene statistics rows remain for parameters prefixed '{config.parameter_prefix}' "
            f"after excluding '{config.intercept_parameter}'"
        )
    selected["parameter"] = selected["parameter"].str.slice(len(config.parameter_prefix))
    return selected


def build_association_table(
    parameter: str,
    rows: pd.DataFrame,
    *,
    fdr_method: str,
    alpha: float,
) -> AssociationTable:
    """Pivot one parameter's long-format rows and correct over its CAGs only."""

    wide = (
        rows.pivot(index="CAG", columns="type", values="value")
        .reindex(columns=list(VALUE_TYPES))
        .sort_index()
    )
    wide.columns.name = None

    observed = wide["p_value"].dropna()
    if ((observed < 0) | (observed > 1)).any():
        raise ValidationError(f"Parameter '{parameter}' has p-values outside [0, 1]")

    wide["fdr_adjusted_p"] = adjust_pvalues(wide["p_value"], method=fdr_method, alpha=alpha)
    wide["pass_fdr"] = wide["fdr_adjusted_p"] <= alpha
    return AssociationTable(parameter=parameter, frame=wide, fdr_method=fdr_method, alpha=alpha)


def build_association_tables(
    gene_stats: pd.DataFrame,
    index: ContigIndex,
    config: AnalysisConfig,
    *,
    logger: logging.Logger | None = None,
) -> dict[str, AssociationTable]:
    """Build one :class:`AssociationTable` per tested parameter."""

    logger = logger or logging.getLogger("genomehub.association")
    require_columns(gene_stats, ("CAG", "parameter", "type", "value"), "Gene statistics table")

    stats = gene_stats.astype({"CAG": str, "parameter": str, "type": str})
    unknown = pd.unique(stats.loc[~stats["CAG"].isin(index.cags), "CAG"])
    if len(unknown):
        preview = ", ".join(str(item) for item in unknown[:5])
        raise ValidationError(
            f"{len(unknown)} CAG(s) in the gene statistics table are not in the CAG membership table: {preview}"
        )

    selected = select_coefficient_rows(stats, config)
    duplicated = selected.duplicated(subset=["CAG", "parameter", "type"], keep=False)
    if duplicated.any():
        sample = selected.loc[duplicated, ["CAG", "parameter", "type"]].iloc[0]
        raise ValidationError(
            "Gene statistics table has repeated rows for "
            f"CAG={sample['CAG']} parameter={sample['parameter']} type={sample['type']}"
        )

    tables: dict[str, AssociationTable] = {}
    for parameter, rows in selected.groupby("parameter", sort=True):
        table = build_association_table(
            str(parameter),
            rows,
            fdr_method=config.fdr_method,
            alpha=config.alpha,
        )
        tables[table.parameter] = table
        logger.info(
            "Association table: parameter=%s cags=%d pass_fdr=%d method=%s alpha=%g",
            table.parameter,
            len(table),
            table.n_pass,
            config.fdr_method,
            config.alpha,
        )
    return tables
