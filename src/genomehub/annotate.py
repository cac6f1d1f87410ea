"""Join alignment shards to CAG association statistics and summarise by genome."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import numpy as np
import pandas as pd

from genomehub.association import AssociationTable
from genomehub.models import (
    ASSOCIATION_VALUE_COLUMNS,
    SUMMARY_COLUMNS,
    AlignmentShard,
    AnnotationShardResult,
    empty_frame,
)


def annotate_rows(frame: pd.DataFrame, table: AssociationTable) -> pd.DataFrame:
    """Attach association values to each alignment row through its CAG.

    Rows whose CAG was not tested keep missing statistics and ``pass_fdr``
    is False for them.
    """

    values = table.frame[list(ASSOCIATION_VALUE_COLUMNS)]
    annotated = frame.merge(values, how="left", left_on="CAG", right_index=True)
    annotated["pass_fdr"] = annotated["pass_fdr"].eq(True)
    annotated.insert(0, "parameter", table.parameter)
    return annotated.reset_index(drop=True)


def summarize_genomes(annotated: pd.DataFrame, parameter: str) -> pd.DataFrame:
    """One summary row per genome for ``parameter``.

    ``mean_estimate_among_fdr_pass`` stays NaN for genomes without passing
    rows so that "nothing passed" is distinguishable from a zero effect.
    """

    if annotated.empty:
        return empty_frame(SUMMARY_COLUMNS)

    grouped = annotated.groupby("genome", sort=True)
    summary = pd.DataFrame(
        {
            "total_genes": grouped.size().astype("int64"),
            "n_pass_fdr": grouped["pass_fdr"].sum().astype("int64"),
        }
    )
    summary["prop_pass_fdr"] = summary["n_pass_fdr"] / summary["total_genes"]

    passing = annotated.loc[annotated["pass_fdr"]]
    means = passing.groupby("genome")["estimate"].mean()
    summary["mean_estimate_among_fdr_pass"] = means.reindex(summary.index).astype(float)
    summary.loc[summary["n_pass_fdr"] == 0, "mean_estimate_among_fdr_pass"] = np.nan

    summary = summary.reset_index()
    summary["parameter"] = parameter
    return summary[list(SUMMARY_COLUMNS)]


class AssociationAnnotator:
    """Produce per-genome summaries (and optional detail tables) for one shard."""

    def __init__(
        self,
        tables: Mapping[str, AssociationTable],
        *,
        details: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.tables = dict(tables)
        self.details = details
        self.logger = logger or logging.getLogger("genomehub.annotate")

    def annotate(self, shard: AlignmentShard) -> AnnotationShardResult:
        result = AnnotationShardResult(shard_id=shard.shard_id)

        for parameter in sorted(self.tables):
            annotated = annotate_rows(shard.frame, self.tables[parameter])
            result.summaries[parameter] = summarize_genomes(annotated, parameter)

            if not self.details:
                continue
            for genome, rows in annotated.groupby("genome", sort=True):
                result.details[(parameter, str(genome))] = rows.reset_index(drop=True)

        self.logger.info(
            "Annotated shard=%s rows=%d parameters=%d summary_rows=%d detail_tables=%d",
            shard.shard_id,
            len(shard),
            len(self.tables),
            result.summary_rows(),
            len(result.details),
        )
        return result
