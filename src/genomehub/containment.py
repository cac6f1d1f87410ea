"""Genome × CAG containment scores from annotated alignment shards."""

from __future__ import annotations

import logging

import pandas as pd

from genomehub.index import ContigIndex
from genomehub.models import (
    CONTAINMENT_COLUMNS,
    AlignmentShard,
    ContainmentShardResult,
    empty_frame,
)


def genome_sizes(frame: pd.DataFrame) -> pd.Series:
    """Sum ``contig_len`` over the distinct contigs observed for each genome."""

    contigs = frame.drop_duplicates(subset=["genome", "contig"])
    return contigs.groupby("genome")["contig_len"].sum().astype("int64")


def score_containment(frame: pd.DataFrame, cag_sizes: pd.Series) -> pd.DataFrame:
    """Score every (genome, CAG) pair with at least one aligning gene.

    ``genome_prop`` is the aligned span of the CAG over the genome size and
    may count overlapping hits more than once; ``cag_prop`` is the share of
    the CAG's genes seen in the genome. ``containment`` is the larger of the
    two. Pairs without hits are not materialised.
    """

    frame = frame.loc[frame["CAG"].notna()]
    if frame.empty:
        return empty_frame(CONTAINMENT_COLUMNS)

    pairs = (
        frame.groupby(["genome", "CAG"], sort=True)
        .agg(n_genes=("gene", "nunique"), cag_genome_bases=("span", "sum"))
        .reset_index()
    )
    pairs["genome_bases"] = pairs["genome"].map(genome_sizes(frame))
    pairs["genome_prop"] = pairs["cag_genome_bases"] / pairs["genome_bases"]
    pairs["cag_prop"] = pairs["n_genes"] / pairs["CAG"].map(cag_sizes)
    pairs["containment"] = pairs[["genome_prop", "cag_prop"]].max(axis=1)

    pairs = pairs.astype(
        {"n_genes": "int64", "genome_bases": "int64", "cag_genome_bases": "int64"}
    )
    return pairs[list(CONTAINMENT_COLUMNS)]


class ContainmentScorer:
    """Apply :func:`score_containment` to shards using the global CAG sizes."""

    def __init__(self, index: ContigIndex, *, logger: logging.Logger | None = None) -> None:
        self.index = index
        self.logger = logger or logging.getLogger("genomehub.containment")

    def score(self, shard: AlignmentShard) -> ContainmentShardResult:
        containment = score_containment(shard.frame, self.index.cag_sizes)
        if containment.empty:
            self.logger.info("Containment shard=%s: no genome/CAG overlaps", shard.shard_id)
        else:
            self.logger.info(
                "Containment shard=%s genomes=%d pairs=%d",
                shard.shard_id,
                containment["genome"].nunique(),
                len(containment),
            )
        return ContainmentShardResult(shard_id=shard.shard_id, containment=containment)
