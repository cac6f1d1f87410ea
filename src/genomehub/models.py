"""In-memory data models shared by the aggregation stages."""

from __future__ import annotations

from dataclasses import dataclass, field

import pandas as pd


ALIGNMENT_COLUMNS: tuple[str, ...] = (
    "contig",
    "gene",
    "pident",
    "length",
    "contig_start",
    "contig_end",
    "contig_len",
    "gene_start",
    "gene_end",
    "gene_len",
)

SHARD_COLUMNS: tuple[str, ...] = ALIGNMENT_COLUMNS + ("span", "genome", "CAG")

ASSOCIATION_VALUE_COLUMNS: tuple[str, ...] = (
    "estimate",
    "std_error",
    "p_value",
    "fdr_adjusted_p",
    "pass_fdr",
)

SUMMARY_COLUMNS: tuple[str, ...] = (
    "genome",
    "parameter",
    "total_genes",
    "n_pass_fdr",
    "prop_pass_fdr",
    "mean_estimate_among_fdr_pass",
)

CONTAINMENT_COLUMNS: tuple[str, ...] = (
    "genome",
    "CAG",
    "n_genes",
    "containment",
    "genome_prop",
    "genome_bases",
    "cag_genome_bases",
    "cag_prop",
)

# DuckDB column types used when a table has to be created without rows.
SUMMARY_SCHEMA: dict[str, str] = {
    "genome": "VARCHAR",
    "parameter": "VARCHAR",
    "total_genes": "BIGINT",
    "n_pass_fdr": "BIGINT",
    "prop_pass_fdr": "DOUBLE",
    "mean_estimate_among_fdr_pass": "DOUBLE",
}

CONTAINMENT_SCHEMA: dict[str, str] = {
    "genome": "VARCHAR",
    "CAG": "VARCHAR",
    "n_genes": "BIGINT",
    "containment": "DOUBLE",
    "genome_prop": "DOUBLE",
    "genome_bases": "BIGINT",
    "cag_genome_bases": "BIGINT",
    "cag_prop": "DOUBLE",
}


def empty_frame(columns: tuple[str, ...]) -> pd.DataFrame:
    return pd.DataFrame(columns=list(columns))


@dataclass(frozen=True)
class AlignmentShard:
    """One partition of alignment rows annotated with genome and CAG ids.

    ``frame`` holds :data:`SHARD_COLUMNS`; the shard is never mutated after
    construction, so it can be handed to several workers at once.
    """

    shard_id: str
    frame: pd.DataFrame

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def is_empty(self) -> bool:
        return self.frame.empty

    def genomes(self) -> list[str]:
        """Sorted genome ids that have at least one alignment row in the shard."""

        return sorted(self.frame["genome"].unique().tolist())


@dataclass
class AnnotationShardResult:
    """Per-shard output of the association annotator."""

    shard_id: str
    summaries: dict[str, pd.DataFrame] = field(default_factory=dict)
    details: dict[tuple[str, str], pd.DataFrame] = field(default_factory=dict)

    def summary_rows(self) -> int:
        return sum(len(frame) for frame in self.summaries.values())


@dataclass
class ContainmentShardResult:
    """Per-shard output of the containment scorer."""

    shard_id: str
    containment: pd.DataFrame

    @property
    def is_empty(self) -> bool:
        return self.containment.empty
