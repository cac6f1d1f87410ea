"""Immutable lookups from contigs to genomes and from genes to CAGs."""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from genomehub.quality import ValidationError, require_columns, require_resolved


def _one_to_one(frame: pd.DataFrame, key: str, value: str, table_name: str) -> pd.Series:
    """Collapse exact duplicate rows and reject keys bound to several values."""

    pairs = frame[[key, value]].drop_duplicates()
    conflicting = pairs[key][pairs[key].duplicated()].unique()
    if len(conflicting):
        preview = ", ".join(str(item) for item in conflicting[:5])
        raise ValidationError(
            f"{table_name}: {len(conflicting)} {key} id(s) map to more than one {value}: {preview}"
        )
    return pd.Series(pairs[value].to_numpy(), index=pd.Index(pairs[key].to_numpy(), name=key), name=value)


@dataclass(frozen=True)
class ContigIndex:
    """Contig→genome and gene→CAG maps plus the global size of every CAG.

    Built once per run and shared read-only by every shard worker.
    """

    contig_to_genome: pd.Series
    gene_to_cag: pd.Series
    cag_sizes: pd.Series

    @classmethod
    def build(cls, contig_headers: pd.DataFrame, cag_membership: pd.DataFrame) -> "ContigIndex":
        require_columns(contig_headers, ("contig", "genome"), "Contig header table")
        require_columns(cag_membership, ("CAG", "gene"), "CAG membership table")

        contig_to_genome = _one_to_one(
            contig_headers.astype({"contig": str, "genome": str}),
            "contig",
            "genome",
            "Contig header table",
        )
        gene_to_cag = _one_to_one(
            cag_membership.astype({"CAG": str, "gene": str}),
            "gene",
            "CAG",
            "CAG membership table",
        )
        cag_sizes = gene_to_cag.value_counts().rename("n_genes_in_cag")
        cag_sizes.index.name = "CAG"
        return cls(contig_to_genome=contig_to_genome, gene_to_cag=gene_to_cag, cag_sizes=cag_sizes)

    @property
    def n_contigs(self) -> int:
        return len(self.contig_to_genome)

    @property
    def n_genes(self) -> int:
        return len(self.gene_to_cag)

    @property
    def cags(self) -> pd.Index:
        return self.cag_sizes.index

    def genomes_for(self, contigs: pd.Series) -> pd.Series:
        """Map contig ids to genome ids, failing on any unknown contig."""

        require_resolved(contigs, self.contig_to_genome, "contig")
        return contigs.map(self.contig_to_genome)

    def cags_for(self, genes: pd.Series) -> pd.Series:
        """Map gene ids to CAG ids, failing on any unknown gene."""

        require_resolved(genes, self.gene_to_cag, "gene")
        return genes.map(self.gene_to_cag)

    def n_genes_in_cag(self, cag: str) -> int:
        try:
            return int(self.cag_sizes.loc[cag])
        except KeyError:
            raise ValidationError(f"CAG {cag} is not in the CAG membership table") from None
