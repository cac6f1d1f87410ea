import gzip
import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from genomehub.models import ALIGNMENT_COLUMNS  # noqa: E402


def alignment_row(contig, gene, contig_start, contig_end, contig_len, pident=95.0):
    length = abs(contig_end - contig_start) + 1
    return {
        "contig": contig,
        "gene": gene,
        "pident": pident,
        "length": length,
        "contig_start": contig_start,
        "contig_end": contig_end,
        "contig_len": contig_len,
        "gene_start": 1,
        "gene_end": length,
        "gene_len": length,
    }


def write_alignments(path: Path, rows: list[dict]) -> Path:
    """Write rows in the aligner's headerless gzip TSV layout."""

    with gzip.open(path, "wt") as stream:
        for row in rows:
            stream.write("\t".join(str(row[column]) for column in ALIGNMENT_COLUMNS) + "\n")
    return path


# Three genomes:
#   G1: contigs c1 (100 bp) and c2 (200 bp), two of the four CAG 5 genes, 150 aligned bases.
#   G2: contig c3 (500 bp), both CAG 7 genes, g5 hit twice.
#   G3: contig c4 (1000 bp), the single CAG 9 gene.
SHARD_A_ROWS = [
    alignment_row("c1", "g1", 1, 50, 100),
    alignment_row("c2", "g2", 200, 101, 200),
]
SHARD_B_ROWS = [
    alignment_row("c3", "g5", 1, 100, 500),
    alignment_row("c3", "g6", 201, 300, 500),
    alignment_row("c3", "g5", 400, 449, 500),
    alignment_row("c4", "g7", 1, 10, 1000),
]


@pytest.fixture
def contig_headers() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "contig": ["c1", "c2", "c3", "c4", "c5"],
            "genome": ["G1", "G1", "G2", "G3", "G3"],
        }
    )


@pytest.fixture
def cag_membership() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "CAG": ["5", "5", "5", "5", "7", "7", "9", "11"],
            "gene": ["g1", "g2", "g3", "g4", "g5", "g6", "g7", "g8"],
        }
    )


@pytest.fixture
def gene_stats() -> pd.DataFrame:
    rows = []

    def add(cag, parameter, estimate, std_error, p_value):
        for value_type, value in (("estimate", estimate), ("std_error", std_error), ("p_value", p_value)):
            if value is not None:
                rows.append({"CAG": cag, "parameter": parameter, "type": value_type, "value": value})

    for cag in ("5", "7", "9"):
        add(cag, "mu.(Intercept)", 0.1, 0.01, 1e-6)
    add("5", "mu.treatment", 1.5, 0.2, 0.01)
    add("7", "mu.treatment", -0.3, 0.4, 0.5)
    add("9", "mu.treatment", 0.2, 0.5, 0.9)
    add("5", "mu.age", 0.8, 0.1, 0.04)
    add("7", "mu.age", -0.6, 0.1, 0.03)
    add("9", "mu.age", 0.05, 0.3, None)
    add("5", "phi.treatment", 2.0, 0.1, 0.0001)
    return pd.DataFrame(rows)


@pytest.fixture
def genome_manifest() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "genome": ["G1", "G2", "G3"],
            "organism": ["Alpha bacter", "Beta coccus", "Gamma bacillus"],
            "uri": ["s3://refs/G1.fna.gz", "s3://refs/G2.fna.gz", "s3://refs/G3.fna.gz"],
        }
    )


@pytest.fixture
def study_files(tmp_path, contig_headers, cag_membership, gene_stats, genome_manifest) -> dict:
    """Write the study tables to disk the way the pipeline consumes them."""

    inputs = tmp_path / "inputs"
    (inputs / "shards").mkdir(parents=True)

    contig_headers.to_csv(inputs / "contigs.csv", index=False)
    cag_membership.to_csv(inputs / "cags.csv.gz", index=False)
    gene_stats.to_csv(inputs / "gene_stats.csv.gz", index=False)
    genome_manifest.to_csv(inputs / "manifest.csv", index=False)

    return {
        "shard_a": write_alignments(inputs / "shards" / "shard_a.tsv.gz", SHARD_A_ROWS),
        "shard_b": write_alignments(inputs / "shards" / "shard_b.tsv.gz", SHARD_B_ROWS),
        "contig_headers": inputs / "contigs.csv",
        "cag_membership": inputs / "cags.csv.gz",
        "gene_stats": inputs / "gene_stats.csv.gz",
        "genome_manifest": inputs / "manifest.csv",
        "root": tmp_path,
    }
