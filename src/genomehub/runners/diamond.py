"""Command builder and runner for the DIAMOND aligner that produces alignment shards."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from genomehub.config import AnalysisConfig

# Tabular fields in the order the alignment shard adapter expects:
# contig, gene, pident, length, contig_start, contig_end, contig_len,
# gene_start, gene_end, gene_len.
DIAMOND_OUTFMT_FIELDS: tuple[str, ...] = (
    "qseqid",
    "sseqid",
    "pident",
    "length",
    "qstart",
    "qend",
    "qlen",
    "sstart",
    "send",
    "slen",
)


@dataclass
class DiamondOptions:
    """Fixed-parameter ``diamond blastx`` run of genome contigs against the gene catalog.

    ``output_path`` is given without ``.gz``; ``--compress 1`` appends it.
    The identity and coverage filters are applied by the aligner only, and
    ``max_target_seqs=0`` reports every hit that passes them.
    """

    query_fasta: str
    db_path: str
    output_path: str

    min_identity: float = 50.0
    min_coverage: float = 50.0

    threads: int = 1
    block_size: float | None = None
    max_target_seqs: int = 0

    extra_args: Sequence[str] = field(default_factory=tuple)
    exe: str = "diamond"

    @classmethod
    def from_config(
        cls,
        config: AnalysisConfig,
        *,
        query_fasta: str,
        db_path: str,
        output_path: str,
        threads: int = 1,
    ) -> "DiamondOptions":
        return cls(
            query_fasta=query_fasta,
            db_path=db_path,
            output_path=output_path,
            min_identity=config.min_identity,
            min_coverage=config.min_coverage,
            threads=threads,
        )

    def build_cmd(self) -> list[str]:
        cmd: list[str] = [
            self.exe,
            "blastx",
            "--query", self.query_fasta,
            "--db", self.db_path,
            "--out", self.output_path,
            "--outfmt", "6", *DIAMOND_OUTFMT_FIELDS,
            "--id", f"{self.min_identity:g}",
            "--subject-cover", f"{self.min_coverage:g}",
            "--max-target-seqs", str(self.max_target_seqs),
            "--threads", str(self.threads),
            "--compress", "1",
        ]
        if self.block_size is not None:
            cmd.extend(["--block-size", f"{self.block_size:g}"])
        if self.extra_args:
            cmd.extend(list(self.extra_args))
        return cmd


def _require_file(path: str, what: str) -> None:
    if not (path and os.path.isfile(path)):
        raise FileNotFoundError(f"{what} not found: {path!r}")


def run_diamond(
    options: DiamondOptions,
    *,
    validate_inputs: bool = True,
    logger: logging.Logger | None = None,
) -> Path:
    """Run the aligner and return the written shard path.

    ``--compress 1`` makes DIAMOND append ``.gz`` to ``--out``.
    """

    logger = logger or logging.getLogger("genomehub.runners.diamond")
    if validate_inputs:
        _require_file(options.query_fasta, "Query FASTA")
        db = options.db_path if options.db_path.endswith(".dmnd") else f"{options.db_path}.dmnd"
        _require_file(db, "DIAMOND database")
        if shutil.which(options.exe) is None:
            raise FileNotFoundError(f"Executable not found on PATH: {options.exe}")

    cmd = options.build_cmd()
    logger.info("Running aligner: %s", " ".join(cmd))
    completed = subprocess.run(cmd, capture_output=True, text=True)
    if completed.returncode != 0:
        raise RuntimeError(
            f"{options.exe} exited with status {completed.returncode}: {completed.stderr.strip()}"
        )

    output = Path(options.output_path)
    return output.with_name(output.name + ".gz")
