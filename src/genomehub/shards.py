"""Alignment shard construction: genome/CAG annotation and derived spans."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from genomehub.adapters.alignments import AlignmentShardAdapter
from genomehub.index import ContigIndex
from genomehub.models import ALIGNMENT_COLUMNS, SHARD_COLUMNS, AlignmentShard
from genomehub.quality import require_columns


def build_shard(shard_id: str, alignments: pd.DataFrame, index: ContigIndex) -> AlignmentShard:
    """Attach genome and CAG ids to raw alignment rows.

    Every contig and gene must resolve through ``index``; an unresolved id
    raises :class:`~genomehub.quality.ValidationError` before any row is
    aggregated.
    """

    require_columns(alignments, ALIGNMENT_COLUMNS, f"Alignment shard {shard_id}")

    frame = alignments[list(ALIGNMENT_COLUMNS)].copy()
    frame["contig"] = frame["contig"].astype(str)
    frame["gene"] = frame["gene"].astype(str)

    if frame.empty:
        frame["span"] = pd.Series(dtype="int64")
        frame["genome"] = pd.Series(dtype="object")
        frame["CAG"] = pd.Series(dtype="object")
        return AlignmentShard(shard_id=shard_id, frame=frame[list(SHARD_COLUMNS)])

    frame["span"] = (frame["contig_end"] - frame["contig_start"]).abs() + 1
    frame["genome"] = index.genomes_for(frame["contig"])
    frame["CAG"] = index.cags_for(frame["gene"])
    return AlignmentShard(shard_id=shard_id, frame=frame[list(SHARD_COLUMNS)].reset_index(drop=True))


def load_shard(path: str | Path, index: ContigIndex) -> AlignmentShard:
    """Read an alignment file and annotate it through ``index``."""

    adapter = AlignmentShardAdapter(path)
    return build_shard(adapter.shard_id, adapter.read(), index)
