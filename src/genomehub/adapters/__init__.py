"""Input adapters for genome association runs."""

from .alignments import AlignmentShardAdapter
from .base import TableAdapter
from .common import expand_input_paths
from .contigs import ContigHeaderAdapter
from .gene_stats import CagMembershipAdapter, GeneStatsAdapter
from .manifest import GenomeManifestAdapter

__all__ = [
    "TableAdapter",
    "AlignmentShardAdapter",
    "ContigHeaderAdapter",
    "GeneStatsAdapter",
    "CagMembershipAdapter",
    "GenomeManifestAdapter",
    "expand_input_paths",
]
