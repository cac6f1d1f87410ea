"""Genome × CAG association and containment pipeline primitives.

This package provides the building blocks for turning sharded alignments of
reference genomes against a gene catalog into per-genome association
summaries and genome/CAG containment tables.
"""

from .annotate import AssociationAnnotator
from .association import AssociationTable, build_association_tables
from .config import (
    CONTAINMENT_KEY,
    DETAIL_PREFIX,
    MANIFEST_KEY,
    SUMMARY_PREFIX,
    AnalysisConfig,
    AnalysisConfigLoader,
    DuplicatePolicy,
    ExecutorKind,
    RunInputs,
    detail_key,
    summary_key,
)
from .containment import ContainmentScorer
from .index import ContigIndex
from .merge import IncompleteShardSetError, MergeReport, ResultMerger
from .models import AlignmentShard, AnnotationShardResult, ContainmentShardResult
from .pipeline import (
    GenomeAssociationPipeline,
    InputValidator,
    PipelineRunReport,
    ShardFailedError,
)
from .quality import AmbiguousMergeError, ComputationAmbiguity, ValidationError
from .shards import build_shard, load_shard
from .storage import DuckDBResultStore, ResultStore

__all__ = [
    "AlignmentShard",
    "AmbiguousMergeError",
    "AnalysisConfig",
    "AnalysisConfigLoader",
    "AnnotationShardResult",
    "AssociationAnnotator",
    "AssociationTable",
    "CONTAINMENT_KEY",
    "ComputationAmbiguity",
    "ContainmentScorer",
    "ContainmentShardResult",
    "ContigIndex",
    "DETAIL_PREFIX",
    "DuckDBResultStore",
    "DuplicatePolicy",
    "ExecutorKind",
    "GenomeAssociationPipeline",
    "IncompleteShardSetError",
    "InputValidator",
    "MANIFEST_KEY",
    "MergeReport",
    "PipelineRunReport",
    "ResultMerger",
    "ResultStore",
    "RunInputs",
    "SUMMARY_PREFIX",
    "ShardFailedError",
    "ValidationError",
    "build_association_tables",
    "build_shard",
    "detail_key",
    "load_shard",
    "summary_key",
]
