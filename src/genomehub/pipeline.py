"""Fan-out/fan-in orchestrator for genome association runs."""

from __future__ import annotations

import logging
import os
import shutil
import time
from collections.abc import Mapping
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from genomehub.adapters import (
    AlignmentShardAdapter,
    CagMembershipAdapter,
    ContigHeaderAdapter,
    GeneStatsAdapter,
    GenomeManifestAdapter,
)
from genomehub.annotate import AssociationAnnotator
from genomehub.association import AssociationTable, build_association_tables
from genomehub.config import AnalysisConfig, ExecutorKind, RunInputs
from genomehub.containment import ContainmentScorer
from genomehub.index import ContigIndex
from genomehub.merge import MergeReport, ResultMerger
from genomehub.models import ALIGNMENT_COLUMNS
from genomehub.quality import ComputationAmbiguity, ValidationError
from genomehub.shards import load_shard
from genomehub.staging import ANNOTATE_KIND, CONTAINMENT_KIND, ShardArtifactWriter
from genomehub.storage import DuckDBResultStore


class ShardFailedError(RuntimeError):
    """A shard worker kept failing after its retries were exhausted."""


@dataclass(frozen=True)
class ShardTaskResult:
    kind: str
    shard_id: str
    rows: int
    attempts: int


@dataclass
class PipelineRunReport:
    """Execution summary for a pipeline run."""

    shards: int
    parameters: list[str]
    alignment_rows: int
    containment_rows: int
    summary_rows: dict[str, int]
    detail_tables: int
    retries: int
    output_store: Path
    ambiguities: list[ComputationAmbiguity] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "shards": self.shards,
            "parameters": self.parameters,
            "alignment_rows": self.alignment_rows,
            "containment_rows": self.containment_rows,
            "summary_rows": self.summary_rows,
            "detail_tables": self.detail_tables,
            "retries": self.retries,
            "ambiguities": [issue.describe() for issue in self.ambiguities],
            "output_store": str(self.output_store),
        }


class InputValidator:
    """Fail fast on missing inputs or columns before any aggregation starts."""

    def check(self, inputs: RunInputs) -> None:
        self._check_header(inputs.gene_stats, GeneStatsAdapter.required_columns, "Gene statistics table")
        self._check_header(inputs.cag_membership, CagMembershipAdapter.required_columns, "CAG membership table")
        self._check_header(inputs.genome_manifest, GenomeManifestAdapter.required_columns, "Genome manifest")

        if not inputs.contig_headers:
            raise ValidationError("No contig header tables configured")
        for path in inputs.contig_headers:
            self._check_header(path, ContigHeaderAdapter.required_columns, "Contig header table")

        if not inputs.alignment_shards:
            raise ValidationError("No alignment shards configured")
        seen: dict[str, Path] = {}
        for path in inputs.alignment_shards:
            self._check_alignment(path)
            shard_id = AlignmentShardAdapter(path).shard_id
            if shard_id in seen:
                raise ValidationError(f"Shard id '{shard_id}' used by both {seen[shard_id]} and {path}")
            seen[shard_id] = path

        if inputs.base_store is not None and not inputs.base_store.exists():
            raise ValidationError(f"Base result store not found: {inputs.base_store}")

    @staticmethod
    def _check_header(path: Path, columns: tuple[str, ...], table_name: str) -> None:
        if not path.exists():
            raise ValidationError(f"{table_name} not found: {path}")
        try:
            header = pd.read_csv(path, nrows=0)
        except pd.errors.EmptyDataError as exc:
            raise ValidationError(f"{table_name} is empty: {path}") from exc
        missing = [column for column in columns if column not in header.columns]
        if missing:
            raise ValidationError(f"{table_name} {path} is missing column(s): {', '.join(missing)}")

    @staticmethod
    def _check_alignment(path: Path) -> None:
        if not path.exists():
            raise ValidationError(f"Alignment shard not found: {path}")
        try:
            head = pd.read_csv(path, sep="\t", header=None, nrows=1, compression="infer")
        except pd.errors.EmptyDataError:
            return
        if head.shape[1] != len(ALIGNMENT_COLUMNS):
            raise ValidationError(
                f"Alignment shard {path} has {head.shape[1]} columns, expected {len(ALIGNMENT_COLUMNS)}"
            )


def run_shard_task(
    kind: str,
    shard_path: Path,
    index: ContigIndex,
    tables: Mapping[str, AssociationTable],
    config: AnalysisConfig,
    staging_root: Path,
) -> ShardTaskResult:
    """Run one worker over one shard, retrying the whole shard on failure.

    Module-level so process pools can pickle it.
    """

    logger = logging.getLogger(f"genomehub.worker.{kind}")
    shard_id = AlignmentShardAdapter(shard_path).shard_id
    writer = ShardArtifactWriter(staging_root, kind, shard_id)
    attempts = config.max_retries + 1

    for attempt in range(attempts):
        writer.reset()
        try:
            shard = load_shard(shard_path, index)
            if kind == ANNOTATE_KIND:
                annotator = AssociationAnnotator(tables, details=config.details, logger=logger)
                writer.write_annotation(annotator.annotate(shard))
            else:
                writer.write_containment(ContainmentScorer(index, logger=logger).score(shard))
            return ShardTaskResult(kind=kind, shard_id=shard_id, rows=len(shard), attempts=attempt + 1)
        except Exception as exc:
            writer.reset()
            if attempt + 1 >= attempts:
                raise ShardFailedError(
                    f"{kind} worker for shard {shard_id} failed after {attempts} attempt(s): {exc}"
                ) from exc
            delay = config.retry_backoff * (2 ** attempt)
            logger.warning(
                "Shard %s/%s attempt %d/%d failed (%s); retrying in %.1fs",
                kind,
                shard_id,
                attempt + 1,
                attempts,
                exc,
                delay,
            )
            time.sleep(delay)

    raise AssertionError("unreachable")


class GenomeAssociationPipeline:
    """Validate inputs, build lookups, fan shards out to workers and merge."""

    def __init__(
        self,
        *,
        config: AnalysisConfig,
        inputs: RunInputs,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.inputs = inputs
        self.logger = logger or logging.getLogger("genomehub.pipeline")

    def run(self) -> PipelineRunReport:
        InputValidator().check(self.inputs)
        self.logger.info(
            "Starting run: shards=%d fdr_method=%s alpha=%g details=%s workers=%d",
            len(self.inputs.alignment_shards),
            self.config.fdr_method,
            self.config.alpha,
            self.config.details,
            self.config.workers,
        )

        index = ContigIndex.build(
            ContigHeaderAdapter(self.inputs.contig_headers).read(),
            CagMembershipAdapter(self.inputs.cag_membership).read(),
        )
        self.logger.info("Index: contigs=%d genes=%d cags=%d", index.n_contigs, index.n_genes, len(index.cags))

        tables = build_association_tables(
            GeneStatsAdapter(self.inputs.gene_stats).read(),
            index,
            self.config,
            logger=self.logger,
        )
        manifest = GenomeManifestAdapter(self.inputs.genome_manifest).read()

        results = self._fan_out(index, tables)
        shard_ids = sorted(AlignmentShardAdapter(path).shard_id for path in self.inputs.alignment_shards)
        merge_report = self._publish(manifest, shard_ids, sorted(tables))

        annotate_results = [result for result in results if result.kind == ANNOTATE_KIND]
        report = PipelineRunReport(
            shards=len(shard_ids),
            parameters=sorted(tables),
            alignment_rows=sum(result.rows for result in annotate_results),
            containment_rows=merge_report.containment_rows,
            summary_rows=dict(merge_report.summary_rows),
            detail_tables=merge_report.detail_tables,
            retries=sum(result.attempts - 1 for result in results),
            output_store=self.inputs.output_store,
            ambiguities=list(merge_report.ambiguities),
        )
        self.logger.info(
            "Run complete: shards=%d alignment_rows=%d containment_rows=%d retries=%d store=%s",
            report.shards,
            report.alignment_rows,
            report.containment_rows,
            report.retries,
            report.output_store,
        )
        return report

    def _make_executor(self) -> Executor:
        if self.config.executor is ExecutorKind.PROCESS:
            return ProcessPoolExecutor(max_workers=self.config.workers)
        return ThreadPoolExecutor(max_workers=self.config.workers)

    def _fan_out(
        self,
        index: ContigIndex,
        tables: Mapping[str, AssociationTable],
    ) -> list[ShardTaskResult]:
        staging_root = self.inputs.staging_dir
        staging_root.mkdir(parents=True, exist_ok=True)

        executor = self._make_executor()
        futures: dict[Future, tuple[str, Path]] = {}
        results: list[ShardTaskResult] = []
        try:
            for shard_path in self.inputs.alignment_shards:
                for kind in (ANNOTATE_KIND, CONTAINMENT_KIND):
                    future = executor.submit(
                        run_shard_task,
                        kind,
                        shard_path,
                        index,
                        tables,
                        self.config,
                        staging_root,
                    )
                    futures[future] = (kind, shard_path)

            for future in as_completed(futures):
                kind, shard_path = futures[future]
                try:
                    result = future.result()
                except Exception:
                    self.logger.exception("Shard worker failed: kind=%s shard=%s", kind, shard_path)
                    executor.shutdown(wait=True, cancel_futures=True)
                    raise
                results.append(result)
                self.logger.info(
                    "Shard done: kind=%s shard=%s rows=%d attempts=%d (%d/%d)",
                    result.kind,
                    result.shard_id,
                    result.rows,
                    result.attempts,
                    len(results),
                    len(futures),
                )
        finally:
            executor.shutdown(wait=True)
        return results

    def _publish(self, manifest: pd.DataFrame, shard_ids: list[str], parameters: list[str]) -> MergeReport:
        """Merge into a temporary store and move it into place only on success."""

        output = self.inputs.output_store
        output.parent.mkdir(parents=True, exist_ok=True)
        staging_store = output.with_name(output.name + ".tmp")
        self._remove_store(staging_store)
        if self.inputs.base_store is not None:
            shutil.copyfile(self.inputs.base_store, staging_store)

        merger = ResultMerger(
            staging_root=self.inputs.staging_dir,
            shard_ids=shard_ids,
            duplicate_policy=self.config.duplicate_policy,
            logger=self.logger,
        )
        try:
            with DuckDBResultStore(staging_store) as store:
                report = merger.merge(store, manifest, parameters)
                if self.inputs.parquet_export_dir is not None:
                    exported = store.export_parquet(self.inputs.parquet_export_dir)
                    self.logger.info(
                        "Parquet export: tables=%d dir=%s", len(exported), self.inputs.parquet_export_dir
                    )
        except Exception:
            self._remove_store(staging_store)
            raise

        os.replace(staging_store, output)
        if not self.inputs.keep_staging:
            shutil.rmtree(self.inputs.staging_dir, ignore_errors=True)
            self.logger.info("Removed staged shard artifacts: %s", self.inputs.staging_dir)
        return report

    @staticmethod
    def _remove_store(path: Path) -> None:
        for candidate in (path, path.with_name(path.name + ".wal")):
            if candidate.exists():
                candidate.unlink()
