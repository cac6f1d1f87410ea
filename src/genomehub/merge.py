"""Fold completed shard artifacts into the consolidated result store."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from genomehub.config import (
    CONTAINMENT_KEY,
    MANIFEST_KEY,
    DuplicatePolicy,
    detail_key,
    summary_key,
)
from genomehub.models import (
    CONTAINMENT_COLUMNS,
    CONTAINMENT_SCHEMA,
    SUMMARY_COLUMNS,
    SUMMARY_SCHEMA,
    empty_frame,
)
from genomehub.quality import AmbiguousMergeError, ComputationAmbiguity, find_duplicate_keys
from genomehub.staging import ANNOTATE_KIND, CONTAINMENT_KIND, ShardArtifactReader
from genomehub.storage import ResultStore

MANIFEST_DROPPED_COLUMNS: tuple[str, ...] = ("uri",)
_SOURCE_COLUMN = "_shard_id"


class IncompleteShardSetError(RuntimeError):
    """A declared shard has no completed artifact set."""


@dataclass
class MergeReport:
    """Summary of one merge."""

    shards: int
    containment_rows: int = 0
    summary_rows: dict[str, int] = field(default_factory=dict)
    detail_tables: int = 0
    keys_written: list[str] = field(default_factory=list)
    ambiguities: list[ComputationAmbiguity] = field(default_factory=list)


@dataclass
class _MergedTables:
    containment: pd.DataFrame
    summaries: dict[str, pd.DataFrame]
    details: dict[tuple[str, str], pd.DataFrame]
    ambiguities: list[ComputationAmbiguity]


def _concat(frames: Iterable[pd.DataFrame], columns: Sequence[str]) -> pd.DataFrame:
    non_empty = [frame for frame in frames if not frame.empty]
    if not non_empty:
        return empty_frame(tuple(columns) + (_SOURCE_COLUMN,))
    return pd.concat(non_empty, ignore_index=True)


def _sorted(frame: pd.DataFrame, by: list[str]) -> pd.DataFrame:
    if frame.empty:
        return frame
    return frame.sort_values(by + [_SOURCE_COLUMN], kind="mergesort").reset_index(drop=True)


class ResultMerger:
    """Sequential fold over every declared shard's annotate and containment artifacts.

    Shards are visited in sorted id order and every output table is sorted
    by its key, so the result does not depend on the order in which workers
    finished. Keys expected to be unique that arrive from several shards are
    retained and reported as :class:`ComputationAmbiguity`.
    """

    def __init__(
        self,
        *,
        staging_root: str | Path,
        shard_ids: Sequence[str],
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.WARN,
        logger: logging.Logger | None = None,
    ) -> None:
        self.reader = ShardArtifactReader(staging_root)
        self.shard_ids = sorted(set(shard_ids))
        self.duplicate_policy = duplicate_policy
        self.logger = logger or logging.getLogger("genomehub.merge")

    def check_complete(self) -> None:
        missing: list[str] = []
        for kind in (ANNOTATE_KIND, CONTAINMENT_KIND):
            completed = set(self.reader.completed_shards(kind))
            missing.extend(f"{kind}/{shard_id}" for shard_id in self.shard_ids if shard_id not in completed)
        if missing:
            raise IncompleteShardSetError(
                f"{len(missing)} shard artifact set(s) are missing: {', '.join(missing)}"
            )

    def merge(
        self,
        store: ResultStore,
        manifest: pd.DataFrame,
        parameters: Sequence[str] = (),
    ) -> MergeReport:
        """Write manifest, containment, summary and detail tables into ``store``."""

        self.check_complete()
        merged = self._collect(parameters)

        for issue in merged.ambiguities:
            self.logger.warning("Duplicate merge key retained: %s", issue.describe())
        if merged.ambiguities and self.duplicate_policy is DuplicatePolicy.ERROR:
            raise AmbiguousMergeError(
                f"{len(merged.ambiguities)} duplicate key(s) across shards; "
                f"first: {merged.ambiguities[0].describe()}"
            )

        report = MergeReport(shards=len(self.shard_ids), ambiguities=merged.ambiguities)

        manifest = manifest.drop(columns=[c for c in MANIFEST_DROPPED_COLUMNS if c in manifest.columns])
        store.write(MANIFEST_KEY, manifest.reset_index(drop=True))
        report.keys_written.append(MANIFEST_KEY)

        containment = merged.containment.drop(columns=[_SOURCE_COLUMN])
        store.write(CONTAINMENT_KEY, containment, schema=CONTAINMENT_SCHEMA)
        store.create_index(CONTAINMENT_KEY, ("genome", "CAG"))
        report.containment_rows = len(containment)
        report.keys_written.append(CONTAINMENT_KEY)

        for parameter, summary in sorted(merged.summaries.items()):
            key = summary_key(parameter)
            store.write(key, summary.drop(columns=[_SOURCE_COLUMN]), schema=SUMMARY_SCHEMA)
            report.summary_rows[parameter] = len(summary)
            report.keys_written.append(key)

        for (parameter, genome), detail in sorted(merged.details.items()):
            key = detail_key(parameter, genome)
            store.write(key, detail.drop(columns=[_SOURCE_COLUMN]))
            report.keys_written.append(key)
        report.detail_tables = len(merged.details)

        self.logger.info(
            "Merged shards=%d containment_rows=%d parameters=%d detail_tables=%d ambiguities=%d",
            report.shards,
            report.containment_rows,
            len(report.summary_rows),
            report.detail_tables,
            len(report.ambiguities),
        )
        return report

    def _collect(self, parameters: Sequence[str]) -> _MergedTables:
        containment_frames: list[pd.DataFrame] = []
        summary_frames: dict[str, list[pd.DataFrame]] = {parameter: [] for parameter in parameters}
        detail_frames: dict[tuple[str, str], list[tuple[str, pd.DataFrame]]] = defaultdict(list)

        for shard_id in self.shard_ids:
            for artifact in self.reader.artifacts(CONTAINMENT_KIND, shard_id):
                frame = artifact.load()
                frame[_SOURCE_COLUMN] = shard_id
                containment_frames.append(frame)

            for artifact in self.reader.artifacts(ANNOTATE_KIND, shard_id):
                frame = artifact.load()
                frame[_SOURCE_COLUMN] = shard_id
                if artifact.kind == "summary":
                    summary_frames.setdefault(str(artifact.parameter), []).append(frame)
                elif artifact.kind == "detail":
                    detail_frames[(str(artifact.parameter), str(artifact.genome))].append((shard_id, frame))
                else:
                    raise AssertionError(f"Unexpected annotate artifact: {artifact.path}")

        ambiguities: list[ComputationAmbiguity] = []

        containment = _sorted(_concat(containment_frames, CONTAINMENT_COLUMNS), ["genome", "CAG"])
        ambiguities.extend(
            find_duplicate_keys(
                containment,
                ("genome", "CAG"),
                table_key=CONTAINMENT_KEY,
                source_column=_SOURCE_COLUMN,
            )
        )

        summaries: dict[str, pd.DataFrame] = {}
        for parameter, frames in summary_frames.items():
            summary = _sorted(_concat(frames, SUMMARY_COLUMNS), ["genome"])
            ambiguities.extend(
                find_duplicate_keys(
                    summary,
                    ("genome", "parameter"),
                    table_key=summary_key(parameter),
                    source_column=_SOURCE_COLUMN,
                )
            )
            summaries[parameter] = summary

        details: dict[tuple[str, str], pd.DataFrame] = {}
        for (parameter, genome), sourced in detail_frames.items():
            frames = [frame for _, frame in sourced]
            if len(frames) > 1:
                ambiguities.append(
                    ComputationAmbiguity(
                        table_key=detail_key(parameter, genome),
                        key_columns=("parameter", "genome"),
                        key_values=(parameter, genome),
                        row_count=sum(len(frame) for frame in frames),
                        sources=tuple(sorted(shard_id for shard_id, _ in sourced)),
                    )
                )
            details[(parameter, genome)] = pd.concat(frames, ignore_index=True)

        return _MergedTables(
            containment=containment,
            summaries=summaries,
            details=details,
            ambiguities=ambiguities,
        )
