"""On-disk shard artifacts exchanged between shard workers and the merge.

Each worker owns one directory, ``<root>/<kind>/<shard>/``, and finishes by
writing ``_COMPLETE.json``. The merge only reads directories that carry the
marker, so a crashed or retried worker never leaks partial tables.
"""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from genomehub.config import decode_component, encode_component
from genomehub.models import (
    CONTAINMENT_SCHEMA,
    SUMMARY_SCHEMA,
    AnnotationShardResult,
    ContainmentShardResult,
)
from genomehub.storage import read_parquet, write_parquet

ANNOTATE_KIND = "annotate"
CONTAINMENT_KIND = "containment"
COMPLETE_MARKER = "_COMPLETE.json"
_MARKER_VERSION = 1


@dataclass(frozen=True)
class ShardArtifact:
    """One staged table produced by a shard worker."""

    kind: str
    shard_id: str
    path: Path
    parameter: str | None = None
    genome: str | None = None

    def load(self) -> pd.DataFrame:
        return read_parquet(self.path)


class ShardArtifactWriter:
    """Write the artifacts of one (kind, shard) worker."""

    def __init__(self, staging_root: str | Path, kind: str, shard_id: str) -> None:
        if kind not in (ANNOTATE_KIND, CONTAINMENT_KIND):
            raise ValueError(f"Unknown artifact kind: {kind}")
        self.staging_root = Path(staging_root)
        self.kind = kind
        self.shard_id = shard_id
        self.shard_dir = self.staging_root / kind / encode_component(shard_id)

    def reset(self) -> None:
        """Remove anything a previous attempt left behind."""

        if self.shard_dir.exists():
            shutil.rmtree(self.shard_dir)

    def write_annotation(self, result: AnnotationShardResult) -> Path:
        artifacts: dict[str, int] = {}
        for parameter, summary in sorted(result.summaries.items()):
            relative = Path("summary") / f"{encode_component(parameter)}.parquet"
            write_parquet(summary, self.shard_dir / relative, schema=SUMMARY_SCHEMA)
            artifacts[relative.as_posix()] = len(summary)

        for (parameter, genome), detail in sorted(result.details.items()):
            relative = (
                Path("detail")
                / encode_component(parameter)
                / f"{encode_component(genome)}.parquet"
            )
            write_parquet(detail, self.shard_dir / relative)
            artifacts[relative.as_posix()] = len(detail)

        return self._complete(artifacts)

    def write_containment(self, result: ContainmentShardResult) -> Path:
        relative = Path("containment.parquet")
        write_parquet(result.containment, self.shard_dir / relative, schema=CONTAINMENT_SCHEMA)
        return self._complete({relative.as_posix(): len(result.containment)})

    def _complete(self, artifacts: dict[str, int]) -> Path:
        marker = self.shard_dir / COMPLETE_MARKER
        marker.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": _MARKER_VERSION,
            "kind": self.kind,
            "shard_id": self.shard_id,
            "artifacts": artifacts,
            "completed_utc": datetime.now(timezone.utc).isoformat(),
        }
        marker.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n")
        return marker


class ShardArtifactReader:
    """Enumerate completed shard artifacts under a staging root."""

    def __init__(self, staging_root: str | Path) -> None:
        self.staging_root = Path(staging_root)

    def completed_shards(self, kind: str) -> list[str]:
        kind_dir = self.staging_root / kind
        if not kind_dir.is_dir():
            return []
        return sorted(
            decode_component(path.name)
            for path in kind_dir.iterdir()
            if (path / COMPLETE_MARKER).is_file()
        )

    def artifacts(self, kind: str, shard_id: str) -> list[ShardArtifact]:
        """List a completed shard's tables.

        Files that do not match the expected layout, or that disagree with
        the completion marker, raise ``AssertionError``: the merge is
        closed-world.
        """

        shard_dir = self.staging_root / kind / encode_component(shard_id)
        marker = shard_dir / COMPLETE_MARKER
        if not marker.is_file():
            raise FileNotFoundError(f"Shard {kind}/{shard_id} has no completion marker")

        declared = set(json.loads(marker.read_text()).get("artifacts", {}))
        found: list[ShardArtifact] = []
        for path in sorted(shard_dir.rglob("*")):
            if not path.is_file() or path == marker:
                continue
            relative = path.relative_to(shard_dir)
            if relative.as_posix() not in declared:
                raise AssertionError(f"Unexpected artifact in shard {kind}/{shard_id}: {relative}")
            found.append(self._classify(kind, shard_id, relative, path))

        missing = declared - {artifact.path.relative_to(shard_dir).as_posix() for artifact in found}
        if missing:
            raise AssertionError(
                f"Shard {kind}/{shard_id} is missing declared artifact(s): {', '.join(sorted(missing))}"
            )
        return found

    @staticmethod
    def _classify(kind: str, shard_id: str, relative: Path, path: Path) -> ShardArtifact:
        parts = relative.parts
        if path.suffix != ".parquet":
            raise AssertionError(f"Unexpected artifact in shard {kind}/{shard_id}: {relative}")

        if kind == CONTAINMENT_KIND and parts == ("containment.parquet",):
            return ShardArtifact(kind="containment", shard_id=shard_id, path=path)

        if kind == ANNOTATE_KIND and len(parts) == 2 and parts[0] == "summary":
            return ShardArtifact(
                kind="summary",
                shard_id=shard_id,
                path=path,
                parameter=decode_component(Path(parts[1]).stem),
            )

        if kind == ANNOTATE_KIND and len(parts) == 3 and parts[0] == "detail":
            return ShardArtifact(
                kind="detail",
                shard_id=shard_id,
                path=path,
                parameter=decode_component(parts[1]),
                genome=decode_component(Path(parts[2]).stem),
            )

        raise AssertionError(f"Unexpected artifact in shard {kind}/{shard_id}: {relative}")
