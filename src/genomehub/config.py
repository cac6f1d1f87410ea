"""Configuration contracts for genome association runs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from jsonschema import exceptions as jsex
from jsonschema.validators import validator_for


FDR_METHODS: tuple[str, ...] = (
    "bonferroni",
    "sidak",
    "holm-sidak",
    "holm",
    "simes-hochberg",
    "hommel",
    "fdr_bh",
    "fdr_by",
    "fdr_tsbh",
    "fdr_tsbky",
)

MANIFEST_KEY = "/genomes/manifest"
CONTAINMENT_KEY = "/genomes/cags/containment"
SUMMARY_PREFIX = "/genomes/summary"
DETAIL_PREFIX = "/genomes/detail"


def encode_component(value: str) -> str:
    """Percent-encode an opaque id so it is a single safe path component."""

    encoded = quote(str(value), safe="")
    if encoded in {"", ".", ".."}:
        encoded = encoded.replace(".", "%2E") or "%00"
    return encoded


def decode_component(value: str) -> str:
    if value == "%00":
        return ""
    return unquote(value)


# Ids are encoded so that distinct (parameter, genome) pairs never share a key.
def summary_key(parameter: str) -> str:
    return f"{SUMMARY_PREFIX}/{encode_component(parameter)}"


def detail_key(parameter: str, genome: str) -> str:
    return f"{DETAIL_PREFIX}/{encode_component(parameter)}/{encode_component(genome)}"


class DuplicatePolicy(str, Enum):
    """How the merge reacts to duplicate keys arriving from different shards."""

    WARN = "warn"
    ERROR = "error"


class ExecutorKind(str, Enum):
    """Executor used to fan shard workers out."""

    THREAD = "thread"
    PROCESS = "process"


@dataclass(frozen=True)
class AnalysisConfig:
    """Statistical and runtime settings for one genome association run.

    ``min_coverage`` and ``min_identity`` are only handed to the external
    aligner; the aggregation stages never filter on them.
    """

    fdr_method: str = "fdr_bh"
    alpha: float = 0.2
    details: bool = False
    parameter_prefix: str = "mu."
    intercept_label: str = "(Intercept)"
    min_coverage: float = 50.0
    min_identity: float = 50.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    workers: int = 1
    executor: ExecutorKind = ExecutorKind.THREAD
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.WARN

    def __post_init__(self) -> None:
        if self.fdr_method not in FDR_METHODS:
            raise ValueError(
                f"Unknown fdr_method '{self.fdr_method}'. Available: {', '.join(FDR_METHODS)}"
            )
        if not 0 < self.alpha < 1:
            raise ValueError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        for name in ("min_coverage", "min_identity"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be a percentage, got {value}")

    @property
    def intercept_parameter(self) -> str:
        """Full parameter label of the baseline row excluded before pivoting."""

        return f"{self.parameter_prefix}{self.intercept_label}"


@dataclass(frozen=True)
class RunInputs:
    """Filesystem locations consumed and produced by a pipeline run.

    ``staging_dir`` is removed after a successful publish unless
    ``keep_staging`` is set; a failed run always leaves it in place.
    """

    alignment_shards: tuple[Path, ...]
    contig_headers: tuple[Path, ...]
    gene_stats: Path
    cag_membership: Path
    genome_manifest: Path
    output_store: Path
    staging_dir: Path
    base_store: Path | None = None
    parquet_export_dir: Path | None = None
    keep_staging: bool = False

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> "RunInputs":
        """Build inputs from a JSON-style mapping; list fields accept a single path."""

        def _paths(value: Any) -> tuple[Path, ...]:
            if isinstance(value, (str, Path)):
                return (Path(value),)
            return tuple(Path(item) for item in value)

        def _optional(value: Any) -> Path | None:
            return Path(value) if value else None

        return cls(
            alignment_shards=_paths(payload["alignment_shards"]),
            contig_headers=_paths(payload["contig_headers"]),
            gene_stats=Path(payload["gene_stats"]),
            cag_membership=Path(payload["cag_membership"]),
            genome_manifest=Path(payload["genome_manifest"]),
            output_store=Path(payload["output_store"]),
            staging_dir=Path(payload["staging_dir"]),
            base_store=_optional(payload.get("base_store")),
            parquet_export_dir=_optional(payload.get("parquet_export_dir")),
            keep_staging=bool(payload.get("keep_staging", False)),
        )


ANALYSIS_CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "name": {"type": "string"},
        "description": {"type": "string"},
        "fdr_method": {"enum": list(FDR_METHODS)},
        "alpha": {"type": "number", "exclusiveMinimum": 0, "exclusiveMaximum": 1},
        "details": {"type": "boolean"},
        "parameter_prefix": {"type": "string"},
        "intercept_label": {"type": "string"},
        "min_coverage": {"type": "number", "minimum": 0, "maximum": 100},
        "min_identity": {"type": "number", "minimum": 0, "maximum": 100},
        "max_retries": {"type": "integer", "minimum": 0},
        "retry_backoff": {"type": "number", "minimum": 0},
        "workers": {"type": "integer", "minimum": 1},
        "executor": {"enum": [kind.value for kind in ExecutorKind]},
        "duplicate_policy": {"enum": [policy.value for policy in DuplicatePolicy]},
    },
}


class AnalysisConfigLoader:
    """Load analysis settings from ``config/analysis`` JSON or a custom path."""

    def __init__(self, config_dir: str | Path | None = None) -> None:
        if config_dir is None:
            config_dir = Path(__file__).resolve().parents[2] / "config" / "analysis"
        self.config_dir = Path(config_dir)
        validator_cls = validator_for(ANALYSIS_CONFIG_SCHEMA)
        validator_cls.check_schema(ANALYSIS_CONFIG_SCHEMA)
        self._validator = validator_cls(ANALYSIS_CONFIG_SCHEMA)

    def list_configs(self) -> list[str]:
        """Return available config names from the configured directory."""

        return sorted(path.stem for path in self.config_dir.glob("*.json"))

    def load(self, name_or_path: str | Path) -> AnalysisConfig:
        """Load a config by name (for example, ``default``) or explicit path."""

        path = self._resolve_path(name_or_path)
        payload = json.loads(path.read_text())
        return self.parse(payload)

    def parse(self, payload: dict[str, Any]) -> AnalysisConfig:
        """Validate a raw mapping and convert it into an :class:`AnalysisConfig`."""

        errors = sorted(self._validator.iter_errors(payload), key=jsex.relevance)
        if errors:
            messages = "; ".join(
                f"{'/'.join(str(part) for part in error.absolute_path) or '<root>'}: {error.message}"
                for error in errors
            )
            raise ValueError(f"Invalid analysis config: {messages}")

        known = {item.name for item in fields(AnalysisConfig)}
        kwargs: dict[str, Any] = {key: value for key, value in payload.items() if key in known}
        if "executor" in kwargs:
            kwargs["executor"] = ExecutorKind(kwargs["executor"])
        if "duplicate_policy" in kwargs:
            kwargs["duplicate_policy"] = DuplicatePolicy(kwargs["duplicate_policy"])
        return AnalysisConfig(**kwargs)

    def _resolve_path(self, name_or_path: str | Path) -> Path:
        requested = Path(name_or_path)

        if requested.exists():
            return requested

        candidate = self.config_dir / f"{requested}.json"
        if candidate.exists():
            return candidate

        raise FileNotFoundError(
            f"Analysis config not found: {name_or_path}. Available: {', '.join(self.list_configs())}"
        )
