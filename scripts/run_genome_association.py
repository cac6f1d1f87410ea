#!/usr/bin/env python3
"""Run a genome association pipeline from a JSON run config."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from genomehub import (  # noqa: E402
    AnalysisConfigLoader,
    GenomeAssociationPipeline,
    RunInputs,
)
from genomehub.adapters import expand_input_paths  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Associate reference genomes with CAGs")
    parser.add_argument("--config", required=True, help="Path to run JSON config")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def load_json(path: str | Path) -> dict[str, Any]:
    return json.loads(Path(path).read_text())


def build_inputs(config: dict[str, Any]) -> RunInputs:
    """Resolve shard globs/directories before handing paths to the pipeline."""

    inputs = dict(config["inputs"])
    inputs["alignment_shards"] = [str(path) for path in expand_input_paths(inputs["alignment_shards"])]
    return RunInputs.from_mapping(inputs)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("genomehub.pipeline")

    config = load_json(args.config)
    loader = AnalysisConfigLoader(config.get("analysis_dir"))
    if "analysis_path" in config:
        analysis = loader.load(config["analysis_path"])
    elif isinstance(config.get("analysis"), dict):
        analysis = loader.parse(config["analysis"])
    else:
        analysis = loader.load(config.get("analysis", "default"))

    inputs = build_inputs(config)
    if not inputs.alignment_shards:
        raise ValueError("No alignment shards matched inputs.alignment_shards")

    report = GenomeAssociationPipeline(config=analysis, inputs=inputs, logger=logger).run()
    print(json.dumps(report.to_payload(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
