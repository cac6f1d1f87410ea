import sys
import threading
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from conftest import SHARD_A_ROWS, SHARD_B_ROWS, alignment_row, write_alignments  # noqa: E402
from genomehub import (  # noqa: E402
    CONTAINMENT_KEY,
    MANIFEST_KEY,
    AnalysisConfig,
    DuckDBResultStore,
    ExecutorKind,
    GenomeAssociationPipeline,
    RunInputs,
    ShardFailedError,
    ValidationError,
    detail_key,
    summary_key,
)
import genomehub.pipeline as pipeline_module  # noqa: E402


def _inputs(study_files: dict, shards: list[Path], name: str = "run", **overrides) -> RunInputs:
    root = study_files["root"] / name
    values = dict(
        alignment_shards=tuple(shards),
        contig_headers=(study_files["contig_headers"],),
        gene_stats=study_files["gene_stats"],
        cag_membership=study_files["cag_membership"],
        genome_manifest=study_files["genome_manifest"],
        output_store=root / "results.duckdb",
        staging_dir=root / "staging",
    )
    values.update(overrides)
    return RunInputs(**values)


def _read_tables(path: Path) -> dict[str, pd.DataFrame]:
    with DuckDBResultStore(path, read_only=True) as store:
        return {key: store.read(key) for key in store.keys()}


def test_end_to_end_run_publishes_all_tables(study_files) -> None:
    inputs = _inputs(study_files, [study_files["shard_a"], study_files["shard_b"]])
    config = AnalysisConfig(alpha=0.2, details=True, workers=2, retry_backoff=0)

    report = GenomeAssociationPipeline(config=config, inputs=inputs).run()

    assert report.shards == 2
    assert report.parameters == ["age", "treatment"]
    assert report.alignment_rows == 6
    assert report.containment_rows == 3
    assert report.retries == 0
    assert report.ambiguities == []
    assert inputs.output_store.exists()
    assert not inputs.output_store.with_name("results.duckdb.tmp").exists()
    assert not inputs.staging_dir.exists()

    tables = _read_tables(inputs.output_store)
    assert "uri" not in tables[MANIFEST_KEY].columns
    treatment = tables[summary_key("treatment")].set_index("genome")
    assert treatment.loc["G1", "n_pass_fdr"] == 2
    assert np.isnan(treatment.loc["G2", "mean_estimate_among_fdr_pass"])
    assert detail_key("age", "G3") in tables

    payload = report.to_payload()
    assert payload["summary_rows"] == {"age": 3, "treatment": 3}


def test_sharding_does_not_change_results(study_files) -> None:
    combined = write_alignments(
        study_files["root"] / "combined.tsv.gz", SHARD_A_ROWS + SHARD_B_ROWS
    )
    g2_rows, g3_rows = SHARD_B_ROWS[:3], SHARD_B_ROWS[3:]
    split = [
        study_files["shard_a"],
        write_alignments(study_files["root"] / "only_g2.tsv.gz", g2_rows),
        write_alignments(study_files["root"] / "only_g3.tsv.gz", g3_rows),
    ]
    config = AnalysisConfig(retry_backoff=0, workers=3)

    single = GenomeAssociationPipeline(config=config, inputs=_inputs(study_files, [combined], "single")).run()
    sharded = GenomeAssociationPipeline(config=config, inputs=_inputs(study_files, split, "sharded")).run()

    one = _read_tables(single.output_store)
    many = _read_tables(sharded.output_store)
    for key in (CONTAINMENT_KEY, summary_key("treatment"), summary_key("age")):
        pd.testing.assert_frame_equal(one[key], many[key])


def test_failed_worker_is_retried(study_files, monkeypatch) -> None:
    real_load_shard = pipeline_module.load_shard
    failures = {"remaining": 1}
    lock = threading.Lock()

    def flaky_load_shard(path, index):
        with lock:
            if failures["remaining"]:
                failures["remaining"] -= 1
                raise OSError("transient read failure")
        return real_load_shard(path, index)

    monkeypatch.setattr(pipeline_module, "load_shard", flaky_load_shard)
    inputs = _inputs(study_files, [study_files["shard_a"]])

    report = GenomeAssociationPipeline(
        config=AnalysisConfig(max_retries=2, retry_backoff=0), inputs=inputs
    ).run()

    assert report.retries == 1
    assert report.containment_rows == 1


def test_exhausted_retries_abort_without_publishing(study_files, monkeypatch) -> None:
    def broken_load_shard(path, index):
        raise OSError("disk gone")

    monkeypatch.setattr(pipeline_module, "load_shard", broken_load_shard)
    inputs = _inputs(study_files, [study_files["shard_a"], study_files["shard_b"]])

    with pytest.raises(ShardFailedError, match="after 2 attempt"):
        GenomeAssociationPipeline(
            config=AnalysisConfig(max_retries=1, retry_backoff=0), inputs=inputs
        ).run()

    assert not inputs.output_store.exists()
    assert inputs.staging_dir.exists()


def test_unresolved_contig_fails_the_run(study_files) -> None:
    bad = write_alignments(
        study_files["root"] / "bad.tsv.gz", [alignment_row("c_missing", "g1", 1, 10, 100)]
    )
    inputs = _inputs(study_files, [bad])

    with pytest.raises(ShardFailedError) as excinfo:
        GenomeAssociationPipeline(config=AnalysisConfig(max_retries=0), inputs=inputs).run()

    assert isinstance(excinfo.value.__cause__, ValidationError)
    assert not inputs.output_store.exists()


def test_missing_input_column_fails_before_any_work(study_files) -> None:
    pd.DataFrame({"contig": ["c1"], "genome_id": ["G1"]}).to_csv(
        study_files["contig_headers"], index=False
    )
    inputs = _inputs(study_files, [study_files["shard_a"]])

    with pytest.raises(ValidationError, match="genome"):
        GenomeAssociationPipeline(config=AnalysisConfig(), inputs=inputs).run()

    assert not inputs.staging_dir.exists()


def test_missing_shard_file_fails_before_any_work(study_files) -> None:
    inputs = _inputs(study_files, [study_files["root"] / "absent.tsv.gz"])

    with pytest.raises(ValidationError, match="not found"):
        GenomeAssociationPipeline(config=AnalysisConfig(), inputs=inputs).run()


def test_duplicate_shard_ids_are_rejected(study_files) -> None:
    other_dir = study_files["root"] / "elsewhere"
    other_dir.mkdir()
    twin = write_alignments(other_dir / "shard_a.tsv.gz", SHARD_A_ROWS)
    inputs = _inputs(study_files, [study_files["shard_a"], twin])

    with pytest.raises(ValidationError, match="shard_a"):
        GenomeAssociationPipeline(config=AnalysisConfig(), inputs=inputs).run()


def test_run_extends_base_store_and_exports_parquet(study_files) -> None:
    base = study_files["root"] / "base.duckdb"
    with DuckDBResultStore(base) as store:
        store.write("/abund/cag/wide", pd.DataFrame({"CAG": ["5"], "sample1": [0.3]}))
    export_dir = study_files["root"] / "export"
    inputs = _inputs(
        study_files,
        [study_files["shard_a"]],
        base_store=base,
        parquet_export_dir=export_dir,
    )

    GenomeAssociationPipeline(config=AnalysisConfig(retry_backoff=0), inputs=inputs).run()

    tables = _read_tables(inputs.output_store)
    assert "/abund/cag/wide" in tables
    assert CONTAINMENT_KEY in tables
    assert (export_dir / "genomes" / "cags" / "containment.parquet").exists()
    # The base store itself is left untouched.
    with DuckDBResultStore(base, read_only=True) as store:
        assert store.keys() == ["/abund/cag/wide"]


def test_process_executor_matches_thread_executor(study_files) -> None:
    shards = [study_files["shard_a"], study_files["shard_b"]]
    threaded = GenomeAssociationPipeline(
        config=AnalysisConfig(workers=2, retry_backoff=0),
        inputs=_inputs(study_files, shards, "threads"),
    ).run()
    processes = GenomeAssociationPipeline(
        config=AnalysisConfig(workers=2, retry_backoff=0, executor=ExecutorKind.PROCESS),
        inputs=_inputs(study_files, shards, "processes"),
    ).run()

    pd.testing.assert_frame_equal(
        _read_tables(threaded.output_store)[CONTAINMENT_KEY],
        _read_tables(processes.output_store)[CONTAINMENT_KEY],
    )


def test_staged_artifacts_can_be_kept_for_inspection(study_files) -> None:
    inputs = _inputs(study_files, [study_files["shard_a"]], keep_staging=True)

    GenomeAssociationPipeline(config=AnalysisConfig(retry_backoff=0), inputs=inputs).run()

    assert (inputs.staging_dir / "annotate" / "shard_a" / "_COMPLETE.json").exists()
    assert (inputs.staging_dir / "containment" / "shard_a" / "containment.parquet").exists()
