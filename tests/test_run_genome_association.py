import json
import subprocess
import sys
from pathlib import Path

from conftest import SHARD_B_ROWS, write_alignments


def _write_run_config(path: Path, study_files: dict, analysis) -> Path:
    out = study_files["root"] / "out"
    path.write_text(
        json.dumps(
            {
                "analysis": analysis,
                "inputs": {
                    "alignment_shards": [str(study_files["shard_a"].parent / "*.tsv.gz")],
                    "contig_headers": str(study_files["contig_headers"]),
                    "gene_stats": str(study_files["gene_stats"]),
                    "cag_membership": str(study_files["cag_membership"]),
                    "genome_manifest": str(study_files["genome_manifest"]),
                    "output_store": str(out / "results.duckdb"),
                    "staging_dir": str(out / "staging"),
                },
            }
        )
    )
    return path


def _run(config_path: Path) -> subprocess.CompletedProcess:
    repo_root = Path(__file__).resolve().parents[1]
    return subprocess.run(
        [sys.executable, "scripts/run_genome_association.py", "--config", str(config_path)],
        cwd=repo_root,
        text=True,
        capture_output=True,
    )


def test_run_script_executes_pipeline(study_files, tmp_path: Path) -> None:
    config_path = _write_run_config(tmp_path / "run.json", study_files, "details")

    result = _run(config_path)

    assert result.returncode == 0, result.stderr
    payload = json.loads(result.stdout)
    assert payload["shards"] == 2
    assert payload["parameters"] == ["age", "treatment"]
    assert payload["detail_tables"] == 6
    assert payload["ambiguities"] == []
    assert Path(payload["output_store"]).exists()


def test_run_script_accepts_inline_analysis_settings(study_files, tmp_path: Path) -> None:
    config_path = _write_run_config(
        tmp_path / "run.json", study_files, {"alpha": 0.05, "fdr_method": "bonferroni", "workers": 2}
    )

    result = _run(config_path)

    assert result.returncode == 0, result.stderr
    assert json.loads(result.stdout)["detail_tables"] == 0


def test_run_script_reports_duplicate_keys(study_files, tmp_path: Path) -> None:
    # A second shard repeating shard_b's genomes produces colliding merge keys.
    write_alignments(study_files["shard_a"].parent / "shard_b_rerun.tsv.gz", SHARD_B_ROWS)
    config_path = _write_run_config(tmp_path / "run.json", study_files, "default")

    result = _run(config_path)

    assert result.returncode == 0, result.stderr
    ambiguities = json.loads(result.stdout)["ambiguities"]
    assert any("/genomes/cags/containment" in issue for issue in ambiguities)
    assert "duplicate" in result.stderr.lower()


def test_run_script_rejects_invalid_analysis_settings(study_files, tmp_path: Path) -> None:
    config_path = _write_run_config(tmp_path / "run.json", study_files, {"alpha": 2})

    result = _run(config_path)

    assert result.returncode != 0
    assert "Invalid analysis config" in result.stderr
    assert not (study_files["root"] / "out" / "results.duckdb").exists()
