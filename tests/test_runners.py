import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from genomehub.config import AnalysisConfig  # noqa: E402
from genomehub.models import ALIGNMENT_COLUMNS  # noqa: E402
from genomehub.runners import DIAMOND_OUTFMT_FIELDS, DiamondOptions, run_diamond  # noqa: E402


def test_build_cmd_carries_thresholds_and_field_order() -> None:
    options = DiamondOptions.from_config(
        AnalysisConfig(min_identity=90, min_coverage=75.5),
        query_fasta="genome.fna.gz",
        db_path="genes.dmnd",
        output_path="out/genome",
        threads=8,
    )

    cmd = options.build_cmd()

    assert cmd[:2] == ["diamond", "blastx"]
    assert cmd[cmd.index("--id") + 1] == "90"
    assert cmd[cmd.index("--subject-cover") + 1] == "75.5"
    assert cmd[cmd.index("--threads") + 1] == "8"
    outfmt = cmd.index("--outfmt")
    assert cmd[outfmt + 1 : outfmt + 2 + len(DIAMOND_OUTFMT_FIELDS)] == ["6", *DIAMOND_OUTFMT_FIELDS]
    assert "--block-size" not in cmd


def test_outfmt_matches_alignment_columns() -> None:
    assert len(DIAMOND_OUTFMT_FIELDS) == len(ALIGNMENT_COLUMNS)


def test_optional_arguments_are_appended() -> None:
    options = DiamondOptions(
        query_fasta="q.fna",
        db_path="db",
        output_path="o",
        block_size=4,
        extra_args=("--sensitive",),
        exe="/opt/diamond",
    )

    cmd = options.build_cmd()

    assert cmd[0] == "/opt/diamond"
    assert cmd[cmd.index("--block-size") + 1] == "4"
    assert cmd[-1] == "--sensitive"


def test_run_diamond_requires_inputs(tmp_path: Path) -> None:
    options = DiamondOptions(
        query_fasta=str(tmp_path / "missing.fna"),
        db_path=str(tmp_path / "genes"),
        output_path=str(tmp_path / "out"),
    )

    with pytest.raises(FileNotFoundError, match="Query FASTA"):
        run_diamond(options)

    (tmp_path / "missing.fna").write_text(">c1\nACGT\n")
    with pytest.raises(FileNotFoundError, match="DIAMOND database"):
        run_diamond(options)
