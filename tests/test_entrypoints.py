from __future__ import annotations

import json
from pathlib import Path

import pytest

from scaterpy import cli
from scaterpy.pipeline import qc_report


def test_qc_subcommand_merges_config_and_overrides(monkeypatch, tmp_path: Path, capsys):
    cfg_path = tmp_path / "qc.json"
    cfg_path.write_text(json.dumps({"h5ad_path": "a.h5ad", "nmads": 4}), encoding="utf-8")
    called: list[dict] = []

    def _fake_run(cfg):
        called.append(cfg)
        return {"n_cells_in": 10, "n_cells_out": 8, "outliers": {"n_discard": 2}}

    monkeypatch.setattr(qc_report, "run_qc_pipeline", _fake_run)
    rc = cli.main(
        [
            "qc",
            "--config",
            str(cfg_path),
            "--outdir",
            str(tmp_path / "out"),
            "--mito-prefix",
            "MT-",
            "--discard-outliers",
        ]
    )
    assert rc == 0
    assert called == [
        {
            "h5ad_path": "a.h5ad",
            "nmads": 4,
            "outdir": str(tmp_path / "out"),
            "feature_controls": {"mito": {"prefix": "MT-"}},
            "discard_outliers": True,
        }
    ]
    assert "outliers=2" in capsys.readouterr().out


def test_qc_subcommand_requires_input():
    with pytest.raises(SystemExit):
        cli.main(["qc"])


def test_plot_expression_subcommand(tmp_path: Path, capsys):
    from conftest import build_example_adata

    h5ad = tmp_path / "example.h5ad"
    adata = build_example_adata()
    adata.layers.pop("counts")
    adata.write_h5ad(h5ad)
    out = tmp_path / "plots" / "expr.png"
    rc = cli.main(
        [
            "plot-expression",
            "--h5ad",
            str(h5ad),
            "--features",
            "Gene_0001",
            "Gene_0002",
            "--x",
            "Treatment",
            "--colour-by",
            "Cell_Cycle",
            "--out",
            str(out),
        ]
    )
    assert rc == 0
    assert out.exists()
    assert f"figure={out.as_posix()}" in capsys.readouterr().out


def test_missing_input_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError, match="not found"):
        cli.main(
            [
                "plot-expression",
                "--h5ad",
                str(tmp_path / "missing.h5ad"),
                "--features",
                "Gene_0001",
                "--out",
                str(tmp_path / "x.png"),
            ]
        )


def test_unknown_subcommand():
    with pytest.raises(SystemExit):
        cli.main(["smoke"])
