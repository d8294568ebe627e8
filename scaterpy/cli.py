"""Command-line interfaces for scaterpy QC runs and expression plots."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Iterable

from scaterpy.config import load_json_config
from scaterpy.core.assays import assay_names, set_counts
from scaterpy.normalization import normalize
from scaterpy.pipeline.io import ensure_dir


def _read_adata(h5ad_path: str):
    path = Path(h5ad_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file '{h5ad_path}' not found.")
    import scanpy as sc

    return sc.read_h5ad(path)


def qc_main(argv: Iterable[str] | None = None) -> int:
    """Run the QC report pipeline.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success).
    """
    parser = argparse.ArgumentParser(description="scaterpy QC report")
    parser.add_argument("--config", default=None, help="Path to a JSON QC config")
    parser.add_argument("--h5ad", default=None, help="Path to .h5ad file (overrides config)")
    parser.add_argument("--outdir", default=None, help="Output directory (overrides config)")
    parser.add_argument(
        "--mito-prefix",
        default=None,
        help="Feature name prefix of a 'mito' feature control set, e.g. MT-",
    )
    parser.add_argument("--nmads", type=float, default=None, help="MADs for outlier calls")
    parser.add_argument(
        "--discard-outliers", action="store_true", help="Drop flagged cells before normalising"
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    cfg: dict[str, Any] = load_json_config(args.config) if args.config else {}
    if args.h5ad is not None:
        cfg["h5ad_path"] = args.h5ad
    if args.outdir is not None:
        cfg["outdir"] = args.outdir
    if args.mito_prefix:
        controls = dict(cfg.get("feature_controls", {}))
        controls["mito"] = {"prefix": args.mito_prefix}
        cfg["feature_controls"] = controls
    if args.nmads is not None:
        cfg["nmads"] = args.nmads
    if args.discard_outliers:
        cfg["discard_outliers"] = True
    if "h5ad_path" not in cfg:
        parser.error("either --config with 'h5ad_path' or --h5ad is required")

    from scaterpy.pipeline.qc_report import run_qc_pipeline

    meta = run_qc_pipeline(cfg)
    print(f"cells_in={meta['n_cells_in']}")
    print(f"cells_out={meta['n_cells_out']}")
    print(f"outliers={meta['outliers']['n_discard']}")
    return 0


def plot_expression_main(argv: Iterable[str] | None = None) -> int:
    """Draw `plot_expression` for features of an `.h5ad` file.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success).
    """
    parser = argparse.ArgumentParser(description="scaterpy expression plot")
    parser.add_argument("--h5ad", required=True, help="Path to .h5ad file")
    parser.add_argument("--features", nargs="+", required=True, help="Feature names")
    parser.add_argument("--out", required=True, help="Output PNG path")
    parser.add_argument("--x", default=None, help="Cell metadata column or feature for x")
    parser.add_argument("--colour-by", default=None, help="Colour points by this variable")
    parser.add_argument("--shape-by", default=None, help="Shape points by this variable")
    parser.add_argument("--size-by", default=None, help="Size points by this variable")
    parser.add_argument("--exprs-values", default="logcounts", help="Layer to plot")
    parser.add_argument("--log2", action="store_true", help="Plot log2(x + 1) values")
    parser.add_argument(
        "--separate-facets",
        action="store_true",
        help="One panel per feature instead of a shared panel",
    )
    parser.add_argument("--ncol", type=int, default=2, help="Facet columns")
    parser.add_argument(
        "--jitter-type", choices=("swarm", "jitter"), default="swarm", help="Point spread"
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    adata = _read_adata(args.h5ad)
    if "counts" not in assay_names(adata):
        set_counts(adata, adata.X)
    if args.exprs_values == "logcounts" and "logcounts" not in assay_names(adata):
        normalize(adata)

    from scaterpy.plotting.expression import plot_expression

    plot = plot_expression(
        adata,
        args.features,
        x=args.x,
        exprs_values=args.exprs_values,
        log2_values=args.log2,
        colour_by=args.colour_by,
        shape_by=args.shape_by,
        size_by=args.size_by,
        one_facet=not args.separate_facets,
        ncol=args.ncol,
        jitter_type=args.jitter_type,
    )
    out = Path(args.out)
    ensure_dir(out.parent)
    plot.save(out)
    print(f"figure={out.as_posix()}")
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(description="scaterpy CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("qc", help="Run the QC report pipeline", add_help=False)
    sub.add_parser("plot-expression", help="Plot feature expression", add_help=False)

    args, remainder = parser.parse_known_args(list(argv) if argv is not None else None)
    if args.command == "qc":
        return qc_main(remainder)
    if args.command == "plot-expression":
        return plot_expression_main(remainder)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
