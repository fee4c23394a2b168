#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/fit.py

"""
Command-line fitting of the power-law and mixture models to degree counts.

The script loads a one-dimensional sample of counts, optionally drops zeros,
runs one Metropolis-Hastings chain for the selected model at threshold u and
prints a posterior report. Optionally, the trace is written to CSV and the
trace, survival and PMF figures are saved as PDF.

Examples
--------
# Power law on the exceedances of a degree file:
python -m cranfit.fit --model pl --u 5 --input degrees.csv --column degree

# Mixture, inline values, saving figures and the trace:
cranfit --model mix --u 10 --values 1 2 2 3 5 8 13 21 --drop-zeros \\
        --save-prefix ./images/mix --save-trace trace.csv --no-plot
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .mcmc import MCMCResult, mcmc_mix, mcmc_pl
from .priors import UniformPrior, param_names
from .utils import ensure_images_dir, plot_pmf_fit, plot_survival_fit, plot_trace, print_fit_report


# =============================================================================
# Data loading
# =============================================================================
def _load_vector_from_path(path: str, *, column: Optional[str], key: Optional[str]) -> np.ndarray:
    """
    Load a 1D count sample from disk.

    Supported formats:
    - .npy: NumPy array
    - .npz: NumPy archive (use --key to select an array, otherwise take the first)
    - .csv/.txt: comma-separated table with header (first numeric column unless --column)
    """
    path = os.path.abspath(path)
    if not os.path.exists(path):
        raise FileNotFoundError(path)

    ext = os.path.splitext(path)[1].lower()

    if ext == ".npy":
        return np.asarray(np.load(path), dtype=float).reshape(-1)

    if ext == ".npz":
        zf = np.load(path)
        if key is not None:
            if key not in zf:
                raise KeyError(f"Key {key!r} not in npz archive.")
            return np.asarray(zf[key], dtype=float).reshape(-1)
        k0 = sorted(zf.files)[0]
        return np.asarray(zf[k0], dtype=float).reshape(-1)

    if ext in {".csv", ".txt"}:
        df = pd.read_csv(path)
        if column is None:
            num_cols = [c for c in df.columns if np.issubdtype(df[c].dtype, np.number)]
            if not num_cols:
                raise RuntimeError("No numeric columns found. Specify --column.")
            column = num_cols[0]
        return np.asarray(df[column].values, dtype=float).reshape(-1)

    raise RuntimeError(f"Unsupported input format: {ext}")


def _parse_numbers(text: str) -> np.ndarray:
    """Parse comma or whitespace separated numbers."""
    tokens = text.replace(",", " ").split()
    return np.asarray([float(t) for t in tokens], dtype=float)


def _load_vector(args: argparse.Namespace) -> np.ndarray:
    """Load the input sample either from file, CLI values, or stdin."""
    if args.values is not None and len(args.values) > 0:
        return _parse_numbers(" ".join(args.values))
    if args.input is not None:
        return _load_vector_from_path(args.input, column=args.column, key=args.key)
    return _parse_numbers(sys.stdin.read())


def _preprocess_sample(x: np.ndarray, *, drop_zeros: bool) -> np.ndarray:
    """Keep finite values and, if requested, remove zero counts."""
    x = np.asarray(x, dtype=float).reshape(-1)
    x = x[np.isfinite(x)]
    if drop_zeros:
        x = x[x != 0.0]
    return x


# =============================================================================
# Fitting
# =============================================================================
def _build_prior(args: argparse.Namespace) -> UniformPrior:
    prior = UniformPrior.default(args.model)
    overrides = {}
    for name in param_names(args.model):
        bounds = getattr(args, f"{name}_bounds")
        if bounds is not None:
            overrides[name] = (float(bounds[0]), float(bounds[1]))
    return prior.updated(**overrides) if overrides else prior


def fit_sample(x: np.ndarray, args: argparse.Namespace) -> MCMCResult:
    """Run the chain selected by the parsed CLI arguments."""
    prior = _build_prior(args)
    common = dict(
        prior=prior,
        n_iter=int(args.n_iter),
        burnin=int(args.burnin),
        thin=int(args.thin),
        seed=args.seed,
        verbose=bool(args.verbose),
    )
    if args.model == "pl":
        return mcmc_pl(x, int(args.u), float(args.xi1), scale=args.scale, **common)
    return mcmc_mix(x, int(args.u), float(args.r), float(args.mu), float(args.xi1),
                    scheme=args.scheme, **common)


def _write_outputs(x: np.ndarray, result: MCMCResult, args: argparse.Namespace) -> None:
    if args.save_trace:
        out_dir = os.path.dirname(os.path.abspath(args.save_trace))
        os.makedirs(out_dir, exist_ok=True)
        result.trace.to_frame().to_csv(args.save_trace, index=False)
        print(f"Trace written to {args.save_trace}")

    if args.no_plot and not args.save_prefix:
        return

    show = not args.no_plot
    save = {}
    if args.save_prefix:
        ensure_images_dir(os.path.dirname(os.path.abspath(args.save_prefix)))
        save = {tag: f"{args.save_prefix}_{tag}.pdf" for tag in ("trace", "survival", "pmf")}

    plot_trace(result, save_path=save.get("trace"), show=show)
    plot_survival_fit(x, result, save_path=save.get("survival"), show=show)
    plot_pmf_fit(x, result, save_path=save.get("pmf"), show=show)


# =============================================================================
# Main execution
# =============================================================================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bayesian MCMC fit of a discrete power law or a bulk-plus-power-law mixture to degree counts.")

    parser.add_argument("--input", type=str, default=None, help="Path to input data (.npy/.npz/.csv/.txt). If omitted, reads from stdin.")
    parser.add_argument("--column", type=str, default=None, help="Column name for CSV input.")
    parser.add_argument("--key", type=str, default=None, help="Array key for NPZ input.")
    parser.add_argument("--values", nargs="*", default=None, help="Inline numeric values (comma or space separated).")
    parser.add_argument("--drop-zeros", action="store_true", help="Remove zero counts before fitting.")

    parser.add_argument("--model", choices=["pl", "mix"], default="pl", help="Power law on exceedances (pl) or full-sample mixture (mix).")
    parser.add_argument("--u", type=int, required=True, help="Threshold (positive integer).")

    parser.add_argument("--xi1", type=float, default=1.0, help="Initial tail index xi1 = 1/(alpha-1).")
    parser.add_argument("--r", type=float, default=1.0, help="Initial bulk size (mix only).")
    parser.add_argument("--mu", type=float, default=1.0, help="Initial bulk mean of x-1 (mix only).")
    parser.add_argument("--scale", type=float, default=None, help="Initial proposal sd of xi1 (pl only).")
    parser.add_argument("--xi1-bounds", dest="xi1_bounds", nargs=2, type=float, default=None, metavar=("A", "B"))
    parser.add_argument("--r-bounds", dest="r_bounds", nargs=2, type=float, default=None, metavar=("A", "B"))
    parser.add_argument("--mu-bounds", dest="mu_bounds", nargs=2, type=float, default=None, metavar=("A", "B"))

    parser.add_argument("--n-iter", type=int, default=10000, help="Number of retained draws.")
    parser.add_argument("--burnin", type=int, default=2000, help="Burn-in (adaptation) iterations.")
    parser.add_argument("--thin", type=int, default=1, help="Keep every thin-th post-burn-in iteration.")
    parser.add_argument("--scheme", choices=["componentwise", "block"], default="componentwise", help="Update scheme (mix only).")
    parser.add_argument("--seed", type=int, default=None, help="Random seed.")
    parser.add_argument("--verbose", action="store_true", help="Print sampler progress.")

    parser.add_argument("--save-trace", type=str, default=None, help="Write the trace to this CSV file.")
    parser.add_argument("--no-plot", action="store_true", help="Do not display figures.")
    parser.add_argument("--save-prefix", type=str, default=None,
                        help="If provided, saves figures to '<prefix>_trace.pdf', '<prefix>_survival.pdf' and '<prefix>_pmf.pdf'.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    x_raw = _load_vector(args)
    x = _preprocess_sample(x_raw, drop_zeros=bool(args.drop_zeros))
    if x.size == 0:
        raise RuntimeError("No usable data after preprocessing. Check the input values.")

    print(f"\nInput summary: n={x.size}, min={x.min():g}, max={x.max():g}, model={args.model}, u={args.u}")

    result = fit_sample(x, args)
    print_fit_report(result)
    _write_outputs(x, result, args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
