#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/utils.py

"""
Plotting and reporting utilities for fitted degree distributions.

The functions here only consume the public outputs of the sampler (MCMCResult
and its Trace) and the vectorised distribution functions; nothing in this
module feeds back into inference.

Figures follow one convention: 10x8 inches, log-log axes for frequency and
survival plots, large tick labels, optional export to `save_path`.
"""

from __future__ import annotations

import os
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt

from . import distributions as dist
from .mcmc import MCMCResult

Array = np.ndarray

__all__ = [
    "ensure_images_dir",
    "degree_frequencies",
    "fitted_curves",
    "plot_trace",
    "plot_survival_fit",
    "plot_pmf_fit",
    "format_summary_table",
    "print_fit_report",
]


# =============================================================================
# Small helpers
# =============================================================================
def ensure_images_dir(base_dir: str = "./images", sub: Optional[str] = None) -> str:
    """Create (if needed) and return the figure directory base_dir[/sub]."""
    images_dir = base_dir if sub is None else os.path.join(base_dir, str(sub))
    os.makedirs(images_dir, exist_ok=True)
    return images_dir


def degree_frequencies(x: Sequence[float]) -> Tuple[Array, Array, Array]:
    """
    Empirical frequency and survival of a count sample.

    Returns
    -------
    values:
        Sorted distinct values.
    freq:
        Relative frequency of each value.
    surv:
        Empirical P(X >= value).
    """
    v = np.asarray(x, dtype=float).reshape(-1)
    v = v[np.isfinite(v)]
    if v.size == 0:
        return np.empty(0), np.empty(0), np.empty(0)
    values, counts = np.unique(v, return_counts=True)
    freq = counts / float(v.size)
    surv = np.cumsum(counts[::-1])[::-1] / float(v.size)
    return values, freq, surv


def _thinned_draws(result: MCMCResult, n_draws: int) -> Array:
    """Evenly spaced posterior draws (deterministic)."""
    draws = np.asarray(result.trace.draws, dtype=float)
    if draws.shape[0] <= n_draws:
        return draws
    idx = np.linspace(0, draws.shape[0] - 1, int(n_draws)).round().astype(int)
    return draws[idx]


def _curve(result: MCMCResult, kind: str, xs: Array, theta: Array) -> Array:
    u = result.u
    if result.model == "pl":
        fn = dist.surv_pl if kind == "surv" else dist.pmf_pl
        return fn(xs, u, theta[0])
    fn = dist.surv_mix if kind == "surv" else dist.pmf_mix
    return fn(xs, u, theta[0], theta[1], theta[2])


def fitted_curves(
    result: MCMCResult,
    xs: Sequence[float],
    *,
    kind: str = "surv",
    n_draws: int = 200,
    probs: Tuple[float, float] = (0.025, 0.975),
    scale: float = 1.0,
) -> Dict[str, Array]:
    """
    Posterior mean and pointwise credible band of the fitted survival or PMF.

    kind:
        "surv" or "pmf".
    scale:
        Multiplies every curve; for the power law this is typically the
        empirical fraction of observations at or above u, so that the tail
        curve overlays the survival of the whole sample.

    Returns
    -------
    Dict with keys "x", "mean", "lower", "upper".
    """
    if kind not in ("surv", "pmf"):
        raise ValueError("kind must be 'surv' or 'pmf'.")
    xs = np.asarray(xs, dtype=float).reshape(-1)
    draws = _thinned_draws(result, int(n_draws))
    curves = np.stack([_curve(result, kind, xs, th) for th in draws]) * float(scale)
    return {
        "x": xs,
        "mean": np.mean(curves, axis=0),
        "lower": np.quantile(curves, float(probs[0]), axis=0),
        "upper": np.quantile(curves, float(probs[1]), axis=0),
    }


def _tail_fraction(result: MCMCResult, x: Array) -> float:
    """Empirical share of x at or above u for the power law, 1 for the mixture."""
    if result.model != "pl":
        return 1.0
    v = np.asarray(x, dtype=float)
    return float(np.mean(v >= result.u)) if v.size else 1.0


def _finish(fig, save_path: Optional[str], show: bool) -> None:
    plt.tight_layout()
    if save_path is not None:
        fig.savefig(save_path, dpi=300)
    if show:
        plt.show()
    else:
        plt.close(fig)


# =============================================================================
# Plots
# =============================================================================
def plot_trace(
    result: MCMCResult,
    *,
    save_path: Optional[str] = None,
    show: bool = True,
) -> None:
    """Trace plot of every parameter and of the log-posterior."""
    tr = result.trace
    names = list(tr.param_names) + ["log_post"]
    fig, axes = plt.subplots(len(names), 1, figsize=(10, 2.6 * len(names)), dpi=150, sharex=True)
    axes = np.atleast_1d(axes)
    for ax, name in zip(axes, names):
        y = tr.log_post if name == "log_post" else tr[name]
        ax.plot(tr.iterations, y, linewidth=0.8, color="tab:blue")
        ax.set_ylabel(name, fontsize=14)
        ax.tick_params(axis="both", labelsize=12)
    axes[-1].set_xlabel("Iteration", fontsize=14)
    _finish(fig, save_path, show)


def plot_survival_fit(
    x: Sequence[float],
    result: MCMCResult,
    *,
    n_draws: int = 200,
    save_path: Optional[str] = None,
    show: bool = True,
) -> None:
    """Empirical survival (log-log) with the fitted posterior survival and 95% band."""
    xv = np.asarray(x, dtype=float)
    values, _freq, surv = degree_frequencies(xv)
    lo = float(result.u) if result.model == "pl" else 1.0
    xs = np.unique(np.concatenate([values[values >= lo], [lo]]))
    fc = fitted_curves(result, xs, kind="surv", n_draws=n_draws, scale=_tail_fraction(result, xv))

    fig, ax = plt.subplots(figsize=(10, 8), dpi=300)
    ax.scatter(values, surv, s=16, alpha=0.8, color="black", label="empirical", rasterized=True)
    ax.plot(fc["x"], fc["mean"], linewidth=2.0, color="tab:red", label=f"{result.model} fit")
    ax.fill_between(fc["x"], fc["lower"], fc["upper"], color="tab:red", alpha=0.25, linewidth=0.0)
    ax.axvline(result.u, ls="--", lw=1.5, color="k", label=rf"$u={result.u}$")
    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlabel(r"$x$", fontsize=18)
    ax.set_ylabel(r"$P(X \geq x)$", fontsize=18)
    ax.tick_params(axis="both", labelsize=18)
    ax.legend(fontsize=16, frameon=True, loc="best")
    _finish(fig, save_path, show)


def plot_pmf_fit(
    x: Sequence[float],
    result: MCMCResult,
    *,
    n_draws: int = 200,
    save_path: Optional[str] = None,
    show: bool = True,
) -> None:
    """Empirical relative frequencies (log-log) with the fitted posterior PMF."""
    xv = np.asarray(x, dtype=float)
    values, freq, _surv = degree_frequencies(xv)
    lo = float(result.u) if result.model == "pl" else 1.0
    xs = values[values >= lo]
    fc = fitted_curves(result, xs, kind="pmf", n_draws=n_draws, scale=_tail_fraction(result, xv))

    fig, ax = plt.subplots(figsize=(10, 8), dpi=300)
    ax.scatter(values, freq, s=16, alpha=0.8, color="black", label="empirical", rasterized=True)
    ax.plot(fc["x"], fc["mean"], linewidth=2.0, color="tab:blue", label=f"{result.model} fit")
    ax.fill_between(fc["x"], fc["lower"], fc["upper"], color="tab:blue", alpha=0.25, linewidth=0.0)
    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlabel(r"$x$", fontsize=18)
    ax.set_ylabel("Relative frequency", fontsize=18)
    ax.tick_params(axis="both", labelsize=18)
    ax.legend(fontsize=16, frameon=True, loc="best")
    _finish(fig, save_path, show)


# =============================================================================
# Pretty printing
# =============================================================================
def _format_kv(k: str, v: object, width: int = 22) -> str:
    """Format a key-value pair with aligned keys."""
    return f"{k:<{width}}: {v}"


def format_summary_table(summary: Dict[str, Dict[str, float]]) -> str:
    """Fixed-width table of posterior summaries (one row per parameter)."""
    if not summary:
        return ""
    stat_keys = list(next(iter(summary.values())).keys())
    headers = ["param"] + stat_keys
    rows = [[name] + [f"{summary[name][k]:.4g}" for k in stat_keys] for name in summary]

    widths = [len(h) for h in headers]
    for row in rows:
        for j, cell in enumerate(row):
            widths[j] = max(widths[j], len(cell))

    sep = "  "
    lines = [sep.join(h.ljust(widths[j]) for j, h in enumerate(headers))]
    lines.append(sep.join("-" * w for w in widths))
    for row in rows:
        lines.append(sep.join(row[j].ljust(widths[j]) for j in range(len(headers))))
    return "\n".join(lines)


def print_fit_report(result: MCMCResult, *, include_dic: bool = True) -> None:
    """Print a compact report of one fitted chain."""
    cfg = result.config
    print("\n" + "=" * 78)
    print("cranfit posterior report")
    print("=" * 78)
    print(_format_kv("Model", result.model))
    print(_format_kv("Threshold u", result.u))
    print(_format_kv("Observations used", result.log_posterior.n_obs))
    print(_format_kv("Iterations", f"{cfg.total_iterations} (burn-in {cfg.burnin}, thin {cfg.thin})"))
    print(_format_kv("Retained draws", len(result.trace)))
    print(_format_kv("Scheme", cfg.scheme))
    print(_format_kv("Seed", cfg.seed))
    print("-" * 78)
    print(_format_kv("Acceptance rate", f"{result.acceptance_rate:.3f}"))
    for n in result.param_names:
        print(_format_kv(f"  {n}", f"acc={result.acceptance_rates[n]:.3f}, "
                                   f"scale {result.initial_scales[n]:.3g} -> {result.final_scales[n]:.3g}"))
    print("-" * 78)
    print(format_summary_table(result.summary()))
    if result.model == "mix":
        pm = result.posterior_mean()
        print(_format_kv("Tail mass phi_u", f"{dist.tail_mass(result.u, pm['r'], pm['mu']):.4g} (at posterior mean)"))
    if include_dic:
        d = result.dic()
        print("-" * 78)
        print(_format_kv("DIC", f"{d['DIC']:.3f} (p_D={d['p_D']:.3f})"))
    print("=" * 78 + "\n")
