#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/trace.py

"""
Posterior traces and their summaries.

A Trace stores one record per retained iteration:

- iterations[i]: absolute iteration index (0-based, burn-in included),
- draws[i, j]:   value of parameter j after that iteration,
- log_post[i]:   log-posterior of draws[i],
- accepted[i, j]: whether the proposal for parameter j was accepted in that
  iteration (for block updates all columns are equal).

Rejected iterations repeat the previous draw. All arrays are read-only once
the Trace is built.

Diagnostics
-----------
- effective_sample_size: Geyer's initial positive sequence estimator on the
  FFT autocorrelation.
- gelman_rubin: potential scale reduction factor R-hat across chains.
- dic: deviance information criterion
      D(theta) = -2 log L(theta),  pD = mean D - D(mean theta),  DIC = mean D + pD.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Sequence, Tuple

import numpy as np
import pandas as pd

Array = np.ndarray

__all__ = [
    "TraceRecord",
    "Trace",
    "effective_sample_size",
    "summarize",
    "gelman_rubin",
    "dic",
]


@dataclass(frozen=True)
class TraceRecord:
    """A single retained iteration."""
    iteration: int
    params: Dict[str, float]
    log_post: float
    accepted: Tuple[bool, ...]

    @property
    def any_accepted(self) -> bool:
        return any(self.accepted)


@dataclass(frozen=True)
class Trace:
    """Append-only record of a Markov chain, frozen once returned."""
    param_names: Tuple[str, ...]
    iterations: Array
    draws: Array
    log_post: Array
    accepted: Array

    def __post_init__(self) -> None:
        n = int(np.asarray(self.iterations).shape[0])
        p = len(self.param_names)
        if np.asarray(self.draws).shape != (n, p):
            raise ValueError("Trace.draws must have shape (n_records, n_params).")
        if np.asarray(self.log_post).shape != (n,):
            raise ValueError("Trace.log_post must have shape (n_records,).")
        if np.asarray(self.accepted).shape != (n, p):
            raise ValueError("Trace.accepted must have shape (n_records, n_params).")
        for name in ("iterations", "draws", "log_post", "accepted"):
            arr = getattr(self, name)
            if isinstance(arr, np.ndarray):
                arr.setflags(write=False)

    # ------------------------- access -------------------------
    def __len__(self) -> int:
        return int(self.iterations.shape[0])

    def __getitem__(self, name: str) -> Array:
        """Column of draws for parameter `name`."""
        try:
            j = self.param_names.index(name)
        except ValueError:
            raise KeyError(name) from None
        return self.draws[:, j]

    def records(self) -> Iterator[TraceRecord]:
        """Iterate over the retained records in order."""
        for i in range(len(self)):
            yield TraceRecord(
                iteration=int(self.iterations[i]),
                params={n: float(v) for n, v in zip(self.param_names, self.draws[i])},
                log_post=float(self.log_post[i]),
                accepted=tuple(bool(a) for a in self.accepted[i]),
            )

    @property
    def acceptance_rate(self) -> float:
        """Fraction of accepted proposals over all parameters and records."""
        if self.accepted.size == 0:
            return float("nan")
        return float(np.mean(self.accepted))

    def acceptance_rates(self) -> Dict[str, float]:
        """Per-parameter acceptance rate over the retained records."""
        if len(self) == 0:
            return {n: float("nan") for n in self.param_names}
        rates = np.mean(self.accepted, axis=0)
        return {n: float(r) for n, r in zip(self.param_names, rates)}

    def to_frame(self) -> pd.DataFrame:
        """Tabular view: one row per record, one column per parameter."""
        df = pd.DataFrame(np.asarray(self.draws), columns=list(self.param_names))
        df.insert(0, "iteration", np.asarray(self.iterations, dtype=np.int64))
        df["log_post"] = np.asarray(self.log_post)
        for j, n in enumerate(self.param_names):
            df[f"accepted_{n}"] = np.asarray(self.accepted[:, j], dtype=bool)
        return df


# -----------------------------------------------------------------------------
# Single-chain diagnostics
# -----------------------------------------------------------------------------
def _autocorrelation(x: Array) -> Array:
    """Normalised autocorrelation at lags 0..n-1, computed by FFT."""
    x = np.asarray(x, dtype=float).reshape(-1)
    n = x.size
    xc = x - float(np.mean(x))
    nfft = 1 << int(math.ceil(math.log2(max(2 * n, 2))))
    f = np.fft.rfft(xc, n=nfft)
    acov = np.fft.irfft(f * np.conjugate(f), n=nfft)[:n] / float(n)
    return acov / acov[0]


def effective_sample_size(chain: Array) -> float:
    """
    Effective sample size of a scalar chain.

    The integrated autocorrelation time is estimated with Geyer's initial
    positive (and monotone) sequence of paired autocorrelations
    Gamma_k = rho_{2k} + rho_{2k+1}, tau = -1 + 2 sum_k Gamma_k, and
    ESS = n / tau. Returns NaN for chains shorter than 4 or with zero
    variance.
    """
    x = np.asarray(chain, dtype=float).reshape(-1)
    n = int(x.size)
    if n < 4 or not np.all(np.isfinite(x)) or float(np.var(x)) <= 0.0:
        return float("nan")
    rho = _autocorrelation(x)

    gsum = 0.0
    prev = math.inf
    for k in range(n // 2):
        g = float(rho[2 * k] + rho[2 * k + 1])
        if g <= 0.0:
            break
        g = min(g, prev)
        gsum += g
        prev = g
    tau = max(-1.0 + 2.0 * gsum, 1.0 / math.log10(max(n, 10)))
    return float(n / tau)


def summarize(
    trace: Trace,
    *,
    probs: Sequence[float] = (0.025, 0.5, 0.975),
) -> Dict[str, Dict[str, float]]:
    """
    Posterior summaries per parameter.

    Returns
    -------
    Dict mapping parameter name to {"mean", "sd", "q<100p>", ..., "ess"}; the
    quantile keys use the percentage, e.g. "q2.5", "q50", "q97.5".
    """
    out: Dict[str, Dict[str, float]] = {}
    for name in trace.param_names:
        col = np.asarray(trace[name], dtype=float)
        row: Dict[str, float] = {
            "mean": float(np.mean(col)) if col.size else float("nan"),
            "sd": float(np.std(col, ddof=1)) if col.size > 1 else float("nan"),
        }
        for p in probs:
            row[f"q{100.0 * float(p):g}"] = float(np.quantile(col, float(p))) if col.size else float("nan")
        row["ess"] = effective_sample_size(col)
        out[name] = row
    return out


# -----------------------------------------------------------------------------
# Multi-chain and model-comparison diagnostics
# -----------------------------------------------------------------------------
def gelman_rubin(traces: Sequence[Trace]) -> Dict[str, float]:
    """
    Potential scale reduction factor per parameter.

    Chains are truncated to the shortest length. With W the mean within-chain
    variance and B/n the variance of the chain means,

        R_hat = sqrt( ((n-1)/n W + B/n) / W ).

    Raises
    ------
    ValueError
        With fewer than two chains, fewer than two draws, or mismatching
        parameter names.
    """
    if len(traces) < 2:
        raise ValueError("gelman_rubin requires at least two chains.")
    names = traces[0].param_names
    if any(t.param_names != names for t in traces):
        raise ValueError("All chains must share the same parameter names.")
    n = min(len(t) for t in traces)
    if n < 2:
        raise ValueError("gelman_rubin requires at least two draws per chain.")

    out: Dict[str, float] = {}
    for name in names:
        chains = np.stack([np.asarray(t[name][:n], dtype=float) for t in traces])
        W = float(np.mean(np.var(chains, axis=1, ddof=1)))
        B_over_n = float(np.var(np.mean(chains, axis=1), ddof=1))
        if W <= 0.0:
            out[name] = float("nan")
            continue
        var_hat = (n - 1.0) / n * W + B_over_n
        out[name] = float(math.sqrt(var_hat / W))
    return out


def dic(trace: Trace, log_posterior: Any) -> Dict[str, float]:
    """
    Deviance information criterion of a fitted chain.

    `log_posterior` must expose log_prior(theta) and loglik(theta) (see
    likelihood.LogPosterior). The log-likelihood at each draw is recovered as
    log_post - log_prior, and the plug-in deviance is evaluated at the
    posterior mean.
    """
    if len(trace) == 0:
        raise ValueError("dic requires a non-empty trace.")
    lprior = np.array([log_posterior.log_prior(th) for th in trace.draws], dtype=float)
    ll = np.asarray(trace.log_post, dtype=float) - lprior
    D_bar = float(-2.0 * np.mean(ll))
    theta_bar = np.mean(np.asarray(trace.draws, dtype=float), axis=0)
    D_hat = float(-2.0 * log_posterior.loglik(theta_bar))
    p_D = D_bar - D_hat
    return {"D_bar": D_bar, "D_hat": D_hat, "p_D": float(p_D), "DIC": float(D_bar + p_D)}
