#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/likelihood.py

"""
Log-likelihood and log-posterior of degree counts.

Power law
---------
Only exceedances contribute:

    ell(xi1) = sum_{i : x_i >= u} log f_pl(x_i; u, xi1).

Observations below u are not described by the tail model and are ignored.

Mixture
-------
Every observation contributes, through the bulk below u and the scaled tail
at and above u:

    ell(r, mu, xi1) = sum_i log f_mix(x_i; u, r, mu, xi1).

Both functions return -inf (never raise, never NaN) when a parameter is
outside its natural support or when an intermediate value overflows.

LogPosterior bundles a validated sample, the threshold and a UniformPrior,
and is the only objective the sampler evaluates. Sample and threshold
validation raise ConfigurationError.
"""

from __future__ import annotations

import math
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from . import distributions as dist
from .errors import ConfigurationError
from .priors import Model, UniformPrior, param_names

Array = np.ndarray

__all__ = [
    "llik_pl",
    "llik_mix",
    "validate_sample",
    "validate_threshold",
    "LogPosterior",
]


# -----------------------------------------------------------------------------
# Log-likelihoods
# -----------------------------------------------------------------------------
def _finite_or_neginf(v: float) -> float:
    v = float(v)
    return v if math.isfinite(v) else -math.inf


def llik_pl(x: Array, u: float, xi1: float) -> float:
    """Power-law log-likelihood of the exceedances x_i >= u."""
    x = np.asarray(x, dtype=float).reshape(-1)
    x = x[x >= float(u)]
    with np.errstate(all="ignore"):
        return _finite_or_neginf(np.sum(dist.logpmf_pl(x, u, xi1)))


def llik_mix(x: Array, u: float, r: float, mu: float, xi1: float) -> float:
    """Mixture log-likelihood of the full sample."""
    x = np.asarray(x, dtype=float).reshape(-1)
    with np.errstate(all="ignore"):
        return _finite_or_neginf(np.sum(dist.logpmf_mix(x, u, r, mu, xi1)))


# -----------------------------------------------------------------------------
# Input validation
# -----------------------------------------------------------------------------
def validate_threshold(u: float) -> int:
    """Return u as an int, raising ConfigurationError unless it is a positive integer."""
    try:
        uf = float(u)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Threshold u must be a positive integer, got {u!r}.") from None
    if not math.isfinite(uf) or uf != math.floor(uf) or uf <= 0.0:
        raise ConfigurationError(f"Threshold u must be a positive integer, got {u!r}.")
    return int(uf)


def validate_sample(x: Sequence[float]) -> Array:
    """
    Coerce the sample to a one-dimensional int64 array of positive integers.

    Zero counts must be removed by the caller beforehand.
    """
    v = np.asarray(x, dtype=float).reshape(-1)
    if v.size == 0:
        raise ConfigurationError("The sample is empty.")
    if np.any(~np.isfinite(v)):
        raise ConfigurationError("The sample must contain finite values only.")
    if np.any(v != np.floor(v)):
        raise ConfigurationError("The sample must contain integer counts only.")
    if np.any(v < 1.0):
        raise ConfigurationError("The sample must contain positive counts only; drop zeros before fitting.")
    return v.astype(np.int64)


# -----------------------------------------------------------------------------
# Log-posterior
# -----------------------------------------------------------------------------
class LogPosterior:
    """
    Unnormalised log-posterior log L(theta) + log pi(theta) for one model.

    Parameters
    ----------
    model:
        "pl" (parameters ("xi1",)) or "mix" (parameters ("r", "mu", "xi1")).
    x:
        Positive integer counts.
    u:
        Threshold (positive integer).
    prior:
        UniformPrior covering every model parameter; defaults to
        UniformPrior.default(model). Extra bounds are ignored.
    """

    def __init__(
        self,
        model: Model,
        x: Sequence[float],
        u: int,
        prior: Optional[UniformPrior] = None,
    ) -> None:
        self.model = str(model)
        self.names = param_names(self.model)
        self.u = validate_threshold(u)

        xs = validate_sample(x)
        if self.model == "pl":
            xs = xs[xs >= self.u]
            if xs.size == 0:
                raise ConfigurationError(f"No observations at or above the threshold u={self.u}.")
        xs.setflags(write=False)
        self.x = xs

        prior = UniformPrior.default(self.model) if prior is None else prior
        prior.validate(self.names)
        self.prior = UniformPrior({n: prior.bounds[n] for n in self.names})

    @property
    def n_obs(self) -> int:
        """Number of observations entering the likelihood."""
        return int(self.x.size)

    def as_dict(self, theta: Array) -> Dict[str, float]:
        """Map a parameter vector onto parameter names."""
        return {n: float(v) for n, v in zip(self.names, np.asarray(theta, dtype=float))}

    def as_vector(self, values: Mapping[str, float]) -> Array:
        """Order a mapping of parameter values as a vector."""
        missing = [n for n in self.names if n not in values]
        if missing:
            raise ConfigurationError(f"Missing value(s) for parameter(s): {', '.join(missing)}.")
        return np.array([float(values[n]) for n in self.names], dtype=float)

    def log_prior(self, theta: Array) -> float:
        """Uniform log prior of theta (ordered like self.names)."""
        return self.prior.log_prior(theta)

    def loglik(self, theta: Array) -> float:
        """Model log-likelihood at theta (ordered like self.names)."""
        th = np.asarray(theta, dtype=float)
        if self.model == "pl":
            return llik_pl(self.x, self.u, th[0])
        return llik_mix(self.x, self.u, th[0], th[1], th[2])

    def __call__(self, theta: Array) -> float:
        lp = self.log_prior(theta)
        if not math.isfinite(lp):
            return -math.inf
        return _finite_or_neginf(lp + self.loglik(theta))
