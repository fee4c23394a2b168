#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/distributions.py

"""
Discrete power-law and bulk-plus-tail mixture distributions.

Power law
---------
For a threshold u (positive integer) and tail index xi1 > 0, define the
exponent alpha = 1 + 1/xi1 > 1. The discrete power law on {u, u+1, ...} has

    f(x) = x^(-alpha) / zeta(alpha, u),
    S(x) = P(X >= x) = zeta(alpha, x) / zeta(alpha, u),

where zeta(s, q) = sum_{k>=0} (q + k)^(-s) is the Hurwitz zeta function.
S(u) = 1 and S is non-increasing in x.

Mixture
-------
Below the threshold, counts follow a bulk distribution on {1, 2, ...}: a
shifted negative binomial,

    X - 1 ~ NegBin(size=r, mean=mu),   r > 0, mu > 0.

At and above the threshold the bulk is replaced by the power-law tail, scaled
by the bulk survival at u:

    phi_u   = S_bulk(u),
    f(x)    = f_bulk(x)                     for 1 <= x < u,
    f(x)    = phi_u * f_pl(x; u, xi1)       for x >= u,
    S(x)    = S_bulk(x)                     for x < u,
    S(x)    = phi_u * S_pl(x; u, xi1)       for x >= u.

Both branches obtain phi_u from the same helper (_log_tail_mass), so the
survival function is continuous at u exactly and the PMF sums to one without
a free mixing weight. With u = 1 the mixture reduces to the power law.

Numerics
--------
- All quantities are evaluated in log space. The Hurwitz zeta from SciPy is
  used directly; when it underflows (large alpha, large q) it is replaced by a
  truncated log-sum-exp with an Euler-Maclaurin remainder.
- Invalid parameters (xi1 <= 0, r <= 0, mu <= 0, non-finite values, or a
  threshold that is not a positive integer) yield log-PMF and log-survival of
  -inf. No function in this module raises on bad parameters except the
  random-variate generators.
- Query points that are not integers in the support have PMF 0.

Public API
----------
- logpmf_pl, pmf_pl, logsurv_pl, surv_pl, cdf_pl, quantile_pl, random_pl
- logpmf_mix, pmf_mix, logsurv_mix, surv_mix, cdf_mix, quantile_mix, random_mix
- bulk_pmf, bulk_surv, tail_mass
- alpha_from_xi1, xi1_from_alpha

All PMF/survival/CDF functions are vectorised and return arrays with the same
shape as the query points.
"""

from __future__ import annotations

import math
import warnings
from typing import Callable, Optional

import numpy as np
from scipy import special

Array = np.ndarray

__all__ = [
    "alpha_from_xi1",
    "xi1_from_alpha",
    "logpmf_pl",
    "pmf_pl",
    "logsurv_pl",
    "surv_pl",
    "cdf_pl",
    "quantile_pl",
    "random_pl",
    "bulk_pmf",
    "bulk_surv",
    "tail_mass",
    "logpmf_mix",
    "pmf_mix",
    "logsurv_mix",
    "surv_mix",
    "cdf_mix",
    "quantile_mix",
    "random_mix",
]

# Number of explicit terms in the fallback Hurwitz zeta sum.
_ZETA_TERMS = 64

# Quantile search: at most this many doublings above the lower end of the support.
_QUANTILE_MAX_DOUBLINGS = 62

# Random variates are returned as int64 and are capped here.
_INT_CAP = float(2 ** 62)


def _capped_int64(q: Array) -> Array:
    """Convert quantiles to int64 variates, warning when some exceed _INT_CAP."""
    over = q > _INT_CAP
    if np.any(over):
        warnings.warn(
            f"{int(np.count_nonzero(over))} of {q.size} variates exceed 2^62 and were capped; "
            "the tail is too heavy for integer sampling at these parameters.",
            RuntimeWarning,
            stacklevel=3,
        )
    return np.minimum(q, _INT_CAP).astype(np.int64)


# -----------------------------------------------------------------------------
# Parameter helpers
# -----------------------------------------------------------------------------
def alpha_from_xi1(xi1: float) -> float:
    """Return the power-law exponent alpha = 1 + 1/xi1."""
    return 1.0 + 1.0 / float(xi1)


def xi1_from_alpha(alpha: float) -> float:
    """Return the tail index xi1 = 1/(alpha - 1)."""
    return 1.0 / (float(alpha) - 1.0)


def _valid_threshold(u: float) -> bool:
    """True if u is a finite positive integer."""
    try:
        u = float(u)
    except (TypeError, ValueError):
        return False
    return math.isfinite(u) and u >= 1.0 and u == math.floor(u)


def _valid_tail(u: float, xi1: float) -> bool:
    """True if (u, xi1) lies in the natural support of the power law."""
    try:
        xi1 = float(xi1)
    except (TypeError, ValueError):
        return False
    return _valid_threshold(u) and math.isfinite(xi1) and xi1 > 0.0


def _valid_bulk(r: float, mu: float) -> bool:
    """True if the negative-binomial bulk parameters are admissible."""
    try:
        r = float(r)
        mu = float(mu)
    except (TypeError, ValueError):
        return False
    return math.isfinite(r) and math.isfinite(mu) and r > 0.0 and mu > 0.0


def _is_integer(x: Array) -> Array:
    """Elementwise mask of finite integer values."""
    with np.errstate(invalid="ignore"):
        return np.isfinite(x) & (x == np.floor(x))


def _nan_to_neginf(v: Array) -> Array:
    """Replace NaN and +inf (overflowed log-probabilities) with -inf."""
    v = np.asarray(v, dtype=float)
    bad = np.isnan(v) | (v == np.inf)
    if np.any(bad):
        v = v.copy()
        v[bad] = -np.inf
    return v


# -----------------------------------------------------------------------------
# Hurwitz zeta in log space
# -----------------------------------------------------------------------------
def _log_hurwitz(alpha: float, q: Array) -> Array:
    """
    log zeta(alpha, q) for alpha > 1 and q >= 1, elementwise in q.

    SciPy's value is used whenever it is a normal float. An underflowed
    value (zero or subnormal, with too few significant bits) is recomputed as

        log( sum_{k<K} (q+k)^-alpha + (q+K)^(1-alpha)/(alpha-1) + (q+K)^-alpha / 2 )

    via log-sum-exp. Overflow (alpha -> 1) is left as +inf so that callers
    obtain -inf log-probabilities.
    """
    q = np.asarray(q, dtype=float)
    flat = np.atleast_1d(q).astype(float).ravel()
    with np.errstate(all="ignore"):
        z = special.zeta(float(alpha), flat)
        out = np.log(z)
    under = np.isfinite(flat) & (z < np.finfo(float).tiny)
    if np.any(under):
        qb = flat[under]
        k = np.arange(_ZETA_TERMS, dtype=float)
        with np.errstate(all="ignore"):
            terms = -float(alpha) * np.log(qb[:, None] + k[None, :])
            qK = qb + float(_ZETA_TERMS)
            rem = (1.0 - alpha) * np.log(qK) - math.log(alpha - 1.0)
            half = -float(alpha) * np.log(qK) - math.log(2.0)
            allt = np.concatenate([terms, rem[:, None], half[:, None]], axis=1)
            out[under] = special.logsumexp(allt, axis=1)
    return out.reshape(q.shape)


# -----------------------------------------------------------------------------
# Power law
# -----------------------------------------------------------------------------
def logpmf_pl(x: Array, u: float, xi1: float) -> Array:
    """Log-PMF of the discrete power law with support {u, u+1, ...}."""
    x = np.asarray(x, dtype=float)
    out = np.full(x.shape, -np.inf)
    if not _valid_tail(u, xi1):
        return out
    alpha = alpha_from_xi1(xi1)
    m = _is_integer(x) & (x >= float(u))
    if np.any(m):
        with np.errstate(all="ignore"):
            out[m] = -alpha * np.log(x[m]) - _log_hurwitz(alpha, float(u))
    return _nan_to_neginf(out)


def pmf_pl(x: Array, u: float, xi1: float) -> Array:
    """PMF of the discrete power law; zero outside {u, u+1, ...}."""
    with np.errstate(under="ignore"):
        return np.exp(logpmf_pl(x, u, xi1))


def logsurv_pl(x: Array, u: float, xi1: float) -> Array:
    """
    Log-survival log P(X >= x) of the discrete power law.

    Equals 0 for x <= u. Non-integer x is rounded up, since P(X >= x) =
    P(X >= ceil(x)) on the integers.
    """
    x = np.asarray(x, dtype=float)
    out = np.zeros(x.shape, dtype=float)
    if not _valid_tail(u, xi1):
        out[:] = -np.inf
        return out
    alpha = alpha_from_xi1(xi1)
    xc = np.ceil(x)
    m = xc > float(u)
    if np.any(m):
        with np.errstate(all="ignore"):
            v = _log_hurwitz(alpha, xc[m]) - _log_hurwitz(alpha, float(u))
        out[m] = np.minimum(_nan_to_neginf(v), 0.0)
    out[np.isnan(x)] = np.nan
    return out


def surv_pl(x: Array, u: float, xi1: float) -> Array:
    """Survival P(X >= x) of the discrete power law."""
    with np.errstate(under="ignore"):
        return np.exp(logsurv_pl(x, u, xi1))


def cdf_pl(x: Array, u: float, xi1: float) -> Array:
    """CDF P(X <= x) of the discrete power law."""
    x = np.asarray(x, dtype=float)
    with np.errstate(all="ignore"):
        return -np.expm1(logsurv_pl(np.floor(x) + 1.0, u, xi1))


def quantile_pl(p: Array, u: float, xi1: float) -> Array:
    """
    Quantile function: smallest integer x >= u with P(X <= x) >= p.

    Returns floats; p = 1 maps to +inf and p outside [0, 1] (or invalid
    parameters) to NaN.
    """
    p = np.asarray(p, dtype=float)
    if not _valid_tail(u, xi1):
        return np.full(p.shape, np.nan)
    return _discrete_quantile(lambda xx: logsurv_pl(xx, u, xi1), p, float(u))


def random_pl(
    n: int,
    u: float,
    xi1: float,
    *,
    rng: Optional[np.random.Generator] = None,
) -> Array:
    """
    Draw n power-law variates by inversion of the survival function.

    Raises
    ------
    ValueError
        If (u, xi1) is outside the parameter space.
    """
    if not _valid_tail(u, xi1):
        raise ValueError("random_pl requires a positive integer u and finite xi1 > 0.")
    if rng is None:
        rng = np.random.default_rng()
    q = quantile_pl(rng.random(int(n)), u, xi1)
    return _capped_int64(q)


# -----------------------------------------------------------------------------
# Bulk (shifted negative binomial) and the shared threshold helper
# -----------------------------------------------------------------------------
def _bulk_logpmf(x: Array, r: float, mu: float) -> Array:
    """
    log P(X = x) for Y = X - 1 ~ NegBin(r, mu):

        log f(y) = lgamma(y+r) - lgamma(r) - lgamma(y+1) + r log(r/(r+mu)) + y log(mu/(r+mu)).
    """
    y = np.asarray(x, dtype=float) - 1.0
    r = float(r)
    mu = float(mu)
    log_rm = math.log(r + mu)
    with np.errstate(all="ignore"):
        v = (
            special.gammaln(y + r) - special.gammaln(r) - special.gammaln(y + 1.0)
            + r * (math.log(r) - log_rm) + y * (math.log(mu) - log_rm)
        )
    return _nan_to_neginf(v)


def _bulk_logsurv(x: Array, r: float, mu: float) -> Array:
    """
    log P(X >= x) for Y = X - 1 ~ NegBin(r, mu).

    P(X >= x) = P(Y > k) with k = ceil(x) - 2, and P(Y > k) = I_{mu/(r+mu)}(k+1, r)
    for k >= 0 (regularized incomplete beta); it is 1 for k < 0.
    """
    k = np.ceil(np.asarray(x, dtype=float)) - 2.0
    out = np.zeros(k.shape, dtype=float)
    m = k >= 0.0
    if np.any(m):
        q = float(mu) / (float(r) + float(mu))
        with np.errstate(all="ignore"):
            out[m] = np.log(special.betainc(k[m] + 1.0, float(r), q))
    out[np.isnan(k)] = np.nan
    return np.minimum(_nan_to_neginf(out), 0.0)


def _log_tail_mass(u: float, r: float, mu: float) -> float:
    """
    log phi_u = log S_bulk(u), the probability mass carried by the tail.

    This is the single definition of the threshold boundary used by every
    mixture function, on both sides of u.
    """
    return float(_bulk_logsurv(np.asarray([float(u)]), r, mu)[0])


def bulk_pmf(x: Array, r: float, mu: float) -> Array:
    """PMF of the untruncated bulk distribution on {1, 2, ...}."""
    x = np.asarray(x, dtype=float)
    if not _valid_bulk(r, mu):
        return np.zeros(x.shape)
    out = np.zeros(x.shape)
    m = _is_integer(x) & (x >= 1.0)
    if np.any(m):
        out[m] = np.exp(_bulk_logpmf(x[m], r, mu))
    return out


def bulk_surv(x: Array, r: float, mu: float) -> Array:
    """Survival P(X >= x) of the untruncated bulk distribution."""
    x = np.asarray(x, dtype=float)
    if not _valid_bulk(r, mu):
        return np.zeros(x.shape)
    with np.errstate(under="ignore"):
        return np.exp(_bulk_logsurv(x, r, mu))


def tail_mass(u: float, r: float, mu: float) -> float:
    """Tail probability phi_u = S_bulk(u) of the mixture; 0.0 if invalid."""
    if not (_valid_threshold(u) and _valid_bulk(r, mu)):
        return 0.0
    return float(math.exp(_log_tail_mass(u, r, mu)))


# -----------------------------------------------------------------------------
# Mixture
# -----------------------------------------------------------------------------
def _valid_mix(u: float, r: float, mu: float, xi1: float) -> bool:
    return _valid_tail(u, xi1) and _valid_bulk(r, mu)


def logpmf_mix(x: Array, u: float, r: float, mu: float, xi1: float) -> Array:
    """Log-PMF of the bulk-plus-tail mixture on {1, 2, ...}."""
    x = np.asarray(x, dtype=float)
    out = np.full(x.shape, -np.inf)
    if not _valid_mix(u, r, mu, xi1):
        return out
    isint = _is_integer(x)
    m_bulk = isint & (x >= 1.0) & (x < float(u))
    m_tail = isint & (x >= float(u))
    if np.any(m_bulk):
        out[m_bulk] = _bulk_logpmf(x[m_bulk], r, mu)
    if np.any(m_tail):
        out[m_tail] = _log_tail_mass(u, r, mu) + logpmf_pl(x[m_tail], u, xi1)
    return _nan_to_neginf(out)


def pmf_mix(x: Array, u: float, r: float, mu: float, xi1: float) -> Array:
    """PMF of the bulk-plus-tail mixture."""
    with np.errstate(under="ignore"):
        return np.exp(logpmf_mix(x, u, r, mu, xi1))


def logsurv_mix(x: Array, u: float, r: float, mu: float, xi1: float) -> Array:
    """Log-survival log P(X >= x) of the mixture, continuous at u."""
    x = np.asarray(x, dtype=float)
    out = np.zeros(x.shape, dtype=float)
    if not _valid_mix(u, r, mu, xi1):
        out[:] = -np.inf
        return out
    xc = np.ceil(x)
    m_bulk = (xc > 1.0) & (xc < float(u))
    m_tail = xc >= float(u)
    if np.any(m_bulk):
        out[m_bulk] = _bulk_logsurv(xc[m_bulk], r, mu)
    if np.any(m_tail):
        with np.errstate(invalid="ignore"):
            out[m_tail] = _log_tail_mass(u, r, mu) + logsurv_pl(xc[m_tail], u, xi1)
    out = np.where(np.isnan(out), -np.inf, out)
    out[np.isnan(x)] = np.nan
    return out


def surv_mix(x: Array, u: float, r: float, mu: float, xi1: float) -> Array:
    """Survival P(X >= x) of the mixture."""
    with np.errstate(under="ignore"):
        return np.exp(logsurv_mix(x, u, r, mu, xi1))


def cdf_mix(x: Array, u: float, r: float, mu: float, xi1: float) -> Array:
    """CDF P(X <= x) of the mixture."""
    x = np.asarray(x, dtype=float)
    with np.errstate(all="ignore"):
        return -np.expm1(logsurv_mix(np.floor(x) + 1.0, u, r, mu, xi1))


def quantile_mix(p: Array, u: float, r: float, mu: float, xi1: float) -> Array:
    """Quantile function of the mixture (smallest x >= 1 with CDF >= p)."""
    p = np.asarray(p, dtype=float)
    if not _valid_mix(u, r, mu, xi1):
        return np.full(p.shape, np.nan)
    return _discrete_quantile(lambda xx: logsurv_mix(xx, u, r, mu, xi1), p, 1.0)


def random_mix(
    n: int,
    u: float,
    r: float,
    mu: float,
    xi1: float,
    *,
    rng: Optional[np.random.Generator] = None,
) -> Array:
    """Draw n mixture variates by inversion; raises ValueError on invalid parameters."""
    if not _valid_mix(u, r, mu, xi1):
        raise ValueError("random_mix requires a positive integer u, r > 0, mu > 0 and xi1 > 0.")
    if rng is None:
        rng = np.random.default_rng()
    q = quantile_mix(rng.random(int(n)), u, r, mu, xi1)
    return _capped_int64(q)


# -----------------------------------------------------------------------------
# Generic discrete inversion
# -----------------------------------------------------------------------------
def _discrete_quantile(logsurv: Callable[[Array], Array], p: Array, lower: float) -> Array:
    """
    Smallest integer x >= lower with log P(X >= x + 1) <= log(1 - p).

    The search brackets the answer by doubling and then bisects on the
    integers, vectorised over p. Bisection stops at adjacent floats, so
    answers above 2^53 are exact only to the float spacing. Answers beyond
    the doubling budget are reported as +inf.
    """
    p = np.asarray(p, dtype=float)
    flat = np.atleast_1d(p).astype(float).ravel()
    out = np.full(flat.shape, np.nan)

    ok = np.isfinite(flat) & (flat >= 0.0) & (flat <= 1.0)
    out[ok & (flat == 1.0)] = np.inf
    idx = np.flatnonzero(ok & (flat < 1.0))
    if idx.size == 0:
        return out.reshape(p.shape)

    target = np.log1p(-flat[idx])
    # Invariant: lo never satisfies the condition, hi does once bracketed.
    lo = np.full(idx.size, float(lower) - 1.0)
    hi = np.full(idx.size, float(lower))

    for _ in range(_QUANTILE_MAX_DOUBLINGS):
        miss = logsurv(hi + 1.0) > target
        if not np.any(miss):
            break
        lo[miss] = hi[miss]
        hi[miss] = 2.0 * hi[miss]

    unbracketed = logsurv(hi + 1.0) > target

    while True:
        gap = (hi - lo > 1.0) & ~unbracketed
        if not np.any(gap):
            break
        mid = np.floor(0.5 * (lo + hi))
        # Above 2^53 neighbouring floats are more than one integer apart.
        gap &= (mid > lo) & (mid < hi)
        if not np.any(gap):
            break
        sat = logsurv(mid + 1.0) <= target
        up = gap & sat
        dn = gap & ~sat
        hi[up] = mid[up]
        lo[dn] = mid[dn]

    hi[unbracketed] = np.inf
    out[idx] = hi
    return out.reshape(p.shape)
