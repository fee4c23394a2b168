#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/mcmc.py

"""
Random-walk Metropolis-Hastings for the power-law and mixture models.

Algorithm
---------
Given a LogPosterior log p(theta) = log L(theta) + log pi(theta):

1) Evaluate log p(theta_0) at the caller's starting point. A value of -inf
   is a fatal ConfigurationError.
2) For each iteration t = 0, ..., burnin + n_iter * thin - 1:
   - propose theta' by adding N(0, s_j^2) noise, either to one coordinate at
     a time (scheme="componentwise", default) or to all coordinates at once
     (scheme="block");
   - accept with probability min(1, exp(log p(theta') - log p(theta))).
     The random-walk proposal is symmetric, so no Hastings correction is
     needed. A proposal with log p = -inf is never accepted, and a rejected
     step repeats the current state;
   - while t < burnin, every `adapter.interval` iterations the proposal
     scales s_j are rescaled from the windowed acceptance rates. Scales are
     frozen for the whole retained phase;
   - for t >= burnin, every thin-th state is appended to the trace.
3) Return an MCMCResult with the trace, the acceptance rates over the
   retained phase and the final proposal scales.

Randomness
----------
Every random draw comes from a single numpy.random.Generator threaded
through the run (one uniform per accept/reject decision, drawn whether or
not it is needed). Identical inputs and seed reproduce the trace bit for bit.
Independent chains obtain their generators from SeedSequence.spawn.

Public API
----------
- SamplerConfig: iteration counts, thinning, scheme, seed, verbosity
- RandomWalkProposal: symmetric Gaussian proposal (replaceable)
- AcceptanceRateAdapter, NoAdaptation: burn-in adaptation strategies
- run_mcmc(log_posterior, init, ...) -> MCMCResult
- mcmc_pl(x, u, xi1, ...), mcmc_mix(x, u, r, mu, xi1, ...) -> MCMCResult
- run_chains(model, x, u, inits, ...) -> List[MCMCResult]
"""

from __future__ import annotations

import math
import warnings
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError
from .likelihood import LogPosterior
from .priors import Model, UniformPrior
from .trace import Trace, dic, summarize

Array = np.ndarray
Scheme = Literal["componentwise", "block"]

__all__ = [
    "SamplerConfig",
    "RandomWalkProposal",
    "AcceptanceRateAdapter",
    "NoAdaptation",
    "ChainState",
    "MCMCResult",
    "run_mcmc",
    "mcmc_pl",
    "mcmc_mix",
    "run_chains",
]

# Retained-phase acceptance rates outside this band trigger a RuntimeWarning.
ACCEPTANCE_SANITY_BAND: Tuple[float, float] = (0.05, 0.80)


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SamplerConfig:
    """
    Sampler settings.

    n_iter:
        Number of retained draws (length of the returned trace).
    burnin:
        Iterations run (and adapted) before the first retained draw.
    thin:
        Keep every thin-th post-burn-in iteration.
    scheme:
        "componentwise" (one parameter per proposal) or "block".
    seed:
        Seed for numpy.random.default_rng when no generator is supplied.
    verbose, progress_every:
        Print a progress line every `progress_every` iterations.
    """
    n_iter: int = 10000
    burnin: int = 2000
    thin: int = 1
    scheme: Scheme = "componentwise"
    seed: Optional[int] = None
    verbose: bool = False
    progress_every: int = 1000

    def validate(self) -> None:
        """Raise ConfigurationError on invalid settings."""
        if int(self.n_iter) < 1:
            raise ConfigurationError("n_iter must be a positive integer.")
        if int(self.burnin) < 0:
            raise ConfigurationError("burnin must be non-negative.")
        if int(self.thin) < 1:
            raise ConfigurationError("thin must be a positive integer.")
        if self.scheme not in ("componentwise", "block"):
            raise ConfigurationError("scheme must be 'componentwise' or 'block'.")
        if int(self.progress_every) < 1:
            raise ConfigurationError("progress_every must be a positive integer.")

    @property
    def total_iterations(self) -> int:
        return int(self.burnin) + int(self.n_iter) * int(self.thin)


# -----------------------------------------------------------------------------
# Proposal and adaptation strategies
# -----------------------------------------------------------------------------
class RandomWalkProposal:
    """Symmetric Gaussian random-walk proposal."""

    def __call__(
        self,
        theta: Array,
        scales: Array,
        rng: np.random.Generator,
        index: Optional[int] = None,
    ) -> Array:
        """
        Return a perturbed copy of theta.

        index=None perturbs every coordinate; an integer perturbs only that one.
        """
        new = np.array(theta, dtype=float, copy=True)
        if index is None:
            new += scales * rng.standard_normal(new.size)
        else:
            new[index] += scales[index] * rng.standard_normal()
        return new


class NoAdaptation:
    """Keep the initial proposal scales for the whole run."""

    interval: int = 0

    def adapt(self, scales: Array, n_accepted: Array, n_proposed: Array) -> Array:
        return np.asarray(scales, dtype=float)


class AcceptanceRateAdapter:
    """
    Steer windowed acceptance rates into a target band during burn-in.

    Every `interval` burn-in iterations, each parameter whose acceptance rate
    a over the last window falls outside [low, high] has its scale multiplied
    by clip(a / target, 1/max_factor, max_factor), with target the band
    midpoint. Scales stay within [min_scale, max_scale].
    """

    def __init__(
        self,
        target: Tuple[float, float] = (0.2, 0.4),
        *,
        interval: int = 100,
        max_factor: float = 3.0,
        min_scale: float = 1e-8,
        max_scale: float = 1e8,
    ) -> None:
        low, high = float(target[0]), float(target[1])
        if not (0.0 < low < high < 1.0):
            raise ConfigurationError("Adaptation target band must satisfy 0 < low < high < 1.")
        if int(interval) < 1:
            raise ConfigurationError("Adaptation interval must be a positive integer.")
        if float(max_factor) <= 1.0:
            raise ConfigurationError("max_factor must exceed 1.")
        self.low = low
        self.high = high
        self.interval = int(interval)
        self.max_factor = float(max_factor)
        self.min_scale = float(min_scale)
        self.max_scale = float(max_scale)

    def adapt(self, scales: Array, n_accepted: Array, n_proposed: Array) -> Array:
        scales = np.asarray(scales, dtype=float)
        n_prop = np.maximum(np.asarray(n_proposed, dtype=float), 1.0)
        rate = np.asarray(n_accepted, dtype=float) / n_prop
        target = 0.5 * (self.low + self.high)
        factor = np.clip(rate / target, 1.0 / self.max_factor, self.max_factor)
        outside = (rate < self.low) | (rate > self.high)
        new = np.where(outside, scales * factor, scales)
        return np.clip(new, self.min_scale, self.max_scale)


# -----------------------------------------------------------------------------
# Chain state and one Metropolis-Hastings sweep
# -----------------------------------------------------------------------------
@dataclass
class ChainState:
    """Mutable state of a single chain; owned exclusively by its run."""
    theta: Array
    log_post: float
    scales: Array
    n_accepted: Array
    n_proposed: Array

    @staticmethod
    def start(theta: Array, log_post: float, scales: Array) -> "ChainState":
        p = int(np.asarray(theta).size)
        return ChainState(
            theta=np.array(theta, dtype=float, copy=True),
            log_post=float(log_post),
            scales=np.array(scales, dtype=float, copy=True),
            n_accepted=np.zeros(p, dtype=np.int64),
            n_proposed=np.zeros(p, dtype=np.int64),
        )

    def reset_window(self) -> None:
        self.n_accepted[:] = 0
        self.n_proposed[:] = 0


def _metropolis_accept(lp_current: float, lp_proposed: float, rng: np.random.Generator) -> bool:
    """Accept with probability min(1, exp(lp_proposed - lp_current))."""
    u = float(rng.random())
    if not math.isfinite(lp_proposed):
        return False
    diff = lp_proposed - lp_current
    return diff >= 0.0 or u < math.exp(diff)


def _mh_sweep(
    state: ChainState,
    log_posterior: Any,
    proposal: Any,
    rng: np.random.Generator,
    scheme: Scheme,
) -> Array:
    """Advance the chain by one iteration; return per-parameter accept flags."""
    p = state.theta.size
    accepted = np.zeros(p, dtype=bool)

    if scheme == "block":
        prop = proposal(state.theta, state.scales, rng, None)
        lp = float(log_posterior(prop))
        if _metropolis_accept(state.log_post, lp, rng):
            state.theta = prop
            state.log_post = lp
            accepted[:] = True
        state.n_accepted += accepted
        state.n_proposed += 1
        return accepted

    for j in range(p):
        prop = proposal(state.theta, state.scales, rng, j)
        lp = float(log_posterior(prop))
        if _metropolis_accept(state.log_post, lp, rng):
            state.theta = prop
            state.log_post = lp
            accepted[j] = True
        state.n_accepted[j] += int(accepted[j])
        state.n_proposed[j] += 1
    return accepted


# -----------------------------------------------------------------------------
# Result container
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class MCMCResult:
    """Trace plus diagnostics of one chain."""
    model: str
    u: int
    trace: Trace
    acceptance_rate: float
    acceptance_rates: Dict[str, float]
    initial_scales: Dict[str, float]
    final_scales: Dict[str, float]
    config: SamplerConfig
    log_posterior: LogPosterior = field(repr=False, compare=False)

    @property
    def param_names(self) -> Tuple[str, ...]:
        return self.trace.param_names

    def posterior_mean(self) -> Dict[str, float]:
        return {n: float(np.mean(self.trace[n])) for n in self.param_names}

    def summary(self, *, probs: Sequence[float] = (0.025, 0.5, 0.975)) -> Dict[str, Dict[str, float]]:
        return summarize(self.trace, probs=probs)

    def dic(self) -> Dict[str, float]:
        return dic(self.trace, self.log_posterior)


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------
def _default_scales(theta0: Array) -> Array:
    return 0.1 * np.maximum(np.abs(np.asarray(theta0, dtype=float)), 0.1)


def _validate_scales(scales: Array, p: int) -> Array:
    s = np.asarray(scales, dtype=float).reshape(-1)
    if s.size != p:
        raise ConfigurationError(f"Expected {p} proposal scale(s), got {s.size}.")
    if np.any(~np.isfinite(s)) or np.any(s <= 0.0):
        raise ConfigurationError("Proposal scales must be finite and strictly positive.")
    return s


def run_mcmc(
    log_posterior: LogPosterior,
    init: Mapping[str, float],
    *,
    scales: Optional[Mapping[str, float]] = None,
    config: Optional[SamplerConfig] = None,
    rng: Optional[np.random.Generator] = None,
    adapter: Optional[Any] = None,
    proposal: Optional[Any] = None,
) -> MCMCResult:
    """
    Run one Metropolis-Hastings chain on a model log-posterior.

    Parameters
    ----------
    log_posterior:
        LogPosterior of the "pl" or "mix" model.
    init:
        Starting value for every parameter in log_posterior.names.
    scales:
        Initial proposal standard deviations; defaults to 10% of |init|
        (at least 0.01).
    config:
        SamplerConfig; defaults to SamplerConfig().
    rng:
        Random generator; defaults to numpy.random.default_rng(config.seed).
    adapter:
        Object with `interval` and `adapt(scales, n_accepted, n_proposed)`;
        defaults to AcceptanceRateAdapter().
    proposal:
        Callable (theta, scales, rng, index) -> theta'; must be symmetric.
        Defaults to RandomWalkProposal().

    Raises
    ------
    ConfigurationError
        On invalid settings or a starting point with log-posterior -inf.
    """
    config = SamplerConfig() if config is None else config
    config.validate()
    adapter = AcceptanceRateAdapter() if adapter is None else adapter
    proposal = RandomWalkProposal() if proposal is None else proposal
    if rng is None:
        rng = np.random.default_rng(config.seed)

    names = log_posterior.names
    theta0 = log_posterior.as_vector(init)
    s0 = _default_scales(theta0) if scales is None else log_posterior.as_vector(scales)
    s0 = _validate_scales(s0, len(names))

    lp0 = float(log_posterior(theta0))
    if not math.isfinite(lp0):
        raise ConfigurationError(
            f"The initial values {log_posterior.as_dict(theta0)} have zero posterior density "
            "(outside the prior bounds or the parameter space)."
        )

    state = ChainState.start(theta0, lp0, s0)
    n_keep = int(config.n_iter)
    burnin = int(config.burnin)
    thin = int(config.thin)
    total = config.total_iterations
    p = len(names)

    iterations = np.empty(n_keep, dtype=np.int64)
    draws = np.empty((n_keep, p), dtype=float)
    log_post = np.empty(n_keep, dtype=float)
    accepted = np.zeros((n_keep, p), dtype=bool)

    kept_acc = np.zeros(p, dtype=np.int64)
    kept_prop = 0
    k = 0
    interval = int(getattr(adapter, "interval", 0) or 0)

    for it in range(total):
        acc_it = _mh_sweep(state, log_posterior, proposal, rng, config.scheme)

        if it < burnin:
            if interval > 0 and (it + 1) % interval == 0:
                state.scales = _validate_scales(
                    adapter.adapt(state.scales, state.n_accepted, state.n_proposed), p
                )
                state.reset_window()
        else:
            kept_acc += acc_it
            kept_prop += 1
            if (it - burnin + 1) % thin == 0:
                iterations[k] = it
                draws[k] = state.theta
                log_post[k] = state.log_post
                accepted[k] = acc_it
                k += 1

        if config.verbose and (it + 1) % int(config.progress_every) == 0:
            phase = "burn-in" if it < burnin else "sampling"
            scl = ", ".join(f"{n}={s:.3g}" for n, s in zip(names, state.scales))
            print(f"[mcmc] {log_posterior.model} iteration {it + 1}/{total} ({phase}): "
                  f"log_post={state.log_post:.4f}, scales: {scl}")

    trace = Trace(
        param_names=tuple(names),
        iterations=iterations,
        draws=draws,
        log_post=log_post,
        accepted=accepted,
    )

    rates = kept_acc / float(max(kept_prop, 1))
    overall = float(np.mean(rates))
    lo, hi = ACCEPTANCE_SANITY_BAND
    if not (lo <= overall <= hi):
        warnings.warn(
            f"Acceptance rate over the retained phase is {overall:.3f}, outside [{lo}, {hi}]; "
            "consider a longer burn-in or different initial scales.",
            RuntimeWarning,
            stacklevel=2,
        )

    return MCMCResult(
        model=log_posterior.model,
        u=log_posterior.u,
        trace=trace,
        acceptance_rate=overall,
        acceptance_rates={n: float(r) for n, r in zip(names, rates)},
        initial_scales={n: float(s) for n, s in zip(names, s0)},
        final_scales={n: float(s) for n, s in zip(names, state.scales)},
        config=config,
        log_posterior=log_posterior,
    )


# -----------------------------------------------------------------------------
# Model entry points
# -----------------------------------------------------------------------------
def mcmc_pl(
    x: Sequence[float],
    u: int,
    xi1: float = 1.0,
    *,
    prior: Optional[UniformPrior] = None,
    scale: Optional[float] = None,
    n_iter: int = 10000,
    burnin: int = 2000,
    thin: int = 1,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    adapter: Optional[Any] = None,
    proposal: Optional[Any] = None,
    verbose: bool = False,
) -> MCMCResult:
    """
    Fit the discrete power law to the exceedances x_i >= u.

    xi1 is the starting value of the tail index and `scale` the initial
    proposal standard deviation. Observations below u are ignored; an empty
    set of exceedances raises ConfigurationError.
    """
    lp = LogPosterior("pl", x, u, prior)
    config = SamplerConfig(n_iter=n_iter, burnin=burnin, thin=thin, scheme="componentwise",
                           seed=seed, verbose=verbose)
    scales = None if scale is None else {"xi1": float(scale)}
    return run_mcmc(lp, {"xi1": xi1}, scales=scales, config=config, rng=rng,
                    adapter=adapter, proposal=proposal)


def mcmc_mix(
    x: Sequence[float],
    u: int,
    r: float = 1.0,
    mu: float = 1.0,
    xi1: float = 1.0,
    *,
    prior: Optional[UniformPrior] = None,
    scales: Optional[Mapping[str, float]] = None,
    n_iter: int = 10000,
    burnin: int = 2000,
    thin: int = 1,
    scheme: Scheme = "componentwise",
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    adapter: Optional[Any] = None,
    proposal: Optional[Any] = None,
    verbose: bool = False,
) -> MCMCResult:
    """
    Fit the negative-binomial bulk plus power-law tail mixture to all of x.

    (r, mu, xi1) are starting values: bulk size, bulk mean of x - 1, and the
    tail index above u.
    """
    lp = LogPosterior("mix", x, u, prior)
    config = SamplerConfig(n_iter=n_iter, burnin=burnin, thin=thin, scheme=scheme,
                           seed=seed, verbose=verbose)
    return run_mcmc(lp, {"r": r, "mu": mu, "xi1": xi1}, scales=scales, config=config,
                    rng=rng, adapter=adapter, proposal=proposal)


# -----------------------------------------------------------------------------
# Independent chains
# -----------------------------------------------------------------------------
def _run_chain_job(job: Tuple[Any, ...]) -> MCMCResult:
    """Worker entry point (module level so that it pickles)."""
    log_posterior, init, scales, config, seed_seq, adapter, proposal = job
    rng = np.random.default_rng(seed_seq)
    return run_mcmc(log_posterior, init, scales=scales, config=config, rng=rng,
                    adapter=adapter, proposal=proposal)


def run_chains(
    model: Model,
    x: Sequence[float],
    u: int,
    inits: Union[Mapping[str, float], Sequence[Mapping[str, float]]],
    *,
    n_chains: Optional[int] = None,
    prior: Optional[UniformPrior] = None,
    scales: Optional[Mapping[str, float]] = None,
    config: Optional[SamplerConfig] = None,
    seed: Optional[int] = None,
    adapter: Optional[Any] = None,
    proposal: Optional[Any] = None,
    n_jobs: int = 1,
) -> List[MCMCResult]:
    """
    Run independent chains of the same model.

    Chain i uses numpy.random.default_rng(SeedSequence(seed).spawn(n)[i]), so
    results do not depend on n_jobs. With n_jobs > 1 chains run in a
    ProcessPoolExecutor; they share only the read-only sample and prior.

    inits:
        One mapping per chain, or a single mapping reused by every chain.
    """
    lp = LogPosterior(model, x, u, prior)
    config = SamplerConfig() if config is None else config
    config.validate()

    if isinstance(inits, Mapping):
        if n_chains is None:
            raise ConfigurationError("n_chains is required when a single init mapping is given.")
        init_list = [dict(inits) for _ in range(int(n_chains))]
    else:
        init_list = [dict(m) for m in inits]
        if n_chains is not None and int(n_chains) != len(init_list):
            raise ConfigurationError("n_chains does not match the number of init mappings.")
    if not init_list:
        raise ConfigurationError("At least one chain is required.")

    children = np.random.SeedSequence(seed).spawn(len(init_list))
    jobs = [(lp, init, scales, config, ss, adapter, proposal) for init, ss in zip(init_list, children)]

    if int(n_jobs) <= 1 or len(jobs) == 1:
        return [_run_chain_job(job) for job in jobs]

    with ProcessPoolExecutor(max_workers=int(n_jobs)) as pool:
        return list(pool.map(_run_chain_job, jobs))
