#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/priors.py

"""
Independent bounded-uniform priors on the model parameters.

Each parameter theta_j receives a Uniform(a_j, b_j) prior on the closed
interval [a_j, b_j]. Up to an additive constant the joint log prior is

    log pi(theta) = 0       if a_j <= theta_j <= b_j for every j,
                  = -inf    otherwise.

The constant sum_j -log(b_j - a_j) is omitted: it cancels in every
Metropolis-Hastings ratio. No correlation between parameters is modelled.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, Literal, Mapping, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError

Array = np.ndarray
Model = Literal["pl", "mix"]

__all__ = ["Model", "PARAM_NAMES", "param_names", "UniformPrior"]


# Parameter order used throughout the package.
PARAM_NAMES: Dict[str, Tuple[str, ...]] = {
    "pl": ("xi1",),
    "mix": ("r", "mu", "xi1"),
}

_DEFAULT_BOUNDS: Dict[str, Tuple[float, float]] = {
    "xi1": (0.0, 50.0),
    "r": (0.0, 1.0e3),
    "mu": (0.0, 1.0e5),
}


def param_names(model: str) -> Tuple[str, ...]:
    """Return the ordered parameter names of a model."""
    try:
        return PARAM_NAMES[str(model)]
    except KeyError:
        raise ConfigurationError(f"Unknown model {model!r}; expected one of {sorted(PARAM_NAMES)}.") from None


@dataclass(frozen=True)
class UniformPrior:
    """
    Product of independent Uniform(a, b) priors.

    bounds:
        Mapping name -> (a, b). Iteration order defines the parameter order.
    """
    bounds: Mapping[str, Tuple[float, float]] = field(default_factory=dict)

    # ------------------------- constructors -------------------------
    @staticmethod
    def default(model: Model) -> "UniformPrior":
        """Construct the default wide prior for model "pl" or "mix"."""
        return UniformPrior({k: _DEFAULT_BOUNDS[k] for k in param_names(model)})

    def updated(self, **bounds: Tuple[float, float]) -> "UniformPrior":
        """Return a copy with some bounds replaced."""
        new = dict(self.bounds)
        for k, v in bounds.items():
            new[k] = (float(v[0]), float(v[1]))
        return UniformPrior(new)

    # ------------------------- validation -------------------------
    def validate(self, names: Sequence[str] = ()) -> None:
        """
        Validate the bounds, optionally checking that they cover `names`.

        Raises
        ------
        ConfigurationError
            If a bound pair is non-finite or has a >= b, or a required
            parameter has no bound.
        """
        if not self.bounds:
            raise ConfigurationError("UniformPrior requires at least one parameter bound.")
        for k, ab in self.bounds.items():
            try:
                a, b = (float(ab[0]), float(ab[1]))
            except (TypeError, ValueError, IndexError):
                raise ConfigurationError(f"Prior bounds for {k!r} must be a pair (a, b).") from None
            if not (math.isfinite(a) and math.isfinite(b)):
                raise ConfigurationError(f"Prior bounds for {k!r} must be finite, got ({a}, {b}).")
            if a >= b:
                raise ConfigurationError(f"Prior bounds for {k!r} require a < b, got ({a}, {b}).")
        missing = [n for n in names if n not in self.bounds]
        if missing:
            raise ConfigurationError(f"Prior has no bounds for parameter(s): {', '.join(missing)}.")

    # ------------------------- evaluation -------------------------
    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.bounds.keys())

    def arrays(self, names: Sequence[str]) -> Tuple[Array, Array]:
        """Lower and upper bounds as arrays ordered like `names`."""
        lo = np.array([float(self.bounds[n][0]) for n in names], dtype=float)
        hi = np.array([float(self.bounds[n][1]) for n in names], dtype=float)
        return lo, hi

    @cached_property
    def _box(self) -> Tuple[Array, Array]:
        return self.arrays(self.names)

    def contains(self, theta: Union[Mapping[str, float], Array]) -> bool:
        """
        True if every value lies in its closed interval (NaN counts as outside).

        theta is either a mapping name -> value or an array ordered like `names`.
        """
        if isinstance(theta, Mapping):
            th = np.array([float(theta[n]) for n in self.names], dtype=float)
        else:
            th = np.asarray(theta, dtype=float)
        lo, hi = self._box
        return bool(np.all((th >= lo) & (th <= hi)))

    def log_prior(self, theta: Union[Mapping[str, float], Array]) -> float:
        """0.0 inside the support, -inf outside."""
        return 0.0 if self.contains(theta) else -np.inf
