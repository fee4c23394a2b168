"""Likelihood, log-posterior and prior behaviour."""

from __future__ import annotations

import math

import numpy as np
import pytest

from cranfit import distributions as dist
from cranfit.errors import ConfigurationError
from cranfit.likelihood import LogPosterior, llik_mix, llik_pl, validate_sample, validate_threshold
from cranfit.priors import PARAM_NAMES, UniformPrior, param_names


# -----------------------------------------------------------------------------
# Priors
# -----------------------------------------------------------------------------
def test_default_priors_cover_model_parameters() -> None:
    assert param_names("pl") == ("xi1",)
    assert param_names("mix") == ("r", "mu", "xi1")
    for model, names in PARAM_NAMES.items():
        prior = UniformPrior.default(model)
        prior.validate(names)
        assert prior.names == names


def test_unknown_model_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        param_names("lognormal")
    with pytest.raises(ConfigurationError):
        LogPosterior("lognormal", [1, 2, 3], 1)


@pytest.mark.parametrize("bounds", [(1.0, 1.0), (2.0, 1.0), (0.0, math.inf), (math.nan, 1.0)])
def test_malformed_prior_bounds_are_rejected(bounds) -> None:
    with pytest.raises(ConfigurationError):
        UniformPrior({"xi1": bounds}).validate()


def test_prior_missing_parameter_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        UniformPrior({"xi1": (0.0, 5.0)}).validate(("r", "mu", "xi1"))


def test_log_prior_is_zero_inside_and_neginf_outside() -> None:
    prior = UniformPrior.default("mix").updated(xi1=(0.1, 2.0))
    assert prior.log_prior({"r": 1.0, "mu": 1.0, "xi1": 0.1}) == 0.0
    assert prior.log_prior({"r": 1.0, "mu": 1.0, "xi1": 2.0}) == 0.0
    assert prior.log_prior({"r": 1.0, "mu": 1.0, "xi1": 2.5}) == -np.inf
    assert prior.log_prior({"r": 1.0, "mu": 1.0, "xi1": math.nan}) == -np.inf


def test_log_prior_accepts_ordered_array() -> None:
    prior = UniformPrior.default("mix").updated(xi1=(0.1, 2.0))
    assert prior.names == ("r", "mu", "xi1")
    for xi1 in (0.1, 1.0, 2.5, math.nan):
        mapping = {"r": 1.0, "mu": 1.0, "xi1": xi1}
        assert prior.log_prior(np.array([1.0, 1.0, xi1])) == prior.log_prior(mapping)
    assert not prior.contains(np.array([math.nan, 1.0, 1.0]))


def test_log_posterior_delegates_to_prior(monkeypatch) -> None:
    lp = LogPosterior("pl", [5, 6, 9], 5, UniformPrior({"xi1": (0.2, 3.0)}))
    seen = []
    original = UniformPrior.log_prior

    def recording(self, theta):
        seen.append(float(np.asarray(theta)[0]))
        return original(self, theta)

    monkeypatch.setattr(UniformPrior, "log_prior", recording)
    assert lp(np.array([1.0])) > -math.inf
    assert lp(np.array([3.5])) == -math.inf
    assert seen == [1.0, 3.5]


# -----------------------------------------------------------------------------
# Log-likelihoods
# -----------------------------------------------------------------------------
def test_single_observation_at_threshold() -> None:
    u, xi1 = 4, 0.7
    assert llik_pl(np.array([u]), u, xi1) == pytest.approx(float(dist.logpmf_pl(float(u), u, xi1)))


def test_pl_likelihood_ignores_values_below_threshold() -> None:
    x = np.array([1, 2, 3, 5, 8, 13])
    assert llik_pl(x, 5, 1.2) == pytest.approx(llik_pl(np.array([5, 8, 13]), 5, 1.2))


def test_mix_likelihood_sums_log_pmf() -> None:
    x = np.array([1, 1, 2, 4, 7, 20, 55])
    expected = float(np.sum(dist.logpmf_mix(x, 5, 2.0, 3.0, 0.5)))
    assert llik_mix(x, 5, 2.0, 3.0, 0.5) == pytest.approx(expected)


def test_mix_with_unit_threshold_equals_power_law() -> None:
    x = np.array([1, 2, 2, 3, 9, 40])
    assert llik_mix(x, 1, 5.0, 2.0, 0.9) == pytest.approx(llik_pl(x, 1, 0.9))


@pytest.mark.parametrize("xi1", [0.0, -0.5, math.nan])
def test_invalid_tail_index_gives_neginf(xi1: float) -> None:
    x = np.array([2, 3, 5])
    assert llik_pl(x, 2, xi1) == -math.inf
    assert llik_mix(x, 2, 1.0, 1.0, xi1) == -math.inf


@pytest.mark.parametrize("r,mu", [(0.0, 1.0), (-1.0, 1.0), (1.0, -3.0)])
def test_invalid_bulk_gives_neginf(r: float, mu: float) -> None:
    assert llik_mix(np.array([1, 2, 6]), 3, r, mu, 1.0) == -math.inf


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------
@pytest.mark.parametrize("u", [0, -1, 2.5, math.inf, "a"])
def test_invalid_threshold(u) -> None:
    with pytest.raises(ConfigurationError):
        validate_threshold(u)


def test_valid_threshold_is_int() -> None:
    assert validate_threshold(3.0) == 3
    assert isinstance(validate_threshold(3.0), int)


@pytest.mark.parametrize("x", [[], [1.5, 2.0], [0, 1, 2], [-3, 4], [1.0, math.nan]])
def test_invalid_sample(x) -> None:
    with pytest.raises(ConfigurationError):
        validate_sample(x)


def test_empty_after_threshold_filtering() -> None:
    with pytest.raises(ConfigurationError):
        LogPosterior("pl", [1, 2, 3, 4], 5)


# -----------------------------------------------------------------------------
# LogPosterior
# -----------------------------------------------------------------------------
def test_log_posterior_pl() -> None:
    x = [1, 2, 5, 6, 9, 30]
    lp = LogPosterior("pl", x, 5)
    assert lp.names == ("xi1",)
    assert lp.n_obs == 4
    assert not lp.x.flags.writeable
    assert lp(np.array([0.8])) == pytest.approx(llik_pl(np.asarray(x), 5, 0.8))
    assert lp(np.array([60.0])) == -math.inf
    assert lp(np.array([-0.1])) == -math.inf


def test_log_posterior_mix_orders_parameters() -> None:
    x = [1, 1, 2, 3, 4, 8, 15]
    lp = LogPosterior("mix", x, 4, UniformPrior.default("mix").updated(r=(0.0, 10.0)))
    theta = lp.as_vector({"xi1": 0.5, "mu": 2.0, "r": 1.5})
    np.testing.assert_array_equal(theta, [1.5, 2.0, 0.5])
    assert lp.as_dict(theta) == {"r": 1.5, "mu": 2.0, "xi1": 0.5}
    assert lp(theta) == pytest.approx(llik_mix(np.asarray(x), 4, 1.5, 2.0, 0.5))
    assert lp.log_prior(np.array([11.0, 2.0, 0.5])) == -math.inf
    with pytest.raises(ConfigurationError):
        lp.as_vector({"r": 1.0, "mu": 1.0})
