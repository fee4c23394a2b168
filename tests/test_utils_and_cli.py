"""Plotting, reporting and command-line smoke tests."""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
import pytest

from cranfit import distributions as dist
from cranfit import fit, utils
from cranfit.mcmc import mcmc_mix, mcmc_pl


@pytest.fixture(scope="module")
def sample() -> np.ndarray:
    return dist.random_mix(600, 4, 1.5, 2.0, 0.6, rng=np.random.default_rng(17))


@pytest.fixture(scope="module")
def pl_result(sample):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        return mcmc_pl(sample, 4, n_iter=300, burnin=300, seed=1)


@pytest.fixture(scope="module")
def mix_result(sample):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        return mcmc_mix(sample, 4, r=1.5, mu=2.0, xi1=0.6, n_iter=200, burnin=200, seed=2)


def test_degree_frequencies() -> None:
    values, freq, surv = utils.degree_frequencies([1, 1, 2, 5])
    np.testing.assert_array_equal(values, [1.0, 2.0, 5.0])
    np.testing.assert_allclose(freq, [0.5, 0.25, 0.25])
    np.testing.assert_allclose(surv, [1.0, 0.5, 0.25])
    assert utils.degree_frequencies([])[0].size == 0


def test_fitted_curves(pl_result, mix_result) -> None:
    xs = np.arange(4, 30, dtype=float)
    fc = utils.fitted_curves(pl_result, xs, kind="surv", n_draws=50)
    assert set(fc) == {"x", "mean", "lower", "upper"}
    assert fc["mean"][0] == pytest.approx(1.0)
    assert np.all(fc["lower"] <= fc["upper"])
    assert np.all(np.diff(fc["mean"]) <= 0.0)

    fm = utils.fitted_curves(mix_result, np.arange(1, 30, dtype=float), kind="pmf", n_draws=20)
    assert np.all(fm["mean"] > 0.0)
    with pytest.raises(ValueError):
        utils.fitted_curves(pl_result, xs, kind="cdf")


def test_plots_are_saved(tmp_path, sample, pl_result, mix_result) -> None:
    utils.plot_trace(mix_result, save_path=str(tmp_path / "trace.pdf"), show=False)
    utils.plot_survival_fit(sample, pl_result, n_draws=20, save_path=str(tmp_path / "surv.pdf"), show=False)
    utils.plot_pmf_fit(sample, mix_result, n_draws=20, save_path=str(tmp_path / "pmf.pdf"), show=False)
    for name in ("trace.pdf", "surv.pdf", "pmf.pdf"):
        assert (tmp_path / name).stat().st_size > 0


def test_ensure_images_dir(tmp_path) -> None:
    d = utils.ensure_images_dir(str(tmp_path / "images"), sub="mix")
    assert (tmp_path / "images" / "mix").is_dir()
    assert d.endswith("mix")


def test_print_fit_report(capsys, mix_result) -> None:
    utils.print_fit_report(mix_result)
    out = capsys.readouterr().out
    assert "Acceptance rate" in out
    assert "Tail mass phi_u" in out
    assert "DIC" in out
    for name in ("r", "mu", "xi1"):
        assert name in out


def test_format_summary_table() -> None:
    table = utils.format_summary_table({"xi1": {"mean": 1.0, "sd": 0.1}})
    lines = table.splitlines()
    assert lines[0].split() == ["param", "mean", "sd"]
    assert lines[2].split() == ["xi1", "1", "0.1"]
    assert utils.format_summary_table({}) == ""


# -----------------------------------------------------------------------------
# Command line
# -----------------------------------------------------------------------------
def test_cli_inline_values_writes_trace_and_figures(tmp_path, capsys) -> None:
    x = dist.random_pl(300, 2, 0.8, rng=np.random.default_rng(3))
    values = [str(v) for v in x] + ["0", "0"]
    trace_path = tmp_path / "out" / "trace.csv"
    prefix = tmp_path / "figs" / "pl"
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        rc = fit.main([
            "--model", "pl", "--u", "2", "--values", *values, "--drop-zeros",
            "--n-iter", "150", "--burnin", "150", "--seed", "3",
            "--save-trace", str(trace_path), "--save-prefix", str(prefix), "--no-plot",
        ])
    assert rc == 0
    df = pd.read_csv(trace_path)
    assert len(df) == 150
    assert list(df.columns) == ["iteration", "xi1", "log_post", "accepted_xi1"]
    for tag in ("trace", "survival", "pmf"):
        assert (tmp_path / "figs" / f"pl_{tag}.pdf").exists()
    out = capsys.readouterr().out
    assert "Input summary: n=300" in out


def test_cli_reads_csv_with_prior_bounds(tmp_path) -> None:
    x = dist.random_mix(300, 3, 1.0, 2.0, 0.7, rng=np.random.default_rng(4))
    csv = tmp_path / "degrees.csv"
    pd.DataFrame({"node": np.arange(x.size), "degree": x}).to_csv(csv, index=False)
    args = fit.build_parser().parse_args([
        "--model", "mix", "--u", "3", "--input", str(csv), "--column", "degree",
        "--xi1-bounds", "0.1", "5", "--n-iter", "50", "--burnin", "50", "--seed", "0",
    ])
    loaded = fit._load_vector(args)
    np.testing.assert_array_equal(loaded, x.astype(float))
    prior = fit._build_prior(args)
    assert prior.bounds["xi1"] == (0.1, 5.0)
    assert prior.bounds["r"] == (0.0, 1.0e3)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        res = fit.fit_sample(loaded, args)
    assert res.model == "mix"
    assert len(res.trace) == 50


def test_cli_loads_npz_and_npy(tmp_path) -> None:
    np.save(tmp_path / "x.npy", np.array([[1, 2], [3, 4]]))
    np.savez(tmp_path / "x.npz", b=np.array([5, 6]), a=np.array([7]))
    np.testing.assert_array_equal(fit._load_vector_from_path(str(tmp_path / "x.npy"), column=None, key=None), [1, 2, 3, 4])
    np.testing.assert_array_equal(fit._load_vector_from_path(str(tmp_path / "x.npz"), column=None, key=None), [7])
    np.testing.assert_array_equal(fit._load_vector_from_path(str(tmp_path / "x.npz"), column=None, key="b"), [5, 6])
    with pytest.raises(FileNotFoundError):
        fit._load_vector_from_path(str(tmp_path / "missing.csv"), column=None, key=None)


def test_cli_loads_txt_table(tmp_path) -> None:
    (tmp_path / "deg.txt").write_text("node,degree\na,3\nb,5\nc,8\n")
    np.testing.assert_array_equal(fit._load_vector_from_path(str(tmp_path / "deg.txt"), column=None, key=None), [3, 5, 8])
    (tmp_path / "deg.parquet").write_bytes(b"PAR1")
    with pytest.raises(RuntimeError):
        fit._load_vector_from_path(str(tmp_path / "deg.parquet"), column=None, key=None)
