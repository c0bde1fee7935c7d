"""
Tests for the identification exercises on simulated data

Tests cover:
- Exact recovery of -eta and gamma from the FOC regression
- Omitted heterogeneity and the OVB formula
- Inverse Mills ratio and grouped participation shares
- First differences and the within estimator on a tax-reform panel
- 2SLS with the non-labor-income instrument
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from laborsupply import SimulationParams, TaxRegime, Preferences, simulate_cross_section
from laborsupply import ols, selection, panel, iv_2sls
from laborsupply.simulate import _draw_betai
from laborsupply.utils import ols_fit, add_const

ETA, GAMMA = -1.5, 0.8


@pytest.fixture(scope="module")
def homogeneous():
    params = SimulationParams(
        n=1000, seed=1,
        preferences=Preferences(eta=ETA, gamma=GAMMA, beta=1.0, beta0=0.1),
        tax=TaxRegime(rho=1.0, r=0.0),
    )
    return simulate_cross_section(params)


@pytest.fixture(scope="module")
def heterogeneous():
    return simulate_cross_section(
        SimulationParams(n=1000, seed=2, heterogeneity=True, instrument=True)
    )


class TestRecoverPreferences:
    """lw = -eta log c + gamma log h (+ log betai) holds exactly"""

    def test_exact_recovery_homogeneous(self, homogeneous):
        res = ols.recover_preferences(homogeneous)
        assert res["eta_hat"] == pytest.approx(ETA, abs=1e-6)
        assert res["gamma_hat"] == pytest.approx(GAMMA, abs=1e-6)
        assert res["r2"] == pytest.approx(1.0, abs=1e-9)
        assert res["beta"][0] == pytest.approx(0.0, abs=1e-6)
        assert res["n"] == int(homogeneous["p1"].sum())

    def test_exact_recovery_with_betai_control(self, heterogeneous):
        res = ols.recover_preferences(heterogeneous, controls=("log_betai",))
        assert res["names"] == ["const", "log_c", "log_h", "log_betai"]
        assert res["eta_hat"] == pytest.approx(ETA, abs=1e-6)
        assert res["gamma_hat"] == pytest.approx(GAMMA, abs=1e-6)
        assert res["beta"][3] == pytest.approx(1.0, abs=1e-6)

    def test_unknown_control(self, homogeneous):
        with pytest.raises(ValueError, match="requires column"):
            ols.recover_preferences(homogeneous, controls=("log_kappa",))


class TestOmittedHeterogeneity:
    """Leaving out log(betai) biases the short regression"""

    def test_short_regression_is_biased(self, heterogeneous):
        res = ols.omitted_heterogeneity(heterogeneous)
        assert abs(res["bias"][1]) > 0.01
        assert abs(res["short"]["eta_hat"] - res["long"]["eta_hat"]) > 1e-3
        assert res["short"]["r2"] < res["long"]["r2"]

    def test_bias_matches_ovb_formula(self, heterogeneous):
        res = ols.omitted_heterogeneity(heterogeneous)
        np.testing.assert_allclose(res["bias"], res["ovb"], atol=1e-8)

    def test_ols_fit_needs_more_rows_than_columns(self):
        with pytest.raises(ValueError, match="more observations"):
            ols_fit(add_const(np.array([1.0, 2.0])), np.array([1.0, 2.0]))

    def test_ols_fit_collinear_design_still_returns(self):
        x = np.arange(10.0)
        b, _, e, _ = ols_fit(add_const(np.column_stack([x, 2 * x])), 3 * x)
        np.testing.assert_allclose(e, 0.0, atol=1e-10)
        assert b[1] + 2 * b[2] == pytest.approx(3.0)

    def test_ovb_formula_simple_case(self):
        rng = np.random.default_rng(0)
        x = rng.normal(size=500)
        z = 0.5 * x + rng.normal(size=500)
        y = 1.0 + 2.0 * x + 3.0 * z
        short = ols_fit(add_const(x), y)[0]
        long_ = ols_fit(add_const(np.column_stack([x, z])), y)[0]
        bias = ols.ovb_formula(add_const(x), z, long_[2])
        np.testing.assert_allclose(short - long_[:2], bias, atol=1e-10)


class TestSelection:
    """Inverse Mills ratio and grouped participation"""

    def test_imr_at_half(self):
        assert selection.inverse_mills_ratio(0.5) == pytest.approx(
            np.sqrt(2 / np.pi), rel=1e-12
        )

    def test_imr_decreasing_and_finite(self):
        lam = selection.inverse_mills_ratio(np.array([0.0, 0.1, 0.5, 0.9, 1.0]))
        assert np.all(np.isfinite(lam))
        assert np.all(np.diff(lam) < 0)
        assert lam[-1] < 1e-8

    def test_cell_shares_are_participation_means(self, heterogeneous):
        cells = selection.group_participation(heterogeneous, by=("X",), n_bins=4)
        assert len(cells) == len(heterogeneous)
        assert cells["cell"].nunique() == 4
        frame = pd.DataFrame(dict(cell=cells["cell"],
                                  p1=heterogeneous["p1"].astype(float)))
        expected = frame.groupby("cell")["p1"].transform("mean")
        np.testing.assert_allclose(cells["share"], expected)

    def test_wage_equation(self, heterogeneous):
        res = selection.estimate_wage_equation(heterogeneous, by=("X", "Z"), n_bins=3)
        works = heterogeneous[heterogeneous["p1"]]
        naive = ols_fit(add_const(works["X"].to_numpy()), works["lw"].to_numpy())[0]
        assert res["lb_naive"] == pytest.approx(naive[1])
        assert np.isfinite(res["lb_corrected"])
        assert len(res["corrected"]["beta"]) == 3

    def test_correction_removes_selection_bias(self):
        """lw loads on the cell IMR: naive OLS is biased, the corrected fit is exact"""
        rng = np.random.default_rng(4)
        n = 4000
        X = rng.normal(size=n)
        Z = rng.normal(size=n)
        works = rng.uniform(size=n) < stats.norm.cdf(0.5 * X + Z)
        base = pd.DataFrame(dict(i=np.arange(n), X=X, Z=Z, p1=works))
        cells = selection.group_participation(base, by=("X", "Z"), n_bins=4)
        table = base.assign(lw=0.5 * X + 0.7 * cells["imr"].to_numpy())

        res = selection.estimate_wage_equation(table, by=("X", "Z"), n_bins=4)

        assert res["lb_corrected"] == pytest.approx(0.5, abs=1e-8)
        assert res["corrected"]["beta"][2] == pytest.approx(0.7, abs=1e-8)
        assert res["lb_naive"] < 0.5 - 0.01

    def test_missing_grouping_column(self, homogeneous):
        with pytest.raises(ValueError, match="Z"):
            selection.group_participation(homogeneous, by=("Z",))


class TestPanel:
    """A tax reform observed for the same agents"""

    @pytest.fixture(scope="class")
    def reform(self):
        params = SimulationParams(n=1000, seed=5, heterogeneity=True)
        taxes = [TaxRegime(rho=1.0, r=0.0), TaxRegime(rho=0.8, r=-0.2)]
        return panel.simulate_panel(params, taxes)

    def test_agents_keep_covariates_and_betai(self, reform):
        before = reform[reform["t"] == 0].reset_index(drop=True)
        after = reform[reform["t"] == 1].reset_index(drop=True)
        np.testing.assert_array_equal(before["X"], after["X"])
        np.testing.assert_array_equal(before["betai"], after["betai"])
        assert not np.allclose(before["lw"], after["lw"])

    def test_first_difference_merges_on_agent(self, reform):
        before = reform[reform["t"] == 0]
        after = reform[reform["t"] == 1].iloc[::-1]
        diff = panel.first_difference(before, after)
        both = set(before.loc[before["p1"], "i"]) & set(after.loc[after["p1"], "i"])
        assert set(diff["i"]) == both

        row = diff.iloc[0]
        b = before[before["i"] == row["i"]].iloc[0]
        a = after[after["i"] == row["i"]].iloc[0]
        assert row["d_lw"] == pytest.approx(a["lw"] - b["lw"])
        assert row["d_log_h"] == pytest.approx(np.log(a["h"]) - np.log(b["h"]))

    def test_first_difference_recovers_preferences(self, reform):
        res = panel.estimate_first_difference(reform[reform["t"] == 0],
                                              reform[reform["t"] == 1])
        assert res["eta_hat"] == pytest.approx(ETA, abs=1e-6)
        assert res["gamma_hat"] == pytest.approx(GAMMA, abs=1e-6)
        assert res["beta"][0] == pytest.approx(-np.log(0.8), abs=1e-6)

    def test_within_estimator_recovers_preferences(self, reform):
        res = panel.estimate_panel_fe(reform)
        assert res["eta_hat"] == pytest.approx(ETA, abs=1e-6)
        assert res["gamma_hat"] == pytest.approx(GAMMA, abs=1e-6)
        assert np.all(np.isfinite(res["se_cluster"]))

    def test_within_demean_removes_unit_means(self):
        y = np.array([1.0, 3.0, 10.0, 14.0])
        X = np.array([[0.0, 1.0], [2.0, 1.0], [5.0, 0.0], [7.0, 4.0]])
        dm = panel.within_demean(y, X, np.array([0, 0, 1, 1]))
        np.testing.assert_allclose(dm["y_demean"], [-1.0, 1.0, -2.0, 2.0])
        np.testing.assert_allclose(dm["X_demean"][:, 1], [0.0, 0.0, -2.0, 2.0])

    def test_betai_drawn_like_cross_section(self):
        """Panel betai uses the same draw as simulate_cross_section"""
        params = SimulationParams(n=50, seed=5, heterogeneity=True)
        reform = panel.simulate_panel(params, [TaxRegime()])

        rng = np.random.default_rng(5)
        X = rng.normal(0, 1, 50)
        np.testing.assert_array_equal(reform["betai"], _draw_betai(X, rng))

    def test_needs_a_regime(self):
        with pytest.raises(ValueError, match="tax regime"):
            panel.simulate_panel(SimulationParams(n=10), [])


class TestInstrumentalVariables:
    """2SLS with Z, Z^2 as excluded instruments"""

    def test_exact_model_recovered(self):
        table = simulate_cross_section(
            SimulationParams(n=1000, seed=11, instrument=True)
        )
        res = iv_2sls.instrument_labor_supply(table)
        assert res["eta_hat"] == pytest.approx(ETA, abs=1e-6)
        assert res["gamma_hat"] == pytest.approx(GAMMA, abs=1e-6)
        assert res["eta_ols"] == pytest.approx(ETA, abs=1e-6)

    def test_2sls_closer_to_truth_than_ols(self):
        table = simulate_cross_section(
            SimulationParams(n=5000, seed=0, heterogeneity=True, instrument=True)
        )
        res = iv_2sls.instrument_labor_supply(table)
        assert len(res["beta"]) == 4
        assert np.all(res["first_stage"]["r2"] > 0)
        assert np.all(np.isfinite(res["se_robust"]))
        assert abs(res["eta_hat"] - ETA) < abs(res["eta_ols"] - ETA)

    def test_requires_instrument(self, homogeneous):
        with pytest.raises(ValueError, match="Z"):
            iv_2sls.instrument_labor_supply(homogeneous)

    def test_underidentified(self):
        rng = np.random.default_rng(0)
        with pytest.raises(ValueError, match="instruments"):
            iv_2sls.estimate_2sls(rng.normal(size=50), rng.normal(size=(50, 2)),
                                  rng.normal(size=50))

    def test_just_identified_matches_wald_ratio(self):
        rng = np.random.default_rng(3)
        z = rng.normal(size=2000)
        u = rng.normal(size=2000)
        x = 0.8 * z + u + rng.normal(size=2000)
        y = 1.0 + 2.0 * x + u
        res = iv_2sls.estimate_2sls(z, x, y)
        wald = np.cov(y, z)[0, 1] / np.cov(x, z)[0, 1]
        assert res["beta"][1] == pytest.approx(wald, rel=1e-10)
